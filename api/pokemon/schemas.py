"""
Pokemon schemas.

`Pokemon` is the canonical record shared by the store, the cache and the
resolver. It is frozen and uses tuples so cached values cannot be mutated
in place. `PokemonResponse` is the lean shape returned to API callers.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Ability(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str = ""
    is_hidden: bool = False
    slot: int


class PokemonType(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str = ""
    slot: int


class Pokemon(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Upstream (PokeAPI) identifier, never the store's surrogate key.
    id: int
    name: str
    sprite: str | None = None
    abilities: tuple[Ability, ...] = ()
    types: tuple[PokemonType, ...] = ()


class PokemonResponse(BaseModel):
    id: int
    name: str
    sprite: str | None = None
    abilities: list[str] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)


class TypeCoverageResponse(BaseModel):
    types: list[str]
    weaknesses: dict[str, float] = Field(default_factory=dict)
    resistances: dict[str, float] = Field(default_factory=dict)
    neutral: dict[str, float] = Field(default_factory=dict)
    immunities: dict[str, float] = Field(default_factory=dict)
