"""
PokeAPI HTTP client helpers.

Used endpoints:
- GET /pokemon/{name}  -> {"id": ..., "name": ..., "sprites": {...}, "abilities": [...], "types": [...]}
- GET /type/{id}       -> {"id": ..., "name": ..., "damage_relations": {...}}

Only the fields this service consumes are modelled; everything else in the
payload is ignored.
"""

from __future__ import annotations

import os
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError

DEFAULT_BASE_URL = "https://pokeapi.co/api/v2"
DEFAULT_TIMEOUT_S = 10.0


# PokeAPI failures are explicit and separable from other runtime errors.
class PokeAPIError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PokeAPINotFound(PokeAPIError):
    pass


class NamedResource(BaseModel):
    name: str
    url: str = ""


class RawSprites(BaseModel):
    front_default: str | None = None


class RawAbilitySlot(BaseModel):
    is_hidden: bool = False
    slot: int
    ability: NamedResource


class RawTypeSlot(BaseModel):
    slot: int
    type: NamedResource


class RawPokemon(BaseModel):
    id: int
    name: str
    sprites: RawSprites = Field(default_factory=RawSprites)
    abilities: list[RawAbilitySlot] = Field(default_factory=list)
    types: list[RawTypeSlot] = Field(default_factory=list)


class RawDamageRelations(BaseModel):
    double_damage_from: list[NamedResource] = Field(default_factory=list)
    double_damage_to: list[NamedResource] = Field(default_factory=list)
    half_damage_from: list[NamedResource] = Field(default_factory=list)
    half_damage_to: list[NamedResource] = Field(default_factory=list)
    no_damage_from: list[NamedResource] = Field(default_factory=list)
    no_damage_to: list[NamedResource] = Field(default_factory=list)


class RawType(BaseModel):
    id: int
    name: str
    damage_relations: RawDamageRelations = Field(default_factory=RawDamageRelations)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def pokeapi_base_url() -> str:
    return os.environ.get("POKEAPI_BASE_URL", DEFAULT_BASE_URL).strip() or DEFAULT_BASE_URL


def pokeapi_timeout_s() -> float:
    return _env_float("POKEAPI_TIMEOUT_S", DEFAULT_TIMEOUT_S)


def _normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise PokeAPIError("POKEAPI_BASE_URL is empty.")
    return base_url.rstrip("/")


class PokeAPIClient:
    """
    Thin async client over the PokeAPI REST endpoints.

    `transport` is forwarded to httpx and is only meant for tests.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url if base_url is not None else pokeapi_base_url())
        self.timeout_s = timeout_s if timeout_s is not None else pokeapi_timeout_s()
        self._transport = transport

    async def _get_json(self, path: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                resp = await client.get(path)
        except httpx.HTTPError as exc:
            raise PokeAPIError(f"PokeAPI request to {path} failed: {exc}") from exc

        if resp.status_code == 404:
            raise PokeAPINotFound(f"PokeAPI has no resource at {path}.", status_code=404)
        if resp.status_code != 200:
            # Avoid dumping huge bodies; include a small snippet.
            body = resp.text[:300]
            raise PokeAPIError(
                f"PokeAPI request to {path} failed: {resp.status_code} {body}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise PokeAPIError(f"PokeAPI returned invalid JSON for {path}.") from exc
        if not isinstance(data, dict):
            raise PokeAPIError(f"PokeAPI returned a non-object body for {path}.")
        return data

    async def fetch_pokemon(self, name: str) -> RawPokemon:
        name = (name or "").strip()
        if not name:
            raise PokeAPIError("Pokemon name is empty.")
        # The name must stay one path segment: no "/", "?", "#" or dot segments.
        segment = quote(name, safe="").replace(".", "%2E")
        data = await self._get_json(f"/pokemon/{segment}")
        try:
            return RawPokemon.model_validate(data)
        except ValidationError as exc:
            raise PokeAPIError(f"PokeAPI returned a malformed pokemon payload for {name!r}.") from exc

    async def fetch_type(self, type_id: int) -> RawType:
        data = await self._get_json(f"/type/{int(type_id)}")
        try:
            return RawType.model_validate(data)
        except ValidationError as exc:
            raise PokeAPIError(f"PokeAPI returned a malformed type payload for id {type_id}.") from exc
