"""
Pure mapping between PokeAPI payloads, the canonical record and the API response.
"""

from __future__ import annotations

from core.pokeapi import RawDamageRelations, RawPokemon

from . import schemas


def normalize_name(name: str) -> str:
    return (name or "").strip().lower()


def resource_id(url: str) -> int:
    """
    Extract the numeric id from a PokeAPI resource URL.

    "https://pokeapi.co/api/v2/type/13/" -> 13
    """
    tail = (url or "").rstrip("/").rsplit("/", 1)[-1]
    if not tail.isdigit():
        raise ValueError(f"No resource id in URL: {url!r}")
    return int(tail)


def to_pokemon(raw: RawPokemon) -> schemas.Pokemon:
    abilities = sorted(raw.abilities, key=lambda a: a.slot)
    types = sorted(raw.types, key=lambda t: t.slot)
    return schemas.Pokemon(
        id=raw.id,
        name=raw.name,
        sprite=raw.sprites.front_default,
        abilities=tuple(
            schemas.Ability(
                name=a.ability.name,
                url=a.ability.url,
                is_hidden=a.is_hidden,
                slot=a.slot,
            )
            for a in abilities
        ),
        types=tuple(
            schemas.PokemonType(name=t.type.name, url=t.type.url, slot=t.slot)
            for t in types
        ),
    )


def to_response(pokemon: schemas.Pokemon) -> schemas.PokemonResponse:
    # Drops URLs, hidden flags and slots; list order already follows slot order.
    return schemas.PokemonResponse(
        id=pokemon.id,
        name=pokemon.name,
        sprite=pokemon.sprite,
        abilities=[a.name for a in pokemon.abilities],
        types=[t.name for t in pokemon.types],
    )


def damage_relations_to_dict(relations: RawDamageRelations) -> dict[str, list[str]]:
    """
    Flatten damage relations to type names for storage.
    """
    return {
        field: [r.name for r in getattr(relations, field)]
        for field in RawDamageRelations.model_fields
    }
