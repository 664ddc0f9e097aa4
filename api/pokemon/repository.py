"""
Pokemon persistence (raw SQL).

Schema comes from the dbmate migration in `db/migrations/`:
- pokemon(id, pokeapi_id unique, name unique, sprite_url)
- abilities(id, name unique, pokeapi_url)
- types(id, name unique, pokeapi_url, damage_relations jsonb)
- pokemon_abilities(pokemon_id, ability_id, is_hidden, slot)
- pokemon_types(pokemon_id, type_id, slot)

Rows are only ever inserted here, never updated or deleted.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import asyncpg

from core import db

from . import schemas

SELECT_POKEMON_BY_NAME = """
    SELECT id, pokeapi_id, name, sprite_url
    FROM pokemon
    WHERE name = $1
"""

SELECT_POKEMON_ABILITIES = """
    SELECT a.name, a.pokeapi_url, pa.is_hidden, pa.slot
    FROM pokemon_abilities pa
    JOIN abilities a ON a.id = pa.ability_id
    WHERE pa.pokemon_id = $1
    ORDER BY pa.slot ASC
"""

SELECT_POKEMON_TYPES = """
    SELECT t.name, t.pokeapi_url, pt.slot
    FROM pokemon_types pt
    JOIN types t ON t.id = pt.type_id
    WHERE pt.pokemon_id = $1
    ORDER BY pt.slot ASC
"""

SELECT_EXISTING_TYPE_NAMES = """
    SELECT name
    FROM types
    WHERE name = ANY($1::text[])
"""

SELECT_TYPE_RELATIONS = """
    SELECT name, damage_relations
    FROM types
    WHERE name = ANY($1::text[])
"""

INSERT_POKEMON = """
    INSERT INTO pokemon (pokeapi_id, name, sprite_url)
    VALUES ($1, $2, $3)
    ON CONFLICT (pokeapi_id) DO NOTHING
    RETURNING id
"""

SELECT_POKEMON_ID_BY_POKEAPI_ID = """
    SELECT id
    FROM pokemon
    WHERE pokeapi_id = $1
"""

SELECT_ABILITY_ID = """
    SELECT id
    FROM abilities
    WHERE name = $1
"""

INSERT_ABILITY = """
    INSERT INTO abilities (name, pokeapi_url)
    VALUES ($1, $2)
    ON CONFLICT (name) DO NOTHING
    RETURNING id
"""

SELECT_TYPE_ID = """
    SELECT id
    FROM types
    WHERE name = $1
"""

INSERT_TYPE = """
    INSERT INTO types (name, pokeapi_url, damage_relations)
    VALUES ($1, $2, $3::jsonb)
    ON CONFLICT (name) DO NOTHING
    RETURNING id
"""

INSERT_POKEMON_ABILITY = """
    INSERT INTO pokemon_abilities (pokemon_id, ability_id, is_hidden, slot)
    VALUES ($1, $2, $3, $4)
"""

INSERT_POKEMON_TYPE = """
    INSERT INTO pokemon_types (pokemon_id, type_id, slot)
    VALUES ($1, $2, $3)
"""

# Driver, protocol, socket and command_timeout failures all count as persistence failures.
_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PersistenceError(RuntimeError):
    pass


def _json_arg(value: dict[str, Any] | None) -> str | None:
    """
    asyncpg does not automatically encode Python dicts for json/jsonb parameters.
    We pass JSON as a string and cast to jsonb in SQL.
    """
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=True)


def _json_value(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        return json.loads(raw)
    return dict(raw)


async def find_by_name(name: str) -> schemas.Pokemon | None:
    """
    Exact-match lookup. Returns None when no row matches.
    """
    try:
        row = await db.fetch_one(SELECT_POKEMON_BY_NAME, name)
        if row is None:
            return None

        pokemon_id = int(row["id"])
        ability_rows = await db.fetch_all(SELECT_POKEMON_ABILITIES, pokemon_id)
        type_rows = await db.fetch_all(SELECT_POKEMON_TYPES, pokemon_id)
    except _DB_ERRORS as exc:
        raise PersistenceError(f"Failed to load pokemon {name!r}: {exc}") from exc

    return schemas.Pokemon(
        id=int(row["pokeapi_id"]),
        name=str(row["name"]),
        sprite=row["sprite_url"],
        abilities=tuple(
            schemas.Ability(
                name=str(r["name"]),
                url=str(r["pokeapi_url"] or ""),
                is_hidden=bool(r["is_hidden"]),
                slot=int(r["slot"]),
            )
            for r in ability_rows
        ),
        types=tuple(
            schemas.PokemonType(
                name=str(r["name"]),
                url=str(r["pokeapi_url"] or ""),
                slot=int(r["slot"]),
            )
            for r in type_rows
        ),
    )


async def existing_type_names(names: list[str]) -> set[str]:
    if not names:
        return set()
    try:
        rows = await db.fetch_all(SELECT_EXISTING_TYPE_NAMES, list(names))
    except _DB_ERRORS as exc:
        raise PersistenceError(f"Failed to look up types: {exc}") from exc
    return {str(r["name"]) for r in rows}


async def get_type_relations(names: list[str]) -> dict[str, dict[str, Any] | None]:
    """
    Return stored damage relations keyed by type name.

    Names with no row are absent from the result; rows stored without
    relations map to None.
    """
    if not names:
        return {}
    try:
        rows = await db.fetch_all(SELECT_TYPE_RELATIONS, list(names))
    except _DB_ERRORS as exc:
        raise PersistenceError(f"Failed to load type relations: {exc}") from exc
    return {str(r["name"]): _json_value(r["damage_relations"]) for r in rows}


async def _get_or_create_id(
    conn: asyncpg.Connection,
    *,
    select_sql: str,
    insert_sql: str,
    name: str,
    insert_args: tuple[Any, ...],
) -> int:
    row = await conn.fetchrow(select_sql, name)
    if row is not None:
        return int(row["id"])

    row = await conn.fetchrow(insert_sql, *insert_args)
    if row is not None:
        return int(row["id"])

    # A concurrent transaction committed the same name between our select and insert.
    row = await conn.fetchrow(select_sql, name)
    if row is None:
        raise PersistenceError(f"Row for {name!r} vanished after insert conflict.")
    return int(row["id"])


async def insert_pokemon(
    pokemon: schemas.Pokemon,
    *,
    type_relations: dict[str, dict[str, Any]] | None = None,
) -> int:
    """
    Insert a pokemon with its abilities and types in a single transaction.

    Abilities and types are shared by name and only inserted when absent.
    An existing pokemon row (same pokeapi_id) is reused. Association rows
    are inserted on every call, so callers must not insert the same
    pokemon twice.

    `type_relations` holds damage relations for types that may need to be
    created; it must be fetched before calling, so no network I/O happens
    while the transaction is open.

    Returns the store's surrogate pokemon id.
    """
    type_relations = type_relations or {}
    try:
        async with db.transaction() as conn:
            row = await conn.fetchrow(INSERT_POKEMON, pokemon.id, pokemon.name, pokemon.sprite)
            if row is None:
                row = await conn.fetchrow(SELECT_POKEMON_ID_BY_POKEAPI_ID, pokemon.id)
                if row is None:
                    raise PersistenceError(f"Pokemon {pokemon.id} vanished after insert conflict.")
            pokemon_id = int(row["id"])

            ability_records: list[tuple[int, int, bool, int]] = []
            for ability in pokemon.abilities:
                ability_id = await _get_or_create_id(
                    conn,
                    select_sql=SELECT_ABILITY_ID,
                    insert_sql=INSERT_ABILITY,
                    name=ability.name,
                    insert_args=(ability.name, ability.url),
                )
                ability_records.append((pokemon_id, ability_id, ability.is_hidden, ability.slot))

            type_records: list[tuple[int, int, int]] = []
            for pokemon_type in pokemon.types:
                type_id = await _get_or_create_id(
                    conn,
                    select_sql=SELECT_TYPE_ID,
                    insert_sql=INSERT_TYPE,
                    name=pokemon_type.name,
                    insert_args=(
                        pokemon_type.name,
                        pokemon_type.url,
                        _json_arg(type_relations.get(pokemon_type.name)),
                    ),
                )
                type_records.append((pokemon_id, type_id, pokemon_type.slot))

            if ability_records:
                await conn.executemany(INSERT_POKEMON_ABILITY, ability_records)
            if type_records:
                await conn.executemany(INSERT_POKEMON_TYPE, type_records)

            return pokemon_id
    except _DB_ERRORS as exc:
        raise PersistenceError(f"Failed to insert pokemon {pokemon.name!r}: {exc}") from exc
