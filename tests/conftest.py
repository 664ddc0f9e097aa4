"""
Shared test fixtures: PokeAPI payload builders, a scripted asyncpg stand-in
and in-memory collaborators for the resolver.
"""

from __future__ import annotations

import asyncio
import copy
import json
from contextlib import asynccontextmanager
from typing import Any

import pytest

from core import db, pokeapi
from pokemon import repository, schemas


def type_url(type_id: int) -> str:
    return f"https://pokeapi.co/api/v2/type/{type_id}/"


def ability_url(ability_id: int) -> str:
    return f"https://pokeapi.co/api/v2/ability/{ability_id}/"


def pokemon_payload(
    pokemon_id: int,
    name: str,
    *,
    sprite: str | None = None,
    abilities: list[tuple[str, int, bool]] = (),
    types: list[tuple[str, int, int]] = (),
) -> dict[str, Any]:
    """
    Build a PokeAPI /pokemon body.

    abilities: (name, slot, is_hidden); types: (name, slot, type_id)
    """
    return {
        "id": pokemon_id,
        "name": name,
        "base_experience": 112,
        "sprites": {"front_default": sprite, "back_default": None},
        "abilities": [
            {"ability": {"name": a_name, "url": ability_url(i + 1)}, "is_hidden": hidden, "slot": slot}
            for i, (a_name, slot, hidden) in enumerate(abilities)
        ],
        "types": [
            {"slot": slot, "type": {"name": t_name, "url": type_url(t_id)}}
            for (t_name, slot, t_id) in types
        ],
    }


def type_payload(type_id: int, name: str, **relations: list[str]) -> dict[str, Any]:
    return {
        "id": type_id,
        "name": name,
        "damage_relations": {
            field: [{"name": n, "url": ""} for n in relations.get(field, [])]
            for field in pokeapi.RawDamageRelations.model_fields
        },
    }


PIKACHU = pokemon_payload(
    25,
    "pikachu",
    sprite="url1",
    abilities=[("static", 1, False), ("lightning-rod", 3, True)],
    types=[("electric", 1, 13)],
)

ELECTRIC = type_payload(
    13,
    "electric",
    double_damage_from=["ground"],
    half_damage_from=["flying", "steel", "electric"],
)


class FakeDatabase:
    """
    In-memory stand-in for an asyncpg pool that understands exactly the
    statements in `pokemon.repository`.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            "pokemon": [],
            "abilities": [],
            "types": [],
            "pokemon_abilities": [],
            "pokemon_types": [],
        }
        self.fail_on: str | None = None
        self.fail_with: BaseException = OSError("connection reset by peer")
        self.statements: list[str] = []
        self.commits = 0
        self.rollbacks = 0

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table]

    def _next_id(self, table: str) -> int:
        return len(self.tables[table]) + 1

    def _insert_named(self, table: str, row: dict[str, Any]) -> list[dict[str, Any]]:
        if any(r["name"] == row["name"] for r in self.tables[table]):
            return []
        row = {"id": self._next_id(table), **row}
        self.tables[table].append(row)
        return [{"id": row["id"]}]

    def _by_id(self, table: str, row_id: int) -> dict[str, Any]:
        return next(r for r in self.tables[table] if r["id"] == row_id)

    def run(self, sql: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        self.statements.append(sql)
        if self.fail_on is not None and sql == self.fail_on:
            raise self.fail_with

        t = self.tables
        if sql == repository.SELECT_POKEMON_BY_NAME:
            return [dict(r) for r in t["pokemon"] if r["name"] == args[0]]
        if sql == repository.SELECT_POKEMON_ABILITIES:
            links = sorted((l for l in t["pokemon_abilities"] if l["pokemon_id"] == args[0]), key=lambda l: l["slot"])
            out = []
            for link in links:
                ability = self._by_id("abilities", link["ability_id"])
                out.append(
                    {
                        "name": ability["name"],
                        "pokeapi_url": ability["pokeapi_url"],
                        "is_hidden": link["is_hidden"],
                        "slot": link["slot"],
                    }
                )
            return out
        if sql == repository.SELECT_POKEMON_TYPES:
            links = sorted((l for l in t["pokemon_types"] if l["pokemon_id"] == args[0]), key=lambda l: l["slot"])
            out = []
            for link in links:
                type_row = self._by_id("types", link["type_id"])
                out.append({"name": type_row["name"], "pokeapi_url": type_row["pokeapi_url"], "slot": link["slot"]})
            return out
        if sql == repository.SELECT_EXISTING_TYPE_NAMES:
            return [{"name": r["name"]} for r in t["types"] if r["name"] in args[0]]
        if sql == repository.SELECT_TYPE_RELATIONS:
            return [
                {"name": r["name"], "damage_relations": r["damage_relations"]}
                for r in t["types"]
                if r["name"] in args[0]
            ]
        if sql == repository.INSERT_POKEMON:
            if any(r["pokeapi_id"] == args[0] for r in t["pokemon"]):
                return []
            row = {"id": self._next_id("pokemon"), "pokeapi_id": args[0], "name": args[1], "sprite_url": args[2]}
            t["pokemon"].append(row)
            return [{"id": row["id"]}]
        if sql == repository.SELECT_POKEMON_ID_BY_POKEAPI_ID:
            return [{"id": r["id"]} for r in t["pokemon"] if r["pokeapi_id"] == args[0]]
        if sql == repository.SELECT_ABILITY_ID:
            return [{"id": r["id"]} for r in t["abilities"] if r["name"] == args[0]]
        if sql == repository.INSERT_ABILITY:
            return self._insert_named("abilities", {"name": args[0], "pokeapi_url": args[1]})
        if sql == repository.SELECT_TYPE_ID:
            return [{"id": r["id"]} for r in t["types"] if r["name"] == args[0]]
        if sql == repository.INSERT_TYPE:
            return self._insert_named(
                "types",
                {"name": args[0], "pokeapi_url": args[1], "damage_relations": args[2]},
            )
        if sql == repository.INSERT_POKEMON_ABILITY:
            t["pokemon_abilities"].append(
                {"pokemon_id": args[0], "ability_id": args[1], "is_hidden": args[2], "slot": args[3]}
            )
            return []
        if sql == repository.INSERT_POKEMON_TYPE:
            t["pokemon_types"].append({"pokemon_id": args[0], "type_id": args[1], "slot": args[2]})
            return []
        raise AssertionError(f"Unexpected SQL: {sql}")

    # asyncpg.Pool / asyncpg.Connection surface

    async def fetchrow(self, sql: str, *args: Any) -> dict[str, Any] | None:
        rows = self.run(sql, args)
        return rows[0] if rows else None

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        return self.run(sql, args)

    async def executemany(self, sql: str, records: list[tuple[Any, ...]]) -> None:
        for record in records:
            self.run(sql, tuple(record))

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self.tables)
        try:
            yield
        except BaseException:
            self.tables = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    @asynccontextmanager
    async def acquire(self):
        yield self


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> FakeDatabase:
    database = FakeDatabase()
    monkeypatch.setattr(db, "_pool", database)
    return database


class FakeStore:
    """
    Resolver-facing store with call counters.
    """

    def __init__(self, pokemon: list[schemas.Pokemon] = ()) -> None:
        self.records: dict[str, schemas.Pokemon] = {p.name: p for p in pokemon}
        self.type_relations: dict[str, dict[str, Any] | None] = {}
        self.find_calls: list[str] = []
        self.insert_calls: list[schemas.Pokemon] = []
        self.insert_error: Exception | None = None

    async def find_by_name(self, name: str) -> schemas.Pokemon | None:
        self.find_calls.append(name)
        await asyncio.sleep(0)
        return self.records.get(name)

    async def existing_type_names(self, names: list[str]) -> set[str]:
        return {n for n in names if n in self.type_relations}

    async def insert_pokemon(
        self,
        pokemon: schemas.Pokemon,
        *,
        type_relations: dict[str, dict[str, Any]] | None = None,
    ) -> int:
        self.insert_calls.append(pokemon)
        await asyncio.sleep(0)
        if self.insert_error is not None:
            raise self.insert_error
        self.records[pokemon.name] = pokemon
        for t in pokemon.types:
            self.type_relations.setdefault(t.name, (type_relations or {}).get(t.name))
        return len(self.records)


class FakeClient:
    """
    Resolver-facing PokeAPI client with call counters.
    """

    def __init__(
        self,
        pokemon: dict[str, dict[str, Any]] | None = None,
        types: dict[int, dict[str, Any]] | None = None,
    ) -> None:
        self.pokemon = dict(pokemon or {})
        self.types = dict(types or {})
        self.pokemon_calls: list[str] = []
        self.type_calls: list[int] = []
        self.error: Exception | None = None

    async def fetch_pokemon(self, name: str) -> pokeapi.RawPokemon:
        self.pokemon_calls.append(name)
        await asyncio.sleep(0.01)
        if self.error is not None:
            raise self.error
        if name not in self.pokemon:
            raise pokeapi.PokeAPINotFound(f"no pokemon {name}", status_code=404)
        return pokeapi.RawPokemon.model_validate(self.pokemon[name])

    async def fetch_type(self, type_id: int) -> pokeapi.RawType:
        self.type_calls.append(type_id)
        await asyncio.sleep(0)
        return pokeapi.RawType.model_validate(self.types[type_id])


@pytest.fixture
def pikachu_payload() -> dict[str, Any]:
    return json.loads(json.dumps(PIKACHU))
