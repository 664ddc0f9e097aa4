"""
Pokemon service (orchestration).

This is where we:
- resolve a name through cache -> Postgres -> PokeAPI, in that order
- persist and cache whatever PokeAPI returns
- compute type coverage from stored types
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from typing import Any, Protocol

from core import pokeapi
from core.cache import DEFAULT_SWEEP_INTERVAL_S, DEFAULT_TTL_S, TTLCache

from . import coverage, normalizer, repository, schemas

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def cache_ttl_s() -> int:
    return _env_int("POKEMON_CACHE_TTL_S", DEFAULT_TTL_S)


def cache_sweep_interval_s() -> int:
    return _env_int("POKEMON_CACHE_SWEEP_S", DEFAULT_SWEEP_INTERVAL_S)


class PokemonStore(Protocol):
    async def find_by_name(self, name: str) -> schemas.Pokemon | None: ...

    async def existing_type_names(self, names: list[str]) -> set[str]: ...

    async def insert_pokemon(
        self,
        pokemon: schemas.Pokemon,
        *,
        type_relations: dict[str, dict[str, Any]] | None = None,
    ) -> int: ...


class PokemonSource(Protocol):
    async def fetch_pokemon(self, name: str) -> pokeapi.RawPokemon: ...

    async def fetch_type(self, type_id: int) -> pokeapi.RawType: ...


class PokemonResolver:
    """
    Read-through resolution of a pokemon by name.

    Concurrent misses for the same name share one in-flight load, so a
    name costs at most one PokeAPI fetch and one insert per miss.
    """

    def __init__(
        self,
        *,
        cache: TTLCache[schemas.Pokemon],
        client: PokemonSource,
        store: PokemonStore = repository,
    ) -> None:
        self.cache = cache
        self.client = client
        self.store = store
        self._inflight: dict[str, asyncio.Future[schemas.Pokemon | None]] = {}

    async def resolve(self, name: str) -> schemas.Pokemon | None:
        """
        Return the pokemon called `name`, or None when PokeAPI does not know it.

        Raises PokeAPIError or PersistenceError when a tier fails; nothing is
        cached in that case.
        """
        key = normalizer.normalize_name(name)
        if not key:
            raise ValueError("Pokemon name is empty.")

        cached, found = self.cache.get(key)
        if found:
            logger.info("pokemon_resolved name=%s source=cache", key)
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget, key))
        else:
            logger.debug("pokemon_inflight_join name=%s", key)
        # A cancelled caller must not cancel the load other callers wait on.
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark a failure as retrieved even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()

    async def _load(self, key: str) -> schemas.Pokemon | None:
        pokemon = await self.store.find_by_name(key)
        if pokemon is not None:
            self.cache.set(key, pokemon)
            logger.info("pokemon_resolved name=%s source=store", key)
            return pokemon

        try:
            raw = await self.client.fetch_pokemon(key)
        except pokeapi.PokeAPINotFound:
            logger.info("pokemon_not_found name=%s", key)
            return None

        pokemon = normalizer.to_pokemon(raw)

        # Lookups by id or alias land on an already stored canonical name.
        stored = None
        if pokemon.name != key:
            stored = await self.store.find_by_name(pokemon.name)

        if stored is None:
            type_relations = await self._missing_type_relations(pokemon)
            await self.store.insert_pokemon(pokemon, type_relations=type_relations)
        else:
            pokemon = stored

        self.cache.set(key, pokemon)
        logger.info("pokemon_resolved name=%s source=pokeapi pokeapi_id=%s", key, pokemon.id)
        return pokemon

    async def _missing_type_relations(self, pokemon: schemas.Pokemon) -> dict[str, dict[str, Any]]:
        """
        Fetch damage relations for types the store has not seen yet.
        """
        names = [t.name for t in pokemon.types]
        existing = await self.store.existing_type_names(names)
        missing = [t for t in pokemon.types if t.name not in existing]
        if not missing:
            return {}

        type_ids: list[int] = []
        for pokemon_type in missing:
            try:
                type_ids.append(normalizer.resource_id(pokemon_type.url))
            except ValueError as exc:
                raise pokeapi.PokeAPIError(
                    f"Type {pokemon_type.name!r} has no usable PokeAPI url: {pokemon_type.url!r}"
                ) from exc

        details = await asyncio.gather(*(self.client.fetch_type(type_id) for type_id in type_ids))
        return {
            pokemon_type.name: normalizer.damage_relations_to_dict(detail.damage_relations)
            for pokemon_type, detail in zip(missing, details)
        }


class UnknownTypesError(LookupError):
    def __init__(self, names: list[str]) -> None:
        super().__init__(f"Unknown types: {', '.join(names)}")
        self.names = names


async def type_coverage(type_names: list[str], *, store: Any = repository) -> schemas.TypeCoverageResponse:
    names: list[str] = []
    for raw in type_names:
        name = normalizer.normalize_name(raw)
        if name and name not in names:
            names.append(name)
    if not names:
        raise ValueError("At least one type is required.")

    relations = await store.get_type_relations(names)
    unknown = [n for n in names if n not in relations]
    if unknown:
        raise UnknownTypesError(unknown)

    return coverage.type_coverage(names, [relations[n] for n in names])
