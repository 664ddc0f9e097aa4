"""
Pokemon API endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from core import pokeapi

from . import normalizer, repository, schemas, service
from .dependencies import get_resolver

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/pokemon", response_model=schemas.PokemonResponse)
async def get_pokemon(
    name: str = Query(default="", max_length=100),
    resolver: service.PokemonResolver = Depends(get_resolver),
) -> schemas.PokemonResponse:
    if not normalizer.normalize_name(name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query parameter 'name' is required.",
        )

    try:
        pokemon = await resolver.resolve(name)
    except pokeapi.PokeAPIError as exc:
        logger.exception("pokemon_upstream_failed name=%s", name)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except repository.PersistenceError as exc:
        logger.exception("pokemon_persistence_failed name=%s", name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load or store pokemon.",
        ) from exc

    if pokemon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pokemon not found.")
    return normalizer.to_response(pokemon)


@router.get("/types/coverage", response_model=schemas.TypeCoverageResponse)
async def get_type_coverage(
    types: list[str] = Query(default=[]),
) -> schemas.TypeCoverageResponse:
    """
    Defensive coverage for a combination of stored types.
    """
    try:
        return await service.type_coverage(types)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except service.UnknownTypesError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except repository.PersistenceError as exc:
        logger.exception("type_coverage_failed types=%s", types)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load types.",
        ) from exc
