"""
Pokemon dependencies for FastAPI routes.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from .service import PokemonResolver


def get_resolver(request: Request) -> PokemonResolver:
    resolver = getattr(request.app.state, "pokemon_resolver", None)
    if resolver is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pokemon resolver is not initialized.",
        )
    return resolver
