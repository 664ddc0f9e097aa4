"""
Defensive type coverage from stored damage relations.
"""

from __future__ import annotations

from typing import Any, Mapping

from . import schemas

ATTACKING_TYPES = (
    "normal",
    "fighting",
    "flying",
    "poison",
    "ground",
    "rock",
    "bug",
    "ghost",
    "steel",
    "fire",
    "water",
    "grass",
    "electric",
    "psychic",
    "ice",
    "dragon",
    "dark",
    "fairy",
)

_MULTIPLIERS = (
    ("double_damage_from", 2.0),
    ("half_damage_from", 0.5),
    ("no_damage_from", 0.0),
)


def effectiveness(relations: list[Mapping[str, Any] | None]) -> dict[str, float]:
    """
    Multiply incoming damage per attacking type across every defending type.
    """
    result = {name: 1.0 for name in ATTACKING_TYPES}
    for rel in relations:
        if not rel:
            continue
        for field, factor in _MULTIPLIERS:
            for attacker in rel.get(field) or []:
                if attacker in result:
                    result[attacker] *= factor
    return result


def type_coverage(
    type_names: list[str],
    relations: list[Mapping[str, Any] | None],
) -> schemas.TypeCoverageResponse:
    coverage = schemas.TypeCoverageResponse(types=list(type_names))
    for attacker, value in effectiveness(relations).items():
        if value == 0:
            coverage.immunities[attacker] = value
        elif value == 1:
            coverage.neutral[attacker] = value
        elif value < 1:
            coverage.resistances[attacker] = value
        else:
            coverage.weaknesses[attacker] = value
    return coverage
