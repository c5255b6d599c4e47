"""
Derived statistics computed from base attributes.

Resistances use fixed constants (k1, k2, limb count). Earlier sheet
revisions disagreed on them; DEFAULT_CONSTANTS is the canonical set and is
pinned by tests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from ..state.schema import Attributes, Character, EntryRef, StatKey
from .rolls import aggregate, applicable_passives, floor_total


@dataclass(frozen=True)
class DerivedConstants:
    k1: int = 4  # Head and torso resistance multiplier
    k2: int = 3  # Limb resistance multiplier
    limb_count: int = 4  # Two arms, two legs


DEFAULT_CONSTANTS = DerivedConstants()


@dataclass
class DerivedStats:
    intentions: int
    movement_per_action: int
    base_defense: int
    inventory_capacity: int
    head_resistance: int
    torso_resistance: int
    limb_resistance: int
    total_hit_points: int


def _adjust(value: float | int, add_sum: float | int, mult_sum: float | int) -> int:
    value = value + add_sum
    if mult_sum:
        return floor_total(value * (1 + mult_sum))
    return floor_total(value)


def compute_derived_stats(
    attributes: Attributes | dict,
    constants: DerivedConstants = DEFAULT_CONSTANTS,
) -> DerivedStats:
    """
    Pure function of FOR, DEX and VIG.

    QI takes no part in any derived value.
    """
    if not isinstance(attributes, Attributes):
        attributes = Attributes.model_validate(attributes)
    strength = attributes.FOR
    dex = attributes.DEX
    vig = attributes.VIG

    head = (vig + 3) * constants.k1 + 6
    torso = (vig + strength + 3) * constants.k1 + 6
    limb = (vig + 3) * constants.k2 + 6

    return DerivedStats(
        intentions=1 + math.floor((vig + dex) / 2),
        movement_per_action=floor_total(dex + 2),
        base_defense=floor_total(6 + dex),
        inventory_capacity=floor_total((strength + vig) * 4),
        head_resistance=floor_total(head),
        torso_resistance=floor_total(torso),
        limb_resistance=floor_total(limb),
        total_hit_points=floor_total((head + torso + limb * constants.limb_count) * 2),
    )


def compute_adjusted_stats(
    character: Character,
    armed: Iterable[EntryRef] = (),
    constants: DerivedConstants = DEFAULT_CONSTANTS,
) -> DerivedStats:
    """
    Derived stats with armed passives tagged for the four adjustable values.

    Same aggregation as a roll (additive sum, then a 1 + mult factor) but no
    die and no active entry. Universal passives do not apply here, only
    entries tagged with the exact derived-stat key.
    """
    stats = compute_derived_stats(character.attributes, constants)
    armed = set(armed)

    adjustable = {
        StatKey.INTENTIONS: "intentions",
        StatKey.MOVEMENT: "movement_per_action",
        StatKey.DEFENSE: "base_defense",
        StatKey.INVENTORY: "inventory_capacity",
    }
    for key, attr in adjustable.items():
        entries = [
            entry for _, entry in applicable_passives(character, armed, key)
            if entry.attribute_base == key
        ]
        if not entries:
            continue
        add_sum, mult_sum = aggregate(entries)
        setattr(stats, attr, _adjust(getattr(stats, attr), add_sum, mult_sum))

    return stats
