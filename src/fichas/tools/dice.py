"""
Dice rolling tools for fichas.

Every check uses a single d12. The free dice tray can roll any dN.
Pass a seeded random.Random for reproducible results.
"""

import random

D12 = 12


def roll_die(sides: int, rng: random.Random | None = None) -> int:
    """Roll a single die with the given number of sides."""
    if sides <= 1:
        raise ValueError(f"A die needs at least 2 sides, got {sides}")
    return (rng or random).randint(1, sides)


def roll_d12(rng: random.Random | None = None) -> int:
    """Roll a single d12."""
    return roll_die(D12, rng)
