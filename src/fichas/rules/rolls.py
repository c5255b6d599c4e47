"""
Roll resolution as pure functions.

One d12, plus the mental bonus, plus the attribute value, plus every
applicable modifier. Additive modifiers are summed first, multiplicative
ones are applied as a single (1 + sum) factor, and a natural 12 multiplies
the result by 1.5 afterwards.

The player-facing total and the GM success check are separate epilogues:
the mental=5 difficulty adjustment only exists in evaluate_success().
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ..state.schema import (
    Character,
    Collection,
    Entry,
    EntryRef,
    EntryType,
    ModMode,
    StatKey,
)
from ..tools.dice import D12, roll_d12

logger = logging.getLogger(__name__)


# Only these mental states carry an effect on the dice pool
MENTAL_DICE_BONUS: dict[int, int] = {
    4: 5,
    -8: -5,
    -9: -5,
}

# GM-only: lowers the difficulty threshold, never the rolled total
MENTAL_DT_BONUS: dict[int, int] = {
    5: -3,
}

CRITICAL_MULTIPLIER = 1.5


class Grade(str, Enum):
    """Difficulty grades for GM-moderated checks."""
    G0 = "G0"
    G1 = "G1"
    G2 = "G2"
    G3 = "G3"
    G4 = "G4"
    G5 = "G5"
    G6 = "G6"


DT_BY_GRADE: dict[Grade, int] = {
    Grade.G0: 6,
    Grade.G1: 9,
    Grade.G2: 12,
    Grade.G3: 15,
    Grade.G4: 21,
    Grade.G5: 27,
    Grade.G6: 33,
}


class ContributionKind(str, Enum):
    ADD = "add"
    MULT = "mult"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Contribution:
    """One named line of a roll breakdown."""
    label: str
    value: float | int
    kind: ContributionKind = ContributionKind.ADD


@dataclass
class RollResult:
    """Result of a d12 check."""
    die: int
    contributions: list[Contribution]  # Non-zero lines, in display order
    add_sum: float | int  # Modifier entries only, not die/mental/attribute
    mult_factor: float | int  # 1 + sum of MULT values
    critical: bool
    total: int
    subtotal: float | int = 0
    target: str | None = None  # Attribute key or entry name that was rolled
    passives_applied: list[EntryRef] = field(default_factory=list)

    @property
    def mult_sum(self) -> float | int:
        return self.mult_factor - 1


@dataclass
class GMCheckResult:
    """A roll compared against a graded difficulty threshold."""
    roll: RollResult
    grade: Grade
    difficulty: int
    dt_bonus: int
    success: bool

    @property
    def threshold(self) -> int:
        return self.difficulty + self.dt_bonus

    @property
    def margin(self) -> int:
        return self.roll.total - self.threshold


def mental_dice_bonus(mental: int) -> int:
    """Bonus the mental state adds to the dice pool."""
    return MENTAL_DICE_BONUS.get(mental, 0)


def mental_dt_bonus(mental: int) -> int:
    """Adjustment the mental state applies to a GM difficulty threshold."""
    return MENTAL_DT_BONUS.get(mental, 0)


def floor_total(value: float | int) -> int:
    """Floor, ignoring float noise such as 20 * 1.15 = 22.999999999999996."""
    return math.floor(round(value, 9))


def is_applicable(entry: Entry, target: StatKey | None) -> bool:
    """
    Whether an armed entry affects a roll on target.

    Universal passives (no attributeBase) apply everywhere; the rest only
    apply to rolls on exactly their own key.
    """
    if entry.type is not EntryType.PASSIVE:
        return False
    return entry.attribute_base is None or entry.attribute_base == target


def applicable_passives(
    character: Character,
    armed: Iterable[EntryRef],
    target: StatKey | None,
) -> list[tuple[EntryRef, Entry]]:
    """
    Armed passive entries that apply to target, in sheet order.

    References to missing or ACTIVE entries are ignored.
    """
    armed = set(armed)
    found = []
    for collection in Collection:
        for entry_id, entry in character.collection(collection).items():
            ref = EntryRef(collection, entry_id)
            if ref in armed and is_applicable(entry, target):
                found.append((ref, entry))
    return found


def aggregate(entries: Iterable[Entry]) -> tuple[float | int, float | int]:
    """Sum ADD values and MULT values separately."""
    add_sum = 0
    mult_sum = 0
    for entry in entries:
        if entry.mod_mode is ModMode.ADD:
            add_sum += entry.effective_value
        elif entry.mod_mode is ModMode.MULT:
            mult_sum += entry.effective_value
    return add_sum, mult_sum


def _entry_line(entry: Entry) -> Contribution:
    kind = ContributionKind.MULT if entry.mod_mode is ModMode.MULT else ContributionKind.ADD
    return Contribution(entry.name, entry.effective_value, kind)


def _resolve(
    die: int,
    character: Character,
    target: StatKey | None,
    armed: Iterable[EntryRef],
    active: Entry | None = None,
    label: str | None = None,
) -> RollResult:
    """Shared pipeline for attribute and entry rolls."""
    bonus = mental_dice_bonus(character.mental)
    attribute_value = character.attributes.value_of(target)
    passives = applicable_passives(character, armed, target)

    modifiers = [entry for _, entry in passives]
    if active is not None and active.type is EntryType.ACTIVE:
        modifiers.insert(0, active)
    add_sum, mult_sum = aggregate(modifiers)

    contributions: list[Contribution] = []
    if bonus:
        contributions.append(Contribution("Mental", bonus))
    if attribute_value:
        contributions.append(Contribution(f"Attribute {target.value}", attribute_value))
    for entry in modifiers:
        if entry.has_effect:
            contributions.append(_entry_line(entry))
    if mult_sum:
        contributions.append(Contribution("Mult total", mult_sum, ContributionKind.MULT))

    subtotal = die + bonus + attribute_value + add_sum
    if mult_sum:
        total = floor_total(subtotal * (1 + mult_sum))
    else:
        total = floor_total(subtotal)

    # Critical compounds after the multiplicative step
    critical = die == D12
    if critical:
        total = floor_total(total * CRITICAL_MULTIPLIER)
        contributions.append(
            Contribution("Critical", CRITICAL_MULTIPLIER, ContributionKind.CRITICAL)
        )

    logger.debug(
        "roll %s: die=%d subtotal=%s mult=%s critical=%s total=%d",
        label, die, subtotal, mult_sum, critical, total,
    )

    return RollResult(
        die=die,
        contributions=contributions,
        add_sum=add_sum,
        mult_factor=1 + mult_sum,
        critical=critical,
        total=total,
        subtotal=subtotal,
        target=label,
        passives_applied=[ref for ref, _ in passives],
    )


def roll_attribute(
    attr_key: StatKey | str,
    character: Character,
    armed: Iterable[EntryRef] = (),
    rng: random.Random | None = None,
) -> RollResult:
    """
    Roll a d12 check on one of the four attributes.

    Args:
        attr_key: QI, FOR, DEX or VIG
        character: Sheet snapshot
        armed: Passive entries the player has armed for this roll
        rng: Optional seeded generator

    Returns:
        RollResult with the breakdown and final total
    """
    key = StatKey(attr_key)
    if not key.is_attribute:
        raise ValueError(f"{key.value} is not a rollable attribute")
    return _resolve(roll_d12(rng), character, key, armed, label=key.value)


def roll_entry(
    entry: Entry,
    character: Character,
    armed: Iterable[EntryRef] = (),
    rng: random.Random | None = None,
) -> RollResult:
    """
    Roll a d12 check driven by an entry.

    The entry's attributeBase supplies the attribute term and the passive
    filter. An ACTIVE entry also adds its own modifier; a PASSIVE entry
    only counts when it is armed, like any other passive.
    """
    return _resolve(
        roll_d12(rng),
        character,
        entry.attribute_base,
        armed,
        active=entry,
        label=entry.name,
    )


def difficulty_for(grade: Grade | str) -> int:
    """Difficulty threshold for a grade label."""
    try:
        return DT_BY_GRADE[Grade(grade)]
    except ValueError:
        raise ValueError(f"Unknown grade: {grade!r}") from None


def evaluate_success(total: int, grade: Grade | str, mental: int) -> bool:
    """GM-side success check: total against the graded threshold."""
    return total >= difficulty_for(grade) + mental_dt_bonus(mental)


def check_against_grade(
    roll: RollResult,
    grade: Grade | str,
    mental: int,
) -> GMCheckResult:
    """Run the GM epilogue on a finished roll without touching its total."""
    difficulty = difficulty_for(grade)
    grade = Grade(grade)
    return GMCheckResult(
        roll=roll,
        grade=grade,
        difficulty=difficulty,
        dt_bonus=mental_dt_bonus(mental),
        success=evaluate_success(roll.total, grade, mental),
    )
