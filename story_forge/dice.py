"""Dice rolling and check arithmetic.

All rolls draw from one process-wide random source; call seed() to make a
test or a demo reproducible.

Outcome policy (kept as named constants so tests can pin it down):
  ties succeed                 total >= difficulty passes
  critical success             d20 only, ANY die shows a natural 20
  critical failure             d20 only, EVERY die shows a natural 1
  criticals are cosmetic       they never flip the pass/fail result
"""

from __future__ import annotations

import random
from collections.abc import Sequence

from story_forge.models import DIE_FACES, DiceRoll

CRITICAL_DIE = "d20"
CRITICAL_SUCCESS_RULE = "any"
CRITICAL_FAILURE_RULE = "all"
TIES_SUCCEED = True
CRITICALS_OVERRIDE_OUTCOME = False

_rng = random.Random()


def seed(value: int | None) -> None:
    """Reseed the shared random source."""
    _rng.seed(value)


def faces(die: str) -> int:
    try:
        return DIE_FACES[die]
    except KeyError:
        raise ValueError(f"Unknown die type {die!r}; expected one of {sorted(DIE_FACES)}") from None


def roll_dice(die: str) -> int:
    return _rng.randint(1, faces(die))


def roll_dice_set(die: str, count: int = 1, modifier: int = 0) -> DiceRoll:
    if count < 1:
        raise ValueError(f"Dice count must be at least 1, got {count}")
    results = [roll_dice(die) for _ in range(count)]
    return DiceRoll(type=die, count=count, modifier=modifier, results=results)


def is_check_successful(total: int, difficulty: int) -> bool:
    if TIES_SUCCEED:
        return total >= difficulty
    return total > difficulty


def is_critical_success(results: Sequence[int], die: str) -> bool:
    top = faces(die)
    if die != CRITICAL_DIE:
        return False
    return any(r == top for r in results)


def is_critical_failure(results: Sequence[int], die: str) -> bool:
    faces(die)
    if die != CRITICAL_DIE:
        return False
    # all() of an empty sequence is True; no dice means no fumble
    return bool(results) and all(r == 1 for r in results)


def get_attribute_modifier(score: int) -> int:
    """Standard ability-score modifier: 10 → +0, 18 → +4, 3 → -4."""
    return (score - 10) // 2


def format_modifier(modifier: int) -> str:
    return f"+{modifier}" if modifier >= 0 else str(modifier)


def format_dice_roll(roll: DiceRoll) -> str:
    """Render a roll as e.g. "2d6 + 3 (4 + 5) = 12" or "1d20 = 17"."""
    notation = f"{roll.count}{roll.type}"
    if roll.modifier > 0:
        notation += f" + {roll.modifier}"
    elif roll.modifier < 0:
        notation += f" - {abs(roll.modifier)}"
    if len(roll.results) > 1:
        notation += " (" + " + ".join(str(r) for r in roll.results) + ")"
    return f"{notation} = {roll.total}"
