"""Turning a dice roll into a recorded check and a check into a result."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from story_forge.dice import (
    get_attribute_modifier,
    is_check_successful,
    is_critical_failure,
    is_critical_success,
)
from story_forge.models import (
    ATTRIBUTE_NAMES,
    Character,
    CheckType,
    DiceRoll,
    TurnAction,
    TurnCheck,
    TurnResult,
)


@dataclass(frozen=True)
class CheckOutcome:
    total: int
    difficulty: int
    success: bool
    critical_success: bool
    critical_failure: bool


def check_modifier(character: Character, check_type: CheckType, skill_name: str | None = None) -> int:
    """The character's own bonus for a check.

    Attribute checks use the ability modifier, skill checks the skill's
    modifier (0 if the character lacks the skill). Attack and save checks
    carry no character bonus here; the GM folds those into the roll.
    """
    if check_type in ATTRIBUTE_NAMES:
        return get_attribute_modifier(getattr(character.attributes, check_type))
    if check_type == "skill" and skill_name:
        return character.skills.lookup(skill_name) or 0
    return 0


def build_check(
    action: TurnAction,
    character: Character,
    check_type: CheckType,
    difficulty: int,
    roll: DiceRoll,
    skill_name: str | None = None,
) -> TurnCheck:
    """Record a roll against an action, adding the character's modifier to the roll."""
    bonus = check_modifier(character, check_type, skill_name)
    final_roll = roll.model_copy(update={"modifier": roll.modifier + bonus})
    return TurnCheck(
        action_id=action.id,
        check_type=check_type,
        skill_name=skill_name if check_type == "skill" else None,
        difficulty=difficulty,
        dice_roll=final_roll,
    )


def evaluate_check(check: TurnCheck) -> CheckOutcome:
    roll = check.dice_roll
    return CheckOutcome(
        total=roll.total,
        difficulty=check.difficulty,
        success=is_check_successful(roll.total, check.difficulty),
        critical_success=is_critical_success(roll.results, roll.type),
        critical_failure=is_critical_failure(roll.results, roll.type),
    )


def resolve_result(
    check: TurnCheck, narration: str = "", world_changes: Iterable[str] = ()
) -> TurnResult:
    return TurnResult(
        check_id=check.id,
        success=evaluate_check(check).success,
        narration=narration,
        world_changes=tuple(world_changes),
    )
