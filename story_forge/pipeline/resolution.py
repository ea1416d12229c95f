"""Resolving proposed actions: checks, narration, adventure logs, turn end."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from story_forge.checks import CheckOutcome, build_check, evaluate_check
from story_forge.engine import TurnEngine
from story_forge.llm import LLM, LLMError
from story_forge.models import Character, CheckType, DiceRoll, Turn, TurnAction, TurnCheck, World
from story_forge.prompts import PromptError, render_messages, world_context

logger = logging.getLogger(__name__)

EMOTION_SUCCESS = "satisfied"
EMOTION_FAILURE = "frustrated"


@dataclass(frozen=True)
class ResolvedCheck:
    action: TurnAction
    check: TurnCheck
    outcome: CheckOutcome
    narration: str


def fallback_narration(character_name: str, outcome: CheckOutcome) -> str:
    if outcome.critical_success:
        return f"Critical success! {character_name} pulls it off flawlessly, beyond all expectations."
    if outcome.critical_failure:
        return f"Critical failure... {character_name}'s attempt goes completely wrong and makes things worse."
    if outcome.success:
        return f"{character_name} succeeds."
    return f"{character_name}'s attempt fails."


async def narrate_result(
    action: TurnAction,
    check: TurnCheck,
    llm: LLM,
    world: World | None = None,
    templates: dict[str, dict[str, str]] | None = None,
) -> str:
    outcome = evaluate_check(check)
    if not llm.is_configured():
        return fallback_narration(action.character_name, outcome)

    context = {
        "character_name": action.character_name,
        "action": action.proposed_action,
        "total": outcome.total,
        "difficulty": outcome.difficulty,
        "success": outcome.success,
        "critical_success": outcome.critical_success,
        "critical_failure": outcome.critical_failure,
        "world": world_context(world),
    }
    try:
        text = await llm("narration", render_messages("narration", context, templates))
    except (LLMError, PromptError) as e:
        logger.error("narration failed for %s: %s", action.character_name, e)
        return fallback_narration(action.character_name, outcome)

    return text.strip() or fallback_narration(action.character_name, outcome)


async def resolve_action(
    engine: TurnEngine,
    action: TurnAction,
    character: Character,
    check_type: CheckType,
    difficulty: int,
    roll: DiceRoll,
    llm: LLM,
    *,
    skill_name: str | None = None,
    world: World | None = None,
    templates: dict[str, dict[str, str]] | None = None,
) -> ResolvedCheck:
    """Record a check for a pending action, narrate it and log it for the character."""
    check = build_check(action, character, check_type, difficulty, roll, skill_name)
    engine.add_pending_check(check)

    outcome = evaluate_check(check)
    narration = await narrate_result(action, check, llm, world, templates)
    engine.add_adventure_log(
        character_id=character.id,
        character_name=character.name,
        content=f"{action.proposed_action}\nResult: {narration}",
        emotion=EMOTION_SUCCESS if outcome.success else EMOTION_FAILURE,
    )
    return ResolvedCheck(action=action, check=check, outcome=outcome, narration=narration)


def end_turn(
    engine: TurnEngine,
    world_state: str,
    resolved: Sequence[ResolvedCheck] = (),
) -> Turn:
    """Finalize the turn from the pending checks and mark it on the timeline."""
    narrations = {r.check.id: r.narration for r in resolved}
    turn = engine.complete_turn(engine.results_from_checks(narrations), world_state)
    engine.add_timeline_event(f"Turn {turn.turn_number} ended", turn_number=turn.turn_number)
    return turn
