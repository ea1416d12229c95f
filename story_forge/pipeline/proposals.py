"""Action proposals — one TurnAction per active character for a scene.

Round flow:
  1. Start a new round on the engine (pending queues cleared, token taken).
  2. Pick the eligible characters in the session's participation order.
  3. Ask the language model for each character (concurrently or one by one).
  4. Await the answers in participation order and enqueue each with the
     round token; a character whose call failed is reported and skipped.

Without a configured model every character gets a deterministic placeholder
action, so the round always produces the same shape of output.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field

from story_forge.engine import TurnEngine
from story_forge.llm import LLM, LLMError
from story_forge.models import Character, Session, TurnAction, World
from story_forge.prompts import PromptError, build_action_context, render_messages
from story_forge.recovery import Empty, Structured, recover_json

logger = logging.getLogger(__name__)

PLACEHOLDER_ACTION = "{name} observes the surroundings, getting ready to act."
PLACEHOLDER_REASONING = "I need to get a sense of my surroundings first."
UNAVAILABLE_REASONING = "(reasoning unavailable)"
DEFAULT_SCENE = "The adventure is just beginning..."

_ACTION_KEYS = ("proposedAction", "proposed_action", "action")
_REASONING_KEYS = ("aiReasoning", "ai_reasoning", "reasoning")


@dataclass
class ProposalFailure:
    character_id: str
    character_name: str
    error: str


@dataclass
class ProposalRound:
    generation: int
    actions: list[TurnAction] = field(default_factory=list)
    failures: list[ProposalFailure] = field(default_factory=list)
    discarded: bool = False  # superseded by a newer round before it finished


def eligible_characters(session: Session, characters: Sequence[Character]) -> list[Character]:
    """Active participants, in the session's participation order."""
    by_id = {c.id: c for c in characters}
    eligible = []
    for char_id in session.characters:
        character = by_id.get(char_id)
        if character is None:
            logger.warning("session %s lists unknown character %s", session.id, char_id)
            continue
        if character.status == "active":
            eligible.append(character)
    return eligible


def recent_event_summaries(session: Session, limit: int = 5) -> list[str]:
    if limit <= 0:
        return []
    return [f"{log.character_name}: {log.content}" for log in session.adventure_logs[-limit:]]


def placeholder_action(character: Character, reasoning: str = PLACEHOLDER_REASONING) -> TurnAction:
    return TurnAction(
        character_id=character.id,
        character_name=character.name,
        proposed_action=PLACEHOLDER_ACTION.format(name=character.name),
        ai_reasoning=reasoning,
    )


def _first_text(data: dict, keys: Sequence[str]) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def action_from_response(character: Character, text: str) -> TurnAction:
    """Build an action from raw model output, falling back to the text itself."""
    outcome = recover_json(text)

    if isinstance(outcome, Structured):
        proposed = _first_text(outcome.value, _ACTION_KEYS)
        if proposed:
            return TurnAction(
                character_id=character.id,
                character_name=character.name,
                proposed_action=proposed,
                ai_reasoning=_first_text(outcome.value, _REASONING_KEYS),
            )
        logger.warning("proposal for %s has no action field: %r", character.name, outcome.value)

    if isinstance(outcome, Empty):
        logger.warning("empty proposal for %s, using placeholder", character.name)
        return placeholder_action(character, reasoning=UNAVAILABLE_REASONING)

    logger.warning("could not parse proposal for %s, using raw text", character.name)
    return TurnAction(
        character_id=character.id,
        character_name=character.name,
        proposed_action=text.strip(),
        ai_reasoning=UNAVAILABLE_REASONING,
    )


async def propose_action(
    character: Character,
    world: World | None,
    scene: str,
    recent_events: Sequence[str],
    llm: LLM,
    templates: dict[str, dict[str, str]] | None = None,
) -> TurnAction:
    if not llm.is_configured():
        logger.info("llm not configured, placeholder action for %s", character.name)
        return placeholder_action(character)

    context = build_action_context(character, world, scene, list(recent_events))
    messages = render_messages("action_proposal", context, templates)
    text = await llm("action_proposal", messages)
    return action_from_response(character, text)


async def propose_actions(
    engine: TurnEngine,
    characters: Sequence[Character],
    world: World | None,
    scene: str,
    llm: LLM,
    *,
    recent_events: Sequence[str] | None = None,
    concurrent: bool = True,
    templates: dict[str, dict[str, str]] | None = None,
    default_scene: str = DEFAULT_SCENE,
) -> ProposalRound:
    """Run one proposal round and enqueue the actions on the engine."""
    scene = scene.strip() or default_scene
    if recent_events is None:
        recent_events = recent_event_summaries(engine.session)

    generation = engine.start_round()
    result = ProposalRound(generation=generation)
    cast = eligible_characters(engine.session, characters)
    logger.info("proposal round %d for %d characters", generation, len(cast))

    def _request(character: Character) -> Awaitable[TurnAction]:
        return propose_action(character, world, scene, recent_events, llm, templates)

    if concurrent:
        pending = [asyncio.ensure_future(_request(c)) for c in cast]
    else:
        pending = []

    try:
        for i, character in enumerate(cast):
            if result.discarded and not concurrent:
                break
            try:
                # awaiting in list order buffers early finishers until their turn
                action = await (pending[i] if concurrent else _request(character))
            except (LLMError, PromptError) as e:
                logger.error("proposal failed for %s: %s", character.name, e)
                result.failures.append(ProposalFailure(character.id, character.name, str(e)))
                continue

            # requests already in flight may finish; their actions are dropped
            if result.discarded or not engine.add_pending_action(action, generation=generation):
                result.discarded = True
                continue
            result.actions.append(action)
    finally:
        for task in pending:
            if not task.done():
                task.cancel()

    return result
