"""Tests for story_forge.pipeline.resolution — checks, narration, turn end."""

import pytest

from story_forge.checks import CheckOutcome
from story_forge.engine import DuplicateCheckError
from story_forge.llm import LLMError
from story_forge.models import DiceRoll, TurnAction
from story_forge.pipeline.resolution import (
    EMOTION_FAILURE,
    EMOTION_SUCCESS,
    end_turn,
    fallback_narration,
    resolve_action,
)


def _d20(value: int) -> DiceRoll:
    return DiceRoll(type="d20", count=1, results=(value,))


@pytest.fixture
def pending(engine, gareth, elena):
    a1 = TurnAction(character_id=gareth.id, character_name="Gareth", proposed_action="Force the gate")
    a2 = TurnAction(character_id=elena.id, character_name="Elena", proposed_action="Calm the horses")
    engine.add_pending_action(a1)
    engine.add_pending_action(a2)
    return a1, a2


def _outcome(success=False, crit_success=False, crit_failure=False) -> CheckOutcome:
    return CheckOutcome(
        total=10, difficulty=10, success=success,
        critical_success=crit_success, critical_failure=crit_failure,
    )


def test_fallback_narration_variants():
    assert fallback_narration("Gareth", _outcome(success=True)) == "Gareth succeeds."
    assert fallback_narration("Gareth", _outcome()) == "Gareth's attempt fails."
    assert fallback_narration("Gareth", _outcome(success=True, crit_success=True)).startswith("Critical success!")
    assert fallback_narration("Gareth", _outcome(crit_failure=True)).startswith("Critical failure...")


async def test_resolve_action_with_narration(engine, pending, gareth, world, stub_llm):
    a1, _ = pending
    llm = stub_llm({"narration": ["The hinges scream and give way."]})

    resolved = await resolve_action(engine, a1, gareth, "strength", 15, _d20(13), llm, world=world)

    assert resolved.check.dice_roll.total == 16
    assert resolved.outcome.success is True
    assert resolved.narration == "The hinges scream and give way."
    assert engine.check_for(a1.id) == resolved.check

    log = engine.session.adventure_logs[-1]
    assert log.character_id == gareth.id
    assert log.content == "Force the gate\nResult: The hinges scream and give way."
    assert log.emotion == EMOTION_SUCCESS
    assert log.turn_number == 1

    system, user = llm.calls[0][1]
    assert "16 vs difficulty 15" in system.content
    assert "Outcome: success" in system.content
    assert user.content == "Gareth attempts: Force the gate"


async def test_unconfigured_llm_uses_fallback(engine, pending, gareth, stub_llm):
    a1, _ = pending
    resolved = await resolve_action(engine, a1, gareth, "attack", 15, _d20(4), stub_llm(configured=False))
    assert resolved.narration == "Gareth's attempt fails."
    assert engine.session.adventure_logs[-1].emotion == EMOTION_FAILURE


async def test_llm_error_uses_fallback(engine, pending, gareth, stub_llm):
    a1, _ = pending
    llm = stub_llm({"narration": [LLMError("timeout")]})
    resolved = await resolve_action(engine, a1, gareth, "attack", 10, _d20(20), llm)
    assert resolved.narration.startswith("Critical success!")


async def test_blank_narration_uses_fallback(engine, pending, gareth, stub_llm):
    a1, _ = pending
    llm = stub_llm({"narration": ["   "]})
    resolved = await resolve_action(engine, a1, gareth, "attack", 10, _d20(12), llm)
    assert resolved.narration == "Gareth succeeds."


async def test_second_resolution_of_same_action_rejected(engine, pending, gareth, stub_llm):
    a1, _ = pending
    llm = stub_llm(configured=False)
    await resolve_action(engine, a1, gareth, "attack", 10, _d20(12), llm)
    with pytest.raises(DuplicateCheckError):
        await resolve_action(engine, a1, gareth, "attack", 10, _d20(3), llm)
    assert len(engine.session.adventure_logs) == 1


async def test_skill_check_uses_skill_modifier(engine, pending, gareth, stub_llm):
    a1, _ = pending
    resolved = await resolve_action(
        engine, a1, gareth, "skill", 10, _d20(5), stub_llm(configured=False),
        skill_name="Intimidation",
    )
    assert resolved.check.skill_name == "Intimidation"
    assert resolved.check.dice_roll.total == 7


async def test_end_turn(engine, pending, gareth, elena, stub_llm):
    a1, a2 = pending
    llm = stub_llm(configured=False)
    r1 = await resolve_action(engine, a1, gareth, "attack", 15, _d20(18), llm)
    r2 = await resolve_action(engine, a2, elena, "attack", 15, _d20(9), llm)

    turn = end_turn(engine, "The gate is open; the horses bolt.", [r1, r2])

    assert turn.turn_number == 1
    assert [r.success for r in turn.results] == [True, False]
    assert [r.narration for r in turn.results] == [r1.narration, r2.narration]
    assert engine.session.current_turn == 1
    assert engine.session.timeline[-1].event == "Turn 1 ended"
    assert engine.session.timeline[-1].turn_number == 1
    assert engine.pending_actions == ()
