"""Tests for the terminal launcher — a refused turn must not end the session."""

import pytest

import main
from main import finish_turn
from story_forge.config import get_config
from story_forge.engine import DuplicateCheckError
from story_forge.models import DiceRoll, TurnAction, TurnCheck


def _action(character) -> TurnAction:
    return TurnAction(character_id=character.id, character_name=character.name, proposed_action="Wait")


def _check(action: TurnAction) -> TurnCheck:
    return TurnCheck(
        action_id=action.id,
        check_type="attack",
        difficulty=10,
        dice_roll=DiceRoll(type="d20", count=1, results=(12,)),
    )


@pytest.fixture(autouse=True)
def no_llm_env(monkeypatch):
    for name in ("STORY_FORGE_LLM_URL", "STORY_FORGE_LLM_API_KEY", "STORY_FORGE_LLM_MODEL",
                 "STORY_FORGE_LLM_FORMAT"):
        monkeypatch.delenv(name, raising=False)


def test_finish_turn_with_unchecked_action_keeps_session(engine, gareth, elena, capsys):
    a1, a2 = _action(gareth), _action(elena)
    engine.add_pending_action(a1)
    engine.add_pending_action(a2)
    engine.add_pending_check(_check(a1))

    assert finish_turn(engine, "Dusk.", []) is None

    assert "turn not ended" in capsys.readouterr().out
    assert engine.session.current_turn == 0
    assert engine.session.turns == []
    assert engine.pending_actions == (a1, a2)


def test_finish_turn_when_every_action_checked(engine, gareth, capsys):
    a1 = _action(gareth)
    engine.add_pending_action(a1)
    engine.add_pending_check(_check(a1))

    turn = finish_turn(engine, "Dusk.", [])

    assert turn.turn_number == 1
    assert "Turn 1 ended" in capsys.readouterr().out
    assert engine.session.current_turn == 1


async def test_play_survives_a_skipped_action(storage, data_dir, world, gareth, elena, session,
                                              monkeypatch, capsys):
    storage.save_world(world)
    storage.save_character(gareth)
    storage.save_character(elena)
    storage.save_session(session)

    real_resolve = main.resolve_action

    async def resolve_all_but_elena(engine, action, *args, **kwargs):
        if action.character_name == "Elena":
            raise DuplicateCheckError(f"Action {action.id} already has a check")
        return await real_resolve(engine, action, *args, **kwargs)

    # ideas, scene, Gareth's check and DC, Elena's check and DC, then quit
    answers = iter(["?", "Dusk.", "strength", "10", "wisdom", "10", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    monkeypatch.setattr(main, "resolve_action", resolve_all_but_elena)

    await main.play(storage, session, get_config(data_dir), default_dc=12)

    out = capsys.readouterr().out
    assert "no suggestions available" in out
    assert "already has a check" in out
    assert "turn not ended" in out
    assert storage.get_session(session.id).current_turn == 0
