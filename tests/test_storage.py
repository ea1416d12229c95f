import os
from unittest.mock import patch

import pytest

from story_forge.models import Character, MainQuest, Session, World


# ── Worlds ───────────────────────────────────────────────────


def test_save_and_get_world(storage):
    world = storage.save_world(World(name="Dragon's Hollow", background="Smoke."))
    loaded = storage.get_world(world.id)
    assert loaded == world


def test_get_missing_world(storage):
    assert storage.get_world("nope") is None


def test_save_world_refreshes_updated_at(storage):
    world = World(name="Old")
    saved = storage.save_world(world)
    assert saved.updated_at >= world.updated_at


def test_list_worlds_most_recent_first(storage):
    first = storage.save_world(World(name="First"))
    second = storage.save_world(World(name="Second"))
    assert [w.id for w in storage.list_worlds()] == [second.id, first.id]


def test_delete_world_cascades(storage):
    world = storage.save_world(World(name="Doomed"))
    other = storage.save_world(World(name="Safe"))
    doomed_char = Character(world_id=world.id, name="Ash")
    safe_char = Character(world_id=other.id, name="Oak")
    storage.save_character(doomed_char)
    storage.save_character(safe_char)
    storage.save_session(Session(world_id=world.id, name="Run"))
    storage.save_main_quest(MainQuest(world_id=world.id, title="End"))

    storage.delete_world(world.id)

    assert storage.get_world(world.id) is None
    assert storage.get_characters_by_world(world.id) == []
    assert storage.get_sessions_by_world(world.id) == []
    assert storage.get_main_quest_by_world(world.id) is None
    assert storage.get_character(safe_char.id) == safe_char


# ── Characters ───────────────────────────────────────────────


def test_characters_by_world(storage):
    a = Character(world_id="w1", name="A")
    b = Character(world_id="w1", name="B")
    storage.save_character(a)
    storage.save_character(b)
    storage.save_character(Character(world_id="w2", name="C"))
    assert {c.name for c in storage.get_characters_by_world("w1")} == {"A", "B"}


def test_character_upsert(storage):
    c = Character(world_id="w1", name="A")
    storage.save_character(c)
    storage.save_character(c.model_copy(update={"current_hp": 3}))
    assert storage.get_character(c.id).current_hp == 3
    assert len(storage.get_characters_by_world("w1")) == 1


def test_delete_character(storage):
    c = Character(world_id="w1", name="A")
    storage.save_character(c)
    storage.delete_character(c.id)
    assert storage.get_character(c.id) is None


# ── Sessions ─────────────────────────────────────────────────


def test_session_roundtrip(storage, session):
    storage.save_session(session)
    assert storage.get_session(session.id) == session


def test_failed_session_write_keeps_previous_record(storage, session):
    storage.save_session(session)
    changed = session.model_copy(update={"current_turn": 4})

    with patch("story_forge.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            storage.save_session(changed)

    assert storage.get_session(session.id).current_turn == 0
    leftovers = [p for p in os.listdir(storage.base_path / "sessions") if p.endswith(".tmp")]
    assert leftovers == []


def test_delete_session(storage, session):
    storage.save_session(session)
    storage.delete_session(session.id)
    assert storage.get_session(session.id) is None


# ── Main quests ──────────────────────────────────────────────


def test_main_quest_one_per_world(storage):
    storage.save_main_quest(MainQuest(world_id="w1", title="First"))
    storage.save_main_quest(MainQuest(world_id="w1", title="Second"))
    assert storage.get_main_quest_by_world("w1").title == "Second"
