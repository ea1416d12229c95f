"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM — reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      config.json               ← app settings (see story_forge.config)
      worlds/{world_id}.json
      characters/{id}.json      ← each carries its world_id
      sessions/{id}.json        ← turns, timeline and logs live inside
      main_quests/{world_id}.json

Every write goes to a temporary file that is then renamed over the target,
so a reader sees either the old record or the new one, never a half-written
file. A session's turns and current_turn are always written together.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from story_forge.models import Character, MainQuest, Session, World, utcnow

logger = logging.getLogger(__name__)


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._worlds = base_path / "worlds"
        self._characters = base_path / "characters"
        self._sessions = base_path / "sessions"
        self._quests = base_path / "main_quests"
        for d in (self._worlds, self._characters, self._sessions, self._quests):
            d.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _write_text(self, path: Path, text: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _load_all(self, directory: Path, model: type) -> list:
        return [
            model.model_validate_json(p.read_text())
            for p in sorted(directory.glob("*.json"))
        ]

    # ------------------------------------------------------------------
    # Worlds
    # ------------------------------------------------------------------

    def save_world(self, world: World) -> World:
        """Upsert a world, refreshing updated_at."""
        world = world.model_copy(update={"updated_at": utcnow()})
        self._write_text(self._worlds / f"{world.id}.json", world.model_dump_json(indent=2))
        return world

    def get_world(self, world_id: str) -> World | None:
        path = self._worlds / f"{world_id}.json"
        if not path.exists():
            return None
        return World.model_validate_json(path.read_text())

    def list_worlds(self) -> list[World]:
        """All worlds, most recently updated first."""
        worlds = self._load_all(self._worlds, World)
        return sorted(worlds, key=lambda w: w.updated_at, reverse=True)

    def delete_world(self, world_id: str) -> None:
        """Delete a world together with its characters, sessions and main quest."""
        for character in self.get_characters_by_world(world_id):
            self.delete_character(character.id)
        for session in self.get_sessions_by_world(world_id):
            self.delete_session(session.id)
        (self._quests / f"{world_id}.json").unlink(missing_ok=True)
        (self._worlds / f"{world_id}.json").unlink(missing_ok=True)
        logger.info("deleted world %s", world_id)

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def save_character(self, character: Character) -> None:
        """Upsert a character by id."""
        self._write_text(
            self._characters / f"{character.id}.json",
            character.model_dump_json(indent=2),
        )

    def get_character(self, character_id: str) -> Character | None:
        path = self._characters / f"{character_id}.json"
        if not path.exists():
            return None
        return Character.model_validate_json(path.read_text())

    def get_characters_by_world(self, world_id: str) -> list[Character]:
        chars = [c for c in self._load_all(self._characters, Character) if c.world_id == world_id]
        return sorted(chars, key=lambda c: c.created_at)

    def delete_character(self, character_id: str) -> None:
        (self._characters / f"{character_id}.json").unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def save_session(self, session: Session) -> None:
        """Write the whole session record in one atomic replace."""
        self._write_text(
            self._sessions / f"{session.id}.json",
            session.model_dump_json(indent=2),
        )

    def get_session(self, session_id: str) -> Session | None:
        path = self._sessions / f"{session_id}.json"
        if not path.exists():
            return None
        return Session.model_validate_json(path.read_text())

    def get_sessions_by_world(self, world_id: str) -> list[Session]:
        """Sessions of a world, most recently updated first."""
        sessions = [s for s in self._load_all(self._sessions, Session) if s.world_id == world_id]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    def delete_session(self, session_id: str) -> None:
        (self._sessions / f"{session_id}.json").unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Main quests (one per world)
    # ------------------------------------------------------------------

    def save_main_quest(self, quest: MainQuest) -> None:
        self._write_text(
            self._quests / f"{quest.world_id}.json",
            quest.model_dump_json(indent=2),
        )

    def get_main_quest_by_world(self, world_id: str) -> MainQuest | None:
        path = self._quests / f"{world_id}.json"
        if not path.exists():
            return None
        return MainQuest.model_validate_json(path.read_text())
