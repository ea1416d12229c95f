"""Shared test doubles and a small two-character party."""

import asyncio

import pytest

from story_forge.engine import TurnEngine
from story_forge.llm import ChatMessage
from story_forge.models import (
    Attributes,
    Background,
    Character,
    Faction,
    Memory,
    Session,
    Skills,
    World,
)


class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an Exception instance is raised instead of returned.
    `delays` holds per-call sleeps in seconds, consumed in call order, so a
    test can make later calls finish before earlier ones.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(
        self,
        responses: dict[str, list] | None = None,
        *,
        configured: bool = True,
        delays: list[float] | None = None,
    ) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in (responses or {}).items()}
        self._delays = list(delays or [])
        self._configured = configured
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    def is_configured(self) -> bool:
        return self._configured

    async def __call__(self, stage: str, messages: list[ChatMessage]) -> str:
        self.calls.append((stage, messages))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {len(self.calls)}"
            )
        response = queue.pop(0)
        delay = self._delays.pop(0) if self._delays else 0
        if delay:
            await asyncio.sleep(delay)
        if isinstance(response, Exception):
            raise response
        return response

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed — catches missing LLM calls."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


@pytest.fixture
def stub_llm():
    """Factory fixture: stub_llm({"narration": ["..."]}, configured=True)."""
    return StubLLM


@pytest.fixture
def world() -> World:
    return World(
        name="Dragon's Hollow",
        background="A mountain village under a young dragon's shadow.",
        factions=[Faction(name="Village Council", influence=3)],
    )


@pytest.fixture
def gareth(world: World) -> Character:
    return Character(
        world_id=world.id,
        name="Gareth",
        race="Human",
        character_class="Fighter",
        alignment="lawful-good",
        attributes=Attributes(strength=16, dexterity=12),
        skills=Skills(combat={"Longsword": 5}, social={"Intimidation": 2}),
        background=Background(personality="Gruff but kind"),
        memories=[
            Memory(content="The dragon burned the granary.", importance=8),
            Memory(content="Ate stew at the inn.", importance=2),
        ],
    )


@pytest.fixture
def elena(world: World) -> Character:
    return Character(
        world_id=world.id,
        name="Elena",
        race="Half-elf",
        character_class="Cleric",
        attributes=Attributes(wisdom=16, strength=9),
        skills=Skills(knowledge={"Medicine": 5}),
    )


@pytest.fixture
def session(world: World, gareth: Character, elena: Character) -> Session:
    return Session(world_id=world.id, name="Test Run", characters=[gareth.id, elena.id])


@pytest.fixture
def engine(session: Session) -> TurnEngine:
    return TurnEngine(session)
