"""Core domain models.

Every stage of the turn core and every storage method operates on these types.
Pydantic is used for validation and serialisation at every data boundary.

Records that end up inside a finalized turn (dice rolls, actions, checks,
results, the turn itself) are frozen: a turn is history and later turns never
rewrite it.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

DiceType = Literal["d4", "d6", "d8", "d10", "d12", "d20", "d100"]
DIE_FACES: dict[str, int] = {
    "d4": 4,
    "d6": 6,
    "d8": 8,
    "d10": 10,
    "d12": 12,
    "d20": 20,
    "d100": 100,
}

AttributeName = Literal[
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
]

ATTRIBUTE_NAMES: tuple[str, ...] = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

CheckType = Literal[
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
    "attack",
    "save",
    "skill",
]

Alignment = Literal[
    "lawful-good", "neutral-good", "chaotic-good",
    "lawful-neutral", "true-neutral", "chaotic-neutral",
    "lawful-evil", "neutral-evil", "chaotic-evil",
]

ALIGNMENTS: tuple[str, ...] = (
    "lawful-good", "neutral-good", "chaotic-good",
    "lawful-neutral", "true-neutral", "chaotic-neutral",
    "lawful-evil", "neutral-evil", "chaotic-evil",
)

CharacterStatus = Literal["active", "incapacitated", "dead"]
SessionStatus = Literal["active", "paused", "completed"]
ConflictStatus = Literal["dormant", "brewing", "active", "resolved"]
Significance = Literal["minor", "moderate", "major", "critical"]
WorldSourceType = Literal["manual", "novel", "url"]

AttributeScore = Annotated[int, Field(ge=3, le=18)]
SkillModifier = Annotated[int, Field(ge=-5, le=10)]
Importance = Annotated[int, Field(ge=1, le=10)]


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------

class Attributes(BaseModel):
    strength: AttributeScore = 10
    dexterity: AttributeScore = 10
    constitution: AttributeScore = 10
    intelligence: AttributeScore = 10
    wisdom: AttributeScore = 10
    charisma: AttributeScore = 10


class Skills(BaseModel):
    """Skill name → modifier, grouped by category."""

    combat: dict[str, SkillModifier] = Field(default_factory=dict)
    social: dict[str, SkillModifier] = Field(default_factory=dict)
    exploration: dict[str, SkillModifier] = Field(default_factory=dict)
    knowledge: dict[str, SkillModifier] = Field(default_factory=dict)

    def lookup(self, skill_name: str) -> int | None:
        """Find a skill modifier in any category, case-insensitively."""
        wanted = skill_name.strip().lower()
        for category in (self.combat, self.social, self.exploration, self.knowledge):
            for name, value in category.items():
                if name.lower() == wanted:
                    return value
        return None


class Background(BaseModel):
    personality: str = ""
    ideal: str = ""
    bond: str = ""
    flaw: str = ""


class Memory(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str
    importance: Importance = 5
    timestamp: datetime = Field(default_factory=utcnow)
    related_characters: list[str] = Field(default_factory=list)
    related_locations: list[str] = Field(default_factory=list)


class Character(BaseModel):
    """A character owned by a world; AI-driven once it joins a session."""

    id: str = Field(default_factory=new_id)
    world_id: str
    name: str
    race: str = ""
    character_class: str = ""
    alignment: Alignment = "true-neutral"
    level: int = Field(1, ge=1, le=20)
    backstory: str = ""
    attributes: Attributes = Field(default_factory=Attributes)
    skills: Skills = Field(default_factory=Skills)
    background: Background = Field(default_factory=Background)
    memories: list[Memory] = Field(default_factory=list)
    current_hp: int = 10
    max_hp: int = Field(10, ge=1)
    status: CharacterStatus = "active"
    created_at: datetime = Field(default_factory=utcnow)

    def top_memories(self, n: int = 5) -> list[Memory]:
        # sorted() is stable, so equally important memories keep their order
        return sorted(self.memories, key=lambda m: m.importance, reverse=True)[:n]


# ---------------------------------------------------------------------------
# Worlds
# ---------------------------------------------------------------------------

class Location(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    parent_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class FactionRelation(BaseModel):
    faction_id: str
    type: Literal["ally", "neutral", "enemy"] = "neutral"


class Faction(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    influence: int = Field(5, ge=1, le=10)
    relations: list[FactionRelation] = Field(default_factory=list)


class WorldEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    era: str = ""
    impact: str = ""


class Conflict(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    factions: list[str] = Field(default_factory=list)
    status: ConflictStatus = "dormant"


class World(BaseModel):
    """Root aggregate. Characters, sessions and the main quest point at it by id."""

    id: str = Field(default_factory=new_id)
    name: str
    source_type: WorldSourceType = "manual"
    source_content: str | None = None
    background: str = ""
    locations: list[Location] = Field(default_factory=list)
    factions: list[Faction] = Field(default_factory=list)
    history: list[WorldEvent] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MainQuestStage(BaseModel):
    id: str = Field(default_factory=new_id)
    order: int
    objective: str
    hints: list[str] = Field(default_factory=list)
    completed: bool = False


class MainQuest(BaseModel):
    """Hidden storyline for the GM's eyes only; never shown to character prompts."""

    id: str = Field(default_factory=new_id)
    world_id: str
    title: str
    description: str = ""
    stages: list[MainQuestStage] = Field(default_factory=list)
    potential_events: list[str] = Field(default_factory=list)
    world_direction: str = ""


# ---------------------------------------------------------------------------
# Turn records
# ---------------------------------------------------------------------------

class DiceRoll(BaseModel):
    """A set of dice of one kind plus a flat modifier.

    `total` is derived from `results` and `modifier`; a `total` key in input
    data is ignored.
    """

    model_config = ConfigDict(frozen=True)

    type: DiceType
    count: int = Field(1, ge=1)
    modifier: int = 0
    results: tuple[int, ...]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return sum(self.results) + self.modifier

    @model_validator(mode="after")
    def _results_match_dice(self) -> DiceRoll:
        if len(self.results) != self.count:
            raise ValueError(
                f"expected {self.count} results for {self.count}{self.type}, got {len(self.results)}"
            )
        faces = DIE_FACES[self.type]
        for r in self.results:
            if not 1 <= r <= faces:
                raise ValueError(f"result {r} is not a face of a {self.type} (1-{faces})")
        return self


class TurnAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    character_id: str
    character_name: str  # snapshot at proposal time
    proposed_action: str
    ai_reasoning: str = ""


class TurnCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    action_id: str
    check_type: CheckType
    skill_name: str | None = None
    difficulty: int = Field(gt=0)
    dice_roll: DiceRoll

    @model_validator(mode="after")
    def _skill_name_iff_skill_check(self) -> TurnCheck:
        if self.check_type == "skill" and not self.skill_name:
            raise ValueError("skill checks require a skill_name")
        if self.check_type != "skill" and self.skill_name is not None:
            raise ValueError(f"skill_name is only valid for skill checks, not {self.check_type!r}")
        return self


class TurnResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    check_id: str
    success: bool
    narration: str = ""
    world_changes: tuple[str, ...] = ()


class Turn(BaseModel):
    """Immutable record of everything resolved together in one turn."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    session_id: str
    turn_number: int = Field(ge=1)
    actions: tuple[TurnAction, ...] = ()
    checks: tuple[TurnCheck, ...] = ()
    results: tuple[TurnResult, ...] = ()
    world_state: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TimelineEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utcnow)
    turn_number: int
    event: str
    significance: Significance = "minor"


class AdventureLog(BaseModel):
    id: str = Field(default_factory=new_id)
    character_id: str
    character_name: str
    turn_number: int
    content: str
    emotion: str = ""


class Session(BaseModel):
    """Persisted session record. Pending actions/checks live in the TurnEngine."""

    id: str = Field(default_factory=new_id)
    world_id: str
    name: str
    characters: list[str] = Field(default_factory=list)  # participation order
    turns: list[Turn] = Field(default_factory=list)
    current_turn: int = Field(0, ge=0)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    adventure_logs: list[AdventureLog] = Field(default_factory=list)
    status: SessionStatus = "active"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
