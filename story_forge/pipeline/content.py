"""GM-driven content generation: world parsing, character drafts, main quest,
scene suggestions.

Each generator runs the model's reply through the recovery parser and then
coerces what it got into valid records. Values outside their range are
clamped, unknown enum values fall back to a default, entries without a name
are dropped. If nothing structured comes back at all, the raw text becomes
the main prose field and every list stays empty.

Collaborator errors (LLMError) propagate: these are explicit GM requests,
not part of a running round. Scene suggestions are the exception and come
back empty instead.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

from story_forge.llm import LLM, LLMError
from story_forge.models import (
    ALIGNMENTS,
    ATTRIBUTE_NAMES,
    Attributes,
    Background,
    Character,
    Conflict,
    Faction,
    Location,
    MainQuest,
    MainQuestStage,
    Skills,
    World,
    WorldEvent,
)
from story_forge.prompts import PromptError, render_messages, world_context
from story_forge.recovery import Structured, recover_json

logger = logging.getLogger(__name__)

SOURCE_LABELS = {
    "novel": "novel text",
    "url": "the content of a web page",
    "manual": "hand-written setting notes",
}

CONFLICT_STATUSES = ("dormant", "brewing", "active", "resolved")
SKILL_CATEGORIES = ("combat", "social", "exploration", "knowledge")

UNKNOWN_QUEST_TITLE = "An Unknown Fate"


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if not isinstance(value, (int, float)):
        return None
    return int(value)


def clamp(value: Any, low: int, high: int, default: int) -> int:
    """Coerce value to an int within [low, high]; default when not numeric."""
    number = _as_int(value)
    if number is None:
        return default
    return max(low, min(high, number))


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _named_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict) and _text(item.get("name"))]


def _structured(stage: str, text: str) -> dict[str, Any] | None:
    outcome = recover_json(text)
    if isinstance(outcome, Structured):
        return outcome.value
    logger.warning("%s returned no usable JSON, falling back to defaults", stage)
    return None


# ── World parsing ────────────────────────────────────────


class ParsedWorld(BaseModel):
    background: str = ""
    locations: list[Location] = Field(default_factory=list)
    factions: list[Faction] = Field(default_factory=list)
    history: list[WorldEvent] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)

    def apply_to(self, world: World) -> World:
        """Copy of `world` with the parsed content in place of its own."""
        return world.model_copy(update={
            "background": self.background,
            "locations": self.locations,
            "factions": self.factions,
            "history": self.history,
            "conflicts": self.conflicts,
        })


def world_from_payload(data: dict[str, Any] | None, raw_text: str) -> ParsedWorld:
    if data is None:
        return ParsedWorld(background=raw_text.strip())

    locations = [
        Location(name=_text(item["name"]), description=_text(item.get("description")))
        for item in _named_items(data.get("locations"))
    ]
    factions = [
        Faction(
            name=_text(item["name"]),
            description=_text(item.get("description")),
            influence=clamp(item.get("influence"), 1, 10, 5),
        )
        for item in _named_items(data.get("factions"))
    ]
    history = [
        WorldEvent(
            name=_text(item["name"]),
            description=_text(item.get("description")),
            era=_text(item.get("era")),
            impact=_text(item.get("impact")),
        )
        for item in _named_items(data.get("history"))
    ]
    conflicts = []
    for item in _named_items(data.get("conflicts")):
        status = _text(item.get("status")).lower()
        conflicts.append(Conflict(
            name=_text(item["name"]),
            description=_text(item.get("description")),
            status=status if status in CONFLICT_STATUSES else "dormant",
        ))

    return ParsedWorld(
        background=_text(data.get("background")) or raw_text.strip(),
        locations=locations,
        factions=factions,
        history=history,
        conflicts=conflicts,
    )


async def parse_world_content(
    content: str,
    source_type: str,
    llm: LLM,
    templates: dict[str, dict[str, str]] | None = None,
) -> ParsedWorld:
    context = {
        "source_label": SOURCE_LABELS.get(source_type, SOURCE_LABELS["manual"]),
        "content": content,
    }
    text = await llm("world_parser", render_messages("world_parser", context, templates))
    return world_from_payload(_structured("world_parser", text), text)


# ── Character generation ─────────────────────────────────


class CharacterDraft(BaseModel):
    """A generated character sheet not yet attached to a world."""

    name: str = "Unnamed"
    race: str = ""
    character_class: str = ""
    alignment: str = "true-neutral"
    level: int = 1
    backstory: str = ""
    attributes: Attributes = Field(default_factory=Attributes)
    skills: Skills = Field(default_factory=Skills)
    background: Background = Field(default_factory=Background)
    max_hp: int = 10

    def to_character(self, world_id: str) -> Character:
        return Character(
            world_id=world_id,
            current_hp=self.max_hp,
            **self.model_dump(exclude={"attributes", "skills", "background"}),
            attributes=self.attributes,
            skills=self.skills,
            background=self.background,
        )


def character_from_payload(data: dict[str, Any] | None, raw_text: str) -> CharacterDraft:
    if data is None:
        return CharacterDraft(backstory=raw_text.strip())

    raw_attrs = data.get("attributes") if isinstance(data.get("attributes"), dict) else {}
    attributes = Attributes(**{
        name: clamp(raw_attrs.get(name), 3, 18, 10) for name in ATTRIBUTE_NAMES
    })

    raw_skills = data.get("skills") if isinstance(data.get("skills"), dict) else {}
    skills: dict[str, dict[str, int]] = {}
    for category in SKILL_CATEGORIES:
        entries = raw_skills.get(category)
        skills[category] = {}
        if not isinstance(entries, dict):
            continue
        for name, value in entries.items():
            number = _as_int(value)
            if name.strip() and number is not None:
                skills[category][name.strip()] = max(-5, min(10, number))

    raw_bg = data.get("background") if isinstance(data.get("background"), dict) else {}
    alignment = _text(data.get("alignment")).lower().replace(" ", "-").replace("_", "-")
    if alignment == "neutral":
        alignment = "true-neutral"

    return CharacterDraft(
        name=_text(data.get("name")) or "Unnamed",
        race=_text(data.get("race")),
        character_class=_text(data.get("class")) or _text(data.get("character_class")),
        alignment=alignment if alignment in ALIGNMENTS else "true-neutral",
        level=clamp(data.get("level"), 1, 20, 1),
        backstory=_text(data.get("backstory")),
        attributes=attributes,
        skills=Skills(**skills),
        background=Background(**{k: _text(raw_bg.get(k)) for k in ("personality", "ideal", "bond", "flaw")}),
        max_hp=clamp(data.get("maxHP", data.get("max_hp")), 1, 999, 10),
    )


async def generate_character(
    world: World | None,
    concept: str,
    llm: LLM,
    templates: dict[str, dict[str, str]] | None = None,
) -> CharacterDraft:
    context = {"world": world_context(world), "concept": concept}
    text = await llm("character_generator", render_messages("character_generator", context, templates))
    return character_from_payload(_structured("character_generator", text), text)


# ── Main quest ───────────────────────────────────────────


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def quest_from_payload(world_id: str, data: dict[str, Any] | None, raw_text: str) -> MainQuest:
    if data is None:
        return MainQuest(world_id=world_id, title=UNKNOWN_QUEST_TITLE, description=raw_text.strip())

    stages = []
    raw_stages = data.get("stages") if isinstance(data.get("stages"), list) else []
    for item in raw_stages:
        if isinstance(item, str) and item.strip():
            item = {"objective": item}
        if not isinstance(item, dict) or not _text(item.get("objective")):
            continue
        stages.append(MainQuestStage(
            order=len(stages) + 1,
            objective=_text(item["objective"]),
            hints=_string_list(item.get("hints")),
        ))

    return MainQuest(
        world_id=world_id,
        title=_text(data.get("title")) or UNKNOWN_QUEST_TITLE,
        description=_text(data.get("description")),
        stages=stages,
        potential_events=_string_list(data.get("potentialEvents", data.get("potential_events"))),
        world_direction=_text(data.get("worldDirection", data.get("world_direction"))),
    )


async def generate_main_quest(
    world: World,
    llm: LLM,
    templates: dict[str, dict[str, str]] | None = None,
) -> MainQuest:
    text = await llm("main_quest", render_messages("main_quest", {"world": world_context(world)}, templates))
    return quest_from_payload(world.id, _structured("main_quest", text), text)


# ── Scene suggestions ────────────────────────────────────

SuggestionType = Literal["combat", "exploration", "social", "mystery", "rest"]
SUGGESTION_TYPES = ("combat", "exploration", "social", "mystery", "rest")
DEFAULT_SUGGESTION_TYPE = "exploration"
UNTITLED_SUGGESTION = "Untitled Scene"


class SceneSuggestion(BaseModel):
    """A scene the GM can read out as the next situation."""

    title: str
    content: str
    type: SuggestionType = DEFAULT_SUGGESTION_TYPE


def suggestions_from_payload(data: dict[str, Any] | None) -> list[SceneSuggestion]:
    if data is None:
        return []

    raw = data.get("suggestions")
    if not isinstance(raw, list):
        return []

    suggestions = []
    for item in raw:
        if not isinstance(item, dict) or not _text(item.get("content")):
            continue
        kind = _text(item.get("type")).lower()
        suggestions.append(SceneSuggestion(
            title=_text(item.get("title")) or UNTITLED_SUGGESTION,
            content=_text(item["content"]),
            type=kind if kind in SUGGESTION_TYPES else DEFAULT_SUGGESTION_TYPE,
        ))
    return suggestions


async def generate_scene_suggestions(
    world: World | None,
    characters: Sequence[Character],
    recent_events: Sequence[str],
    current_turn: int,
    llm: LLM,
    templates: dict[str, dict[str, str]] | None = None,
) -> list[SceneSuggestion]:
    """Ask the model for next-scene ideas. A failed call is logged and yields []."""
    if not llm.is_configured():
        logger.info("llm not configured, no scene suggestions")
        return []

    context = {
        "world": world_context(world),
        "characters": [
            {"name": c.name, "character_class": c.character_class, "level": c.level}
            for c in characters
        ],
        "recent_events": list(recent_events),
        "current_turn": current_turn,
    }
    try:
        messages = render_messages("scene_suggestions", context, templates)
        text = await llm("scene_suggestions", messages)
    except (LLMError, PromptError) as e:
        logger.error("scene suggestions failed: %s", e)
        return []
    return suggestions_from_payload(_structured("scene_suggestions", text))
