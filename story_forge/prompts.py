"""Handlebars prompt rendering for every stage that calls the language model.

Each stage has a system template and a user template. Defaults live in
DEFAULT_PROMPTS; the config "prompts" section may override either half of
any stage. Free-text fields use triple-stash so quotes and ampersands reach
the model unescaped.
"""

from collections.abc import Callable
from typing import Any

import pybars

from story_forge.dice import format_modifier, get_attribute_modifier
from story_forge.llm import ChatMessage
from story_forge.models import ATTRIBUTE_NAMES, Character, World

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}} — iterate over the first N items."""
    result = []
    for item in list(items)[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Default templates ────────────────────────────────────

ACTION_PROPOSAL_SYSTEM = """\
You are playing a character in a tabletop adventure. You only know your own \
character sheet, the current state of the world and your personal memories. \
You know nothing about the main storyline or what the future holds.

Propose one reasonable action based on the character's personality, \
background and current situation.

## Character
- Name: {{{char.name}}}
- Race: {{{char.race}}}
- Class: {{{char.character_class}}}
- Alignment: {{char.alignment}}
- Level: {{char.level}}
- HP: {{char.current_hp}}/{{char.max_hp}}
- Personality: {{{char.background.personality}}}
- Ideal: {{{char.background.ideal}}}
- Bond: {{{char.background.bond}}}
- Flaw: {{{char.background.flaw}}}

## Attributes
{{#each char.attributes}}
- {{name}} {{score}} ({{modifier}})
{{/each}}
{{#if char.skills}}

## Skills
{{#each char.skills}}
- {{{name}}} {{modifier}}
{{/each}}
{{/if}}

## World
{{{world.name}}}: {{{world.background}}}

Return JSON:
{"proposedAction": "<the concrete action the character attempts>", \
"aiReasoning": "<the character's inner thoughts, first person>"}

Stay consistent with the character's personality. The action must fit the \
character's abilities and motives. Return only the JSON object.\
"""

ACTION_PROPOSAL_USER = """\
## Current Situation
{{{scene}}}

## Recent Events
{{#if recent_events}}
{{#last recent_events 5}}
- {{{this}}}
{{/last}}
{{else}}
(nothing notable yet)
{{/if}}

## Your Important Memories
{{#if memories}}
{{#take memories 5}}
- {{{content}}}
{{/take}}
{{else}}
(no notable memories)
{{/if}}

Propose your action.\
"""

NARRATION_SYSTEM = """\
You are the narration assistant of a tabletop game master. Describe the \
character's action and its outcome based on the dice result.

Dice result: {{total}} vs difficulty {{difficulty}}
Outcome: {{#if success}}success{{else}}failure{{/if}}\
{{#if critical_success}} (critical success){{/if}}\
{{#if critical_failure}} (critical failure){{/if}}
{{#if world.name}}
World: {{{world.name}}}
{{/if}}

Write 50-150 words describing how the attempt unfolds.
- On success, describe how the character pulls it off.
- On failure, describe what went wrong.
- Stay consistent with the world.
- Do not invent sweeping consequences.\
"""

NARRATION_USER = "{{{character_name}}} attempts: {{{action}}}"

WORLD_PARSER_SYSTEM = """\
You are a world-building parser. The user provides {{source_label}}.

Extract the following and return it as JSON:
1. background: an overview of the world (200-500 words)
2. locations: important places, each with name and description
3. factions: powers and groups, each with name, description and influence (1-10)
4. history: important historical events, each with name, description and era
5. conflicts: potential conflicts, each with name, description and status \
(dormant/brewing/active)

Make sure the output is valid JSON. Where information is unclear, infer it \
reasonably from context.\
"""

WORLD_PARSER_USER = """\
Parse the following content:

{{{content}}}\
"""

CHARACTER_GENERATOR_SYSTEM = """\
You are a character designer for a tabletop adventure set in this world:

{{{world.name}}}: {{{world.background}}}

Create one character matching the user's concept. Return JSON:
{"name": "", "race": "", "class": "", "alignment": "<e.g. chaotic-good>", \
"level": 1, "backstory": "", \
"attributes": {"strength": 10, "dexterity": 10, "constitution": 10, \
"intelligence": 10, "wisdom": 10, "charisma": 10}, \
"skills": {"combat": {}, "social": {}, "exploration": {}, "knowledge": {}}, \
"background": {"personality": "", "ideal": "", "bond": "", "flaw": ""}, \
"maxHP": 10}

Attributes range from 3 to 18. Skill modifiers range from -5 to +10. \
Return only the JSON object.\
"""

CHARACTER_GENERATOR_USER = "Concept: {{{concept}}}"

MAIN_QUEST_SYSTEM = """\
You are a game master's assistant. Based on the world below, design a hidden \
main storyline. It is only a reference for the game master and is never \
forced on the AI-driven characters.

Return JSON:
1. title: the storyline title
2. description: 100-200 words
3. stages: an array of stages, each with objective and hints (array of strings)
4. potentialEvents: key events that might be triggered
5. worldDirection: where the world may be heading\
"""

MAIN_QUEST_USER = """\
World: {{{world.name}}}
Background: {{{world.background}}}
Factions: {{{world.faction_names}}}
Conflicts: {{{world.conflict_names}}}\
"""

SCENE_SUGGESTIONS_SYSTEM = """\
You are a game master's assistant. Suggest a few scenes the game master \
could describe next. Each suggestion is a short piece of narration the game \
master can read out as the new situation.

## World
{{{world.name}}}: {{{world.background}}}
{{#if world.conflict_names}}
Conflicts: {{{world.conflict_names}}}
{{/if}}

## Party
{{#each characters}}
- {{{name}}}, level {{level}} {{{character_class}}}
{{/each}}

Return JSON:
{"suggestions": [{"title": "<short title>", "content": "<the scene, 2-4 \
sentences>", "type": "combat|exploration|social|mystery|rest"}]}

Offer 3 or 4 suggestions of different types. Return only the JSON object.\
"""

SCENE_SUGGESTIONS_USER = """\
Turn: {{current_turn}}

## Recent Events
{{#if recent_events}}
{{#last recent_events 5}}
- {{{this}}}
{{/last}}
{{else}}
(the adventure has just begun)
{{/if}}

What could happen next?\
"""

DEFAULT_PROMPTS: dict[str, dict[str, str]] = {
    "action_proposal": {"system": ACTION_PROPOSAL_SYSTEM, "user": ACTION_PROPOSAL_USER},
    "narration": {"system": NARRATION_SYSTEM, "user": NARRATION_USER},
    "world_parser": {"system": WORLD_PARSER_SYSTEM, "user": WORLD_PARSER_USER},
    "character_generator": {
        "system": CHARACTER_GENERATOR_SYSTEM,
        "user": CHARACTER_GENERATOR_USER,
    },
    "main_quest": {"system": MAIN_QUEST_SYSTEM, "user": MAIN_QUEST_USER},
    "scene_suggestions": {
        "system": SCENE_SUGGESTIONS_SYSTEM,
        "user": SCENE_SUGGESTIONS_USER,
    },
}


def get_templates(
    stage: str, overrides: dict[str, dict[str, str]] | None = None
) -> dict[str, str]:
    """Return the {"system", "user"} templates for a stage, overrides first."""
    if stage not in DEFAULT_PROMPTS:
        raise PromptError(f"Unknown prompt stage {stage!r}")
    templates = dict(DEFAULT_PROMPTS[stage])
    if overrides and stage in overrides:
        for part, text in overrides[stage].items():
            if part in templates and text:
                templates[part] = text
    return templates


def render_messages(
    stage: str,
    context: dict[str, Any],
    overrides: dict[str, dict[str, str]] | None = None,
) -> list[ChatMessage]:
    templates = get_templates(stage, overrides)
    return [
        ChatMessage(role="system", content=render_prompt(templates["system"], context)),
        ChatMessage(role="user", content=render_prompt(templates["user"], context)),
    ]


# ── Context builders ─────────────────────────────────────


def character_context(character: Character) -> dict[str, Any]:
    """Flatten a character sheet into template variables."""
    attributes = []
    for name in ATTRIBUTE_NAMES:
        score = getattr(character.attributes, name)
        attributes.append({
            "name": name,
            "score": score,
            "modifier": format_modifier(get_attribute_modifier(score)),
        })

    skills = []
    for category in ("combat", "social", "exploration", "knowledge"):
        for name, value in getattr(character.skills, category).items():
            skills.append({
                "name": name,
                "category": category,
                "modifier": format_modifier(value),
            })

    ctx = character.model_dump(mode="json", exclude={"memories", "skills", "attributes"})
    ctx["attributes"] = attributes
    ctx["skills"] = skills
    return ctx


def world_context(world: World | None) -> dict[str, Any]:
    if world is None:
        return {
            "name": "", "background": "",
            "factions": [], "conflicts": [],
            "faction_names": "", "conflict_names": "",
        }
    return {
        "name": world.name,
        "background": world.background,
        "factions": [{"name": f.name, "influence": f.influence} for f in world.factions],
        "conflicts": [{"name": c.name, "status": c.status} for c in world.conflicts],
        "faction_names": ", ".join(f.name for f in world.factions),
        "conflict_names": ", ".join(c.name for c in world.conflicts),
    }


def build_action_context(
    character: Character,
    world: World | None,
    scene: str,
    recent_events: list[str],
    memory_count: int = 5,
) -> dict[str, Any]:
    return {
        "char": character_context(character),
        "world": world_context(world),
        "scene": scene,
        "recent_events": list(recent_events),
        "memories": [
            {"content": m.content, "importance": m.importance}
            for m in character.top_memories(memory_count)
        ],
    }
