"""Tests for story_forge.recovery — getting a JSON object out of model text."""

import json

import pytest

from story_forge.recovery import (
    Empty,
    Structured,
    Unstructured,
    recover_json,
    repair_json,
    structured_or_none,
)

SAMPLE = {
    "proposedAction": "Gareth draws his sword and steps toward the cave.",
    "aiReasoning": "If the dragon is here, the village can't wait.",
    "nested": {"list": [1, 2, {"deep": "}{ braces in a string"}], "flag": True},
}


# ── Well-formed objects ──────────────────────────────────────


@pytest.mark.parametrize("wrap", [
    "{}",
    "Sure! Here is the JSON:\n{}",
    "{}\nLet me know if you need anything else.",
    "```json\n{}\n```",
    "```\n{}\n```",
    "Here you go:\n```json\n{}\n```\nHope that helps!",
])
def test_embedded_object_recovered(wrap):
    text = wrap.replace("{}", json.dumps(SAMPLE, indent=2))
    assert recover_json(text) == Structured(SAMPLE)


def test_picks_the_object_when_chatter_contains_braces():
    text = 'I thought about {this} a lot.\n{"action": "run"}\nDone {really}.'
    assert recover_json(text) == Structured({"action": "run"})


def test_largest_balanced_object_wins():
    text = '{"a": 1} and then {"b": 2, "c": {"d": 3}}'
    assert recover_json(text) == Structured({"b": 2, "c": {"d": 3}})


def test_top_level_array_is_not_structured():
    outcome = recover_json("[1, 2, 3]")
    assert outcome == Unstructured("[1, 2, 3]")


def test_unmatched_brace_in_prefix_does_not_hide_object():
    payload = {"a": 1, "b": [1, 2]}
    text = "I'll answer :-{ here it is\n" + json.dumps(payload)
    assert recover_json(text) == Structured(payload)


def test_unmatched_brace_in_prefix_before_truncated_object():
    text = 'Sure {thinking... ok\n{"action": "hide", "tags": ["stealth"'
    assert recover_json(text) == Structured({"action": "hide", "tags": ["stealth"]})


# ── Repair ───────────────────────────────────────────────────


def test_repairs_truncated_array_and_object():
    assert recover_json('{"a":1,"b":[1,2') == Structured({"a": 1, "b": [1, 2]})


def test_repairs_open_string():
    outcome = recover_json('{"proposedAction": "Elena kneels beside the wounded')
    assert outcome == Structured({"proposedAction": "Elena kneels beside the wounded"})


def test_repairs_trailing_comma():
    assert recover_json('{"a": 1, "b": 2,') == Structured({"a": 1, "b": 2})


def test_repairs_dangling_key():
    assert recover_json('{"a": 1, "b":') == Structured({"a": 1, "b": None})


def test_repairs_truncated_key():
    assert recover_json('{"a": 1, "bet') == Structured({"a": 1})
    assert recover_json('{"a": 1, "bet"') == Structured({"a": 1})
    assert recover_json('{"a": {"x": 1, "y') == Structured({"a": {"x": 1}})


@pytest.mark.parametrize("text, expected", [
    ('{"ok": tr', {"ok": True}),
    ('{"ok": fals', {"ok": False}),
    ('{"gone": nu', {"gone": None}),
    ('{"hp": 12.', {"hp": 12}),
    ('{"hp": 1e', {"hp": 1}),
    ('{"hp": -', {"hp": None}),
])
def test_repairs_half_written_scalar(text, expected):
    assert recover_json(text) == Structured(expected)


def test_repair_json_drops_partial_unicode_escape():
    assert json.loads(repair_json('{"a": "caf\\u00')) == {"a": "caf"}


def test_repair_json_keeps_escaped_backslash():
    assert json.loads(repair_json('{"a": "C:\\\\')) == {"a": "C:\\"}


def test_repairs_after_fence_and_prefix():
    text = 'Here:\n```json\n{"action": "hide", "tags": ["stealth"'
    assert recover_json(text) == Structured({"action": "hide", "tags": ["stealth"]})


def test_repair_json_drops_dangling_escape():
    assert json.loads(repair_json('{"a": "line\\')) == {"a": "line"}


def test_repair_json_ignores_brackets_in_strings():
    assert repair_json('{"a": "[{"') == '{"a": "[{"}'


# ── Fallback outcomes ────────────────────────────────────────


@pytest.mark.parametrize("text", [None, "", "   \n\t", "```", "```json\n```"])
def test_empty(text):
    assert recover_json(text) == Empty()


def test_plain_prose_is_unstructured():
    text = "Gareth shrugs and walks into the tavern."
    assert recover_json(text) == Unstructured(text)


def test_unrepairable_keeps_raw_text():
    text = "```json\n{not json at all: ]]\n```"
    assert recover_json(text) == Unstructured(text)


def test_structured_or_none():
    assert structured_or_none('x {"a": 1} y') == {"a": 1}
    assert structured_or_none("no json here") is None
    assert structured_or_none("") is None


def test_recover_is_deterministic():
    text = 'noise {"a": [1, 2'
    assert recover_json(text) == recover_json(text)


# ── Truncation and wrapping ──────────────────────────────────

TRUNCATION_PAYLOADS = [
    SAMPLE,
    {"proposedAction": "Elena kneels.", "aiReasoning": "He is bleeding.", "hp": -3.5, "ok": False},
    {"suggestions": [{"title": "Ambush", "content": "Wolves circle.", "type": "combat"}], "n": None},
]


def _all_keys(value) -> set:
    keys = set()
    if isinstance(value, dict):
        for key, item in value.items():
            keys.add(key)
            keys |= _all_keys(item)
    elif isinstance(value, list):
        for item in value:
            keys |= _all_keys(item)
    return keys


@pytest.mark.parametrize("payload", TRUNCATION_PAYLOADS)
def test_every_truncation_recovers_known_keys(payload):
    text = json.dumps(payload)
    known = _all_keys(payload)
    for i in range(len(text) + 1):
        outcome = recover_json(text[:i])
        assert isinstance(outcome, (Structured, Unstructured, Empty))
        if isinstance(outcome, Structured):
            assert _all_keys(outcome.value) <= known, text[:i]


@pytest.mark.parametrize("payload", TRUNCATION_PAYLOADS)
def test_cut_after_a_member_keeps_complete_members(payload):
    items = list(payload.items())
    for k in range(1, len(items)):
        head = dict(items[:k])
        next_key = json.dumps(items[k][0])
        for tail in (",", ", ", ", " + next_key[:3], ", " + next_key, ", " + next_key + ":"):
            text = json.dumps(head)[:-1] + tail
            outcome = recover_json(text)
            if tail.endswith(":"):
                assert outcome == Structured({**head, items[k][0]: None})
            else:
                assert outcome == Structured(head), text


@pytest.mark.parametrize("prefix", [
    "",
    "Here you go: ",
    "{ ",
    "Okay :-{ ",
    "} stray closer ",
    "```json\n",
    "My answer {draft} was wrong, so:\n",
])
@pytest.mark.parametrize("suffix", ["", "\n```", " Hope that helps!", " {note}", " :-}"])
@pytest.mark.parametrize("payload", TRUNCATION_PAYLOADS)
def test_wrapped_object_recovered(prefix, suffix, payload):
    text = prefix + json.dumps(payload) + suffix
    assert recover_json(text) == Structured(payload)
