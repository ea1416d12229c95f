"""Recover a JSON object from language-model output.

Models wrap JSON in markdown fences, surround it with chatter, or stop
mid-object when they hit a token limit. recover_json() undoes the common
cases and reports what it found:

    Structured(value)   a dict was recovered
    Unstructured(raw)   there is text, but no object could be recovered
    Empty()             nothing usable at all (blank, or fences only)

The function is pure: same text in, same outcome out.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

_FENCE = re.compile(r"```[\w+-]*")
_CLOSERS = {"{": "}", "[": "]"}
_TRAILING_WORD = re.compile(r"[\w.+-]+$")
_NUMBER = re.compile(r"-?\d+(\.\d+)?([eE][-+]?\d+)?")


@dataclass(frozen=True)
class Structured:
    value: dict[str, Any]


@dataclass(frozen=True)
class Unstructured:
    raw: str


@dataclass(frozen=True)
class Empty:
    pass


ParseOutcome = Union[Structured, Unstructured, Empty]


def recover_json(text: str | None) -> ParseOutcome:
    if text is None or not text.strip():
        return Empty()

    cleaned = _FENCE.sub("", text).strip()
    if not cleaned:
        return Empty()

    starts = [i for i, ch in enumerate(cleaned) if ch == "{"]
    if not starts:
        return Unstructured(text)
    start = starts[0]
    end = cleaned.rfind("}")
    candidate = cleaned[start:end + 1] if end > start else cleaned[start:]

    value = _loads_object(candidate)
    if value is not None:
        return Structured(value)

    embedded, embedded_at = _largest_embedded_object(cleaned, starts)

    # an unterminated object enclosing the embedded one is the real reply
    for i in starts:
        if embedded is not None and i >= embedded_at:
            break
        value = _loads_object(repair_json(cleaned[i:]))
        if value is not None:
            return Structured(value)

    if embedded is not None:
        return Structured(embedded)

    return Unstructured(text)


def structured_or_none(text: str | None) -> dict[str, Any] | None:
    outcome = recover_json(text)
    if isinstance(outcome, Structured):
        return outcome.value
    return None


def repair_json(text: str) -> str:
    """Close whatever a truncated JSON document left open.

    Walks the text tracking string state and a bracket stack. A key cut off
    before its colon is dropped along with its comma; an open string is
    closed; a half-written literal or number is completed or trimmed; then
    the closers for every unmatched bracket are appended, innermost first.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    escape_at = -1
    expect_key = False
    member_start = -1
    key_cut = -1

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
                escape_at = i
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            escape_at = -1
            if expect_key:
                key_cut = member_start
                expect_key = False
        elif ch == ":":
            key_cut = -1
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
            expect_key = ch == "{"
            member_start = i + 1
        elif ch in ("}", "]"):
            if stack and stack[-1] == ch:
                stack.pop()
            expect_key = False
        elif ch == ",":
            expect_key = bool(stack) and stack[-1] == "}"
            member_start = i

    if key_cut >= 0:
        repaired = text[:key_cut]
    elif in_string:
        # a cut-off \uXXXX or single-character escape is dropped
        if escape_at >= 0 and (escaped or (
            text[escape_at + 1] == "u" and len(text) - escape_at < 6
        )):
            text = text[:escape_at]
        repaired = text + '"'
    else:
        repaired = _complete_scalar(text.rstrip()).rstrip()
        if repaired.endswith(","):
            repaired = repaired[:-1]
        elif repaired.endswith(":"):
            repaired += " null"

    return repaired + "".join(reversed(stack))


def _complete_scalar(text: str) -> str:
    match = _TRAILING_WORD.search(text)
    if match is None:
        return text
    word = match.group()
    head = text[:match.start()]
    if not head.rstrip().endswith((":", "[", ",")):
        return text
    for literal in ("true", "false", "null"):
        if literal.startswith(word):
            return head + literal
    number = word.rstrip(".eE+-")
    if not number:
        return head + "null"
    if _NUMBER.fullmatch(number):
        return head + number
    return text


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _largest_embedded_object(text: str, starts: list[int]) -> tuple[dict[str, Any] | None, int]:
    """Decode an object at every "{" and keep the one spanning the most text."""
    decoder = json.JSONDecoder()
    best: dict[str, Any] | None = None
    best_at = best_len = 0
    for i in starts:
        try:
            value, end = decoder.raw_decode(text, i)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict) and end - i > best_len:
            best, best_at, best_len = value, i, end - i
    return best, best_at
