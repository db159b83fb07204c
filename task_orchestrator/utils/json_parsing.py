"""
Lenient JSON parsing for LLM responses.

Models wrap JSON in prose or markdown fences and sometimes stop mid-object
when they hit the token limit. This module recovers structured data with an
explicit sequence of tiers so the rest of the system only ever sees either a
parsed value or the caller's default:

    1. direct        - the whole text is valid JSON
    2. fenced        - the body of a ```json fenced block
    3. balanced      - the first brace/bracket balanced span in the text
    4. repaired      - a truncated span closed off and re-parsed
    5. default       - the structured default supplied by the caller
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*)$", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


class ParseTier(str, Enum):
    """Which tier produced the parsed value."""

    DIRECT = "direct"
    FENCED = "fenced"
    BALANCED = "balanced"
    REPAIRED = "repaired"
    DEFAULT = "default"


@dataclass
class ParseResult:
    value: Any
    tier: ParseTier

    @property
    def used_default(self) -> bool:
        return self.tier == ParseTier.DEFAULT


def _loads(text: str, expect: type | None) -> Any:
    """json.loads that also enforces the expected top-level type."""
    value = json.loads(text)
    if expect is not None and not isinstance(value, expect):
        raise ValueError(f"Expected {expect.__name__}, got {type(value).__name__}")
    return value


def extract_fenced(text: str) -> str | None:
    """Return the body of the first fenced code block, if any."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return None


def find_balanced_span(text: str, openers: str = "{[") -> tuple[int, int | None] | None:
    """
    Locate the first JSON object/array in text.

    Tracks string literals and escapes so braces inside strings are ignored.

    Args:
        text: Text to scan
        openers: Characters that may start the span

    Returns:
        (start, end) where end is exclusive, end is None when the span never
        closes, or None when no opener is present
    """
    start = next((i for i, ch in enumerate(text) if ch in openers), None)
    if start is None:
        return None

    stack: list[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return start, None
            stack.pop()
            if not stack:
                return start, i + 1
    return start, None


def repair_truncated(fragment: str) -> str:
    """
    Close off a JSON fragment that was cut short.

    Closes an open string, drops a dangling key or trailing comma, then
    appends the closers for every bracket still open.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in fragment:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]" and stack:
            stack.pop()

    repaired = fragment
    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'

    repaired = repaired.rstrip()
    # A key with no value yet ("name": or "name") cannot be kept
    repaired = re.sub(r',?\s*"[^"]*"\s*:\s*$', "", repaired)
    if stack and stack[-1] == "}":
        # Inside an object a bare trailing string is a key
        repaired = re.sub(
            r'([{,])\s*"[^"]*"$',
            lambda m: "{" if m.group(1) == "{" else "",
            repaired,
        )
    repaired = re.sub(r",\s*$", "", repaired)
    # Literal cut mid-token, e.g. `tru` or `12.`
    repaired = re.sub(
        r"(:\s*|,\s*|\[\s*)(t|tr|tru|f|fa|fal|fals|n|nu|nul)$", r"\1null", repaired
    )
    repaired = re.sub(r"(\d)\.$", r"\1", repaired)

    return repaired + "".join(reversed(stack))


def parse_json_response(
    text: str | None,
    default: Any = None,
    expect: type | None = dict,
) -> ParseResult:
    """
    Parse JSON from an LLM response, falling through the tiers in order.

    Args:
        text: Raw LLM text
        default: Value returned when every tier fails
        expect: Required top-level type (dict by default, None for any)

    Returns:
        ParseResult with the value and the tier that produced it
    """
    if not text or not text.strip():
        return ParseResult(default, ParseTier.DEFAULT)

    stripped = text.strip()

    try:
        return ParseResult(_loads(stripped, expect), ParseTier.DIRECT)
    except ValueError:
        pass

    candidates = [stripped]
    fenced = extract_fenced(stripped)
    if fenced is not None:
        try:
            return ParseResult(_loads(fenced, expect), ParseTier.FENCED)
        except ValueError:
            candidates.insert(0, fenced)
    else:
        # A fence that was opened but never closed (truncated output)
        open_fence = _OPEN_FENCE_RE.search(stripped)
        if open_fence:
            candidates.insert(0, open_fence.group(1))

    openers = "{" if expect is dict else "[" if expect is list else "{["
    for candidate in candidates:
        span = find_balanced_span(candidate, openers)
        if span is None:
            continue
        start, end = span
        if end is not None:
            try:
                value = _loads(candidate[start:end], expect)
                return ParseResult(value, ParseTier.BALANCED)
            except ValueError:
                continue
        try:
            repaired = repair_truncated(candidate[start:])
            return ParseResult(_loads(repaired, expect), ParseTier.REPAIRED)
        except ValueError:
            continue

    logger.warning(f"Could not parse JSON from LLM response ({len(stripped)} chars)")
    return ParseResult(default, ParseTier.DEFAULT)


def extract_json(text: str | None, default: Any = None, expect: type | None = dict) -> Any:
    """Shorthand for parse_json_response(...).value."""
    return parse_json_response(text, default, expect).value
