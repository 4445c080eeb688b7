"""
Parser for AI-authored weekly insight replies.

The model is asked for a single JSON object:

    {"globalInsights": [str, ...], "channelInsights": {channel_id: [str, ...]}}

Replies are often wrapped in prose or markdown fences, so extraction tries
several strategies in order. The result is either ParsedInsights or an
UnparseableReply describing why nothing usable was found; callers fall back
to rule-based recommendations on the latter.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_EXCERPT_LENGTH = 200


@dataclass(slots=True)
class ParsedInsights:
    global_insights: list[str]
    channel_insights: dict[str, list[str]] = field(default_factory=dict)
    strategy: str = "direct"


@dataclass(slots=True)
class UnparseableReply:
    reason: str
    excerpt: str = ""


def _direct(raw: str) -> str | None:
    return raw.strip()


def _fenced(raw: str) -> str | None:
    match = _FENCE_PATTERN.search(raw)
    return match.group(1).strip() if match else None


def _outer_braces(raw: str) -> str | None:
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    return raw[start : end + 1]


def _balanced_scan(raw: str) -> str | None:
    """First brace-balanced object, ignoring braces inside string literals."""
    start = raw.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(raw)):
            char = raw[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    candidate = raw[start : index + 1]
                    if '"globalInsights"' in candidate or '"global_insights"' in candidate:
                        return candidate
                    break
        start = raw.find("{", start + 1)
    return None


EXTRACTION_STRATEGIES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("direct", _direct),
    ("fenced", _fenced),
    ("outer_braces", _outer_braces),
    ("balanced_scan", _balanced_scan),
)


def _clean_strings(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [value.strip() for value in values if isinstance(value, str) and value.strip()]


def _coerce(payload: Any, strategy: str) -> ParsedInsights | None:
    if not isinstance(payload, dict):
        return None

    global_insights = _clean_strings(
        payload.get("globalInsights", payload.get("global_insights"))
    )
    if not global_insights:
        return None

    raw_channels = payload.get("channelInsights", payload.get("channel_insights")) or {}
    channel_insights: dict[str, list[str]] = {}
    if isinstance(raw_channels, dict):
        for channel_id, items in raw_channels.items():
            cleaned = _clean_strings(items)
            if cleaned:
                channel_insights[str(channel_id)] = cleaned

    return ParsedInsights(
        global_insights=global_insights, channel_insights=channel_insights, strategy=strategy
    )


def parse_insight_reply(raw: str | None) -> ParsedInsights | UnparseableReply:
    if not raw or not raw.strip():
        return UnparseableReply(reason="empty reply")

    saw_json = False
    for name, extract in EXTRACTION_STRATEGIES:
        candidate = extract(raw)
        if not candidate:
            continue
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        saw_json = True
        parsed = _coerce(payload, name)
        if parsed is not None:
            return parsed

    reason = "no global insights in reply" if saw_json else "no JSON object found"
    return UnparseableReply(reason=reason, excerpt=raw.strip()[:_EXCERPT_LENGTH])
