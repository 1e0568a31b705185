"""Route table mapping method + path to a rate limit rule.

Patterns are slash-separated segments:

- ``auth``: literal, matches exactly
- ``:id``: matches any single segment
- ``*``: matches any single segment; as the last segment it matches the rest
  of the path, including nothing (``/api/swipes/*`` matches ``/api/swipes``)

Paths are normalized first so ObjectIds and numeric ids share one counter key
space and one pattern: ``/api/users/5f1d7c0e9b1e8a3d4c2b1a09/photos/3`` becomes
``/api/users/:id/photos/:id``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from edge_service.core.settings.ratelimit import RateLimitRule

_OBJECT_ID_SEGMENT = re.compile(r"/[a-fA-F0-9]{24}(?=/|$)")
_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


def normalize_path(path: str) -> str:
    """Collapse id-like path segments to ``:id``."""
    path = _OBJECT_ID_SEGMENT.sub("/:id", path)
    return _NUMERIC_SEGMENT.sub("/:id", path)


def _segments(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def match_pattern(pattern: str, path: str) -> bool:
    """Whether a normalized ``path`` matches ``pattern``."""
    expected = _segments(pattern)
    actual = _segments(path)

    for index, segment in enumerate(expected):
        is_last = index == len(expected) - 1
        if segment == "*" and is_last:
            return True
        if index >= len(actual):
            return False
        if segment == "*" or segment.startswith(":"):
            continue
        if segment != actual[index]:
            return False
    return len(expected) == len(actual)


class RouteTable:
    """Ordered rules with a fallback; the first matching rule wins."""

    def __init__(self, rules: Iterable[RateLimitRule], default_rule: RateLimitRule) -> None:
        self.rules = list(rules)
        self.default_rule = default_rule

    def match(self, method: str, path: str) -> RateLimitRule:
        method = method.upper()
        normalized = normalize_path(path)
        for rule in self.rules:
            if rule.methods and method not in rule.methods:
                continue
            if match_pattern(rule.pattern, normalized):
                return rule
        return self.default_rule
