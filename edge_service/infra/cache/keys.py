"""Cache key derivation for cached API resources.

Keys are stable functions of the resource type and the request parameters,
so a mutating handler can rebuild the exact key it needs to invalidate:

    >>> build_cache_key("profile", {"user_id": "42"})
    'profile:42'
    >>> build_cache_key("matches", {"user_id": "42"})
    'matches:42:1'
    >>> build_cache_key("nearby", {"user_id": "42", "limit": "5"})
    'api:nearby:{"limit":"5","user_id":"42"}'
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any


class CacheKeyPrefix(StrEnum):
    """Key namespaces in the shared store."""

    USER = "user:"
    PROFILE = "profile:"
    PREFERENCES = "prefs:"
    DISCOVERY = "discovery:"
    MATCHES = "matches:"
    CONVERSATIONS = "conv:"
    LEADERBOARD = "leaderboard:"
    RATE_LIMIT = "ratelimit:"


# Every namespace holding per-user entries, in invalidation order.
USER_SCOPED_PREFIXES: tuple[CacheKeyPrefix, ...] = (
    CacheKeyPrefix.USER,
    CacheKeyPrefix.PROFILE,
    CacheKeyPrefix.PREFERENCES,
    CacheKeyPrefix.DISCOVERY,
    CacheKeyPrefix.MATCHES,
    CacheKeyPrefix.CONVERSATIONS,
)

META_SUFFIX = ":meta"
ETAG_SUFFIX = ":etag"


def _param(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name)
    return "" if value is None else str(value)


def _page(params: Mapping[str, Any]) -> str:
    return _param(params, "page") or "1"


def build_cache_key(resource_type: str, params: Mapping[str, Any] | None = None) -> str:
    """Build the store key for ``resource_type`` and its parameters.

    Known resource types use compact templates keyed by ``user_id``; any other
    type falls back to ``api:<type>:<sorted JSON of params>``.

    Args:
        resource_type: Resource name (profile, discovery, matches, ...).
        params: Subject and request parameters (``user_id``, ``page``, ...).

    Returns:
        The key, without the store-level namespace prefix.
    """
    params = params or {}
    user_id = _param(params, "user_id")

    match resource_type:
        case "discovery":
            return (
                f"{CacheKeyPrefix.DISCOVERY}{user_id}:{_param(params, 'lat')}:"
                f"{_param(params, 'lng')}:{_param(params, 'radius')}:{_page(params)}"
            )
        case "profile":
            return f"{CacheKeyPrefix.PROFILE}{user_id}"
        case "matches":
            return f"{CacheKeyPrefix.MATCHES}{user_id}:{_page(params)}"
        case "conversations":
            return f"{CacheKeyPrefix.CONVERSATIONS}{user_id}"
        case "preferences":
            return f"{CacheKeyPrefix.PREFERENCES}{user_id}"
        case "leaderboard":
            return f"{CacheKeyPrefix.LEADERBOARD}{_param(params, 'type')}:{_page(params)}"
        case _:
            encoded = json.dumps(dict(params), sort_keys=True, separators=(",", ":"), default=str)
            return f"api:{resource_type}:{encoded}"


def meta_key(cache_key: str) -> str:
    return f"{cache_key}{META_SUFFIX}"


def etag_key(cache_key: str) -> str:
    return f"{cache_key}{ETAG_SUFFIX}"


def user_cache_patterns(user_id: str) -> list[str]:
    """Glob patterns covering every cached entry that belongs to ``user_id``.

    Each namespace gets an exact pattern and a ``:*`` pattern, so user ``42``
    never matches user ``420``.
    """
    patterns: list[str] = []
    for prefix in USER_SCOPED_PREFIXES:
        patterns.append(f"{prefix}{user_id}")
        patterns.append(f"{prefix}{user_id}:*")
    return patterns
