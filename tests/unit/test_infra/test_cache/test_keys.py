"""Tests for cache key derivation."""

from __future__ import annotations

import pytest

from edge_service.infra.cache.keys import (
    build_cache_key,
    etag_key,
    meta_key,
    user_cache_patterns,
)


@pytest.mark.parametrize(
    ("resource_type", "params", "expected"),
    [
        ("profile", {"user_id": "42"}, "profile:42"),
        ("preferences", {"user_id": "42"}, "prefs:42"),
        ("conversations", {"user_id": "42"}, "conv:42"),
        ("matches", {"user_id": "42"}, "matches:42:1"),
        ("matches", {"user_id": "42", "page": 3}, "matches:42:3"),
        ("leaderboard", {"type": "weekly"}, "leaderboard:weekly:1"),
        (
            "discovery",
            {"user_id": "42", "lat": "52.5", "lng": "13.4", "radius": "10", "page": "2"},
            "discovery:42:52.5:13.4:10:2",
        ),
    ],
)
def test_known_resource_templates(resource_type, params, expected):
    assert build_cache_key(resource_type, params) == expected


def test_unknown_resource_uses_sorted_params():
    first = build_cache_key("nearby", {"user_id": "42", "limit": "5"})
    second = build_cache_key("nearby", {"limit": "5", "user_id": "42"})

    assert first == second == 'api:nearby:{"limit":"5","user_id":"42"}'


def test_missing_params_do_not_raise():
    assert build_cache_key("profile") == "profile:"
    assert build_cache_key("nearby") == "api:nearby:{}"


def test_derived_keys():
    assert meta_key("profile:42") == "profile:42:meta"
    assert etag_key("profile:42") == "profile:42:etag"


def test_user_patterns_do_not_overlap_other_users():
    patterns = user_cache_patterns("42")

    assert "profile:42" in patterns
    assert "matches:42:*" in patterns
    assert all("420" not in pattern for pattern in patterns)
    assert not any(pattern.startswith("leaderboard:") for pattern in patterns)
