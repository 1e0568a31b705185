"""Tests for the response cache decorators.

Tests cover:
- cached: MISS then HIT, non-GET bypass, uncacheable payloads
- stale_while_revalidate: fresh HIT, STALE with background refresh
- etag: 304 on matching If-None-Match, in memory and over Redis
- store failures degrading to a miss
- unbound caches resolving the app-wide cache from app.state
"""

from __future__ import annotations

import json
from typing import Any

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from edge_service.core.settings import CacheSettings, RedisSettings
from edge_service.infra.cache.memory import MemoryCache
from edge_service.infra.cache.redis import RedisCache
from edge_service.infra.cache.response import (
    ResponseCache,
    compute_etag,
    parse_if_none_match,
)


class BrokenStore(MemoryCache):
    """Store whose reads and writes always fail."""

    async def get(self, key: str) -> Any:
        msg = "Connection refused"
        raise ConnectionError(msg)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        msg = "Connection refused"
        raise ConnectionError(msg)


class StringRedisClient:
    """Stands in for redis.asyncio.Redis with decode_responses=True."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value
        return True


class Counter:
    def __init__(self) -> None:
        self.calls = 0

    def next(self) -> int:
        self.calls += 1
        return self.calls


@pytest.fixture
def counter() -> Counter:
    return Counter()


def build_app(cache: ResponseCache, counter: Counter) -> FastAPI:
    app = FastAPI()

    @app.get("/profiles/{user_id}")
    @cache.cached("profile", ttl=300)
    async def get_profile(user_id: str) -> dict:
        return {"id": user_id, "version": counter.next()}

    @app.get("/flaky")
    @cache.cached("flaky")
    async def flaky() -> dict:
        counter.next()
        return {"success": False, "message": "upstream failed"}

    @app.get("/matches")
    @cache.stale_while_revalidate("matches", ttl=600)
    async def get_matches(request: Request, page: int = 1) -> dict:
        return {"page": page, "version": counter.next(), "path": request.url.path}

    @app.get("/preferences/{user_id}")
    @cache.etag("preferences")
    async def get_preferences(user_id: str) -> dict:
        counter.next()
        return {"id": user_id, "distance": 25}

    return app


async def client_for(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestCached:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, response_cache, runner, counter):
        async with await client_for(build_app(response_cache, counter)) as ac:
            first = await ac.get("/profiles/42")
            await runner.drain()
            second = await ac.get("/profiles/42")

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert first.headers["X-Cache-Key"] == "profile:42"
        assert second.headers["X-Cache"] == "HIT"
        assert second.headers["Cache-Control"] == "private, max-age=60"
        assert second.json() == first.json() == {"id": "42", "version": 1}
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, response_cache, runner, counter, clock):
        async with await client_for(build_app(response_cache, counter)) as ac:
            await ac.get("/profiles/42")
            await runner.drain()
            clock.advance(301)
            response = await ac.get("/profiles/42")

        assert response.headers["X-Cache"] == "MISS"
        assert response.json()["version"] == 2

    @pytest.mark.asyncio
    async def test_unsuccessful_payload_not_cached(self, response_cache, runner, counter):
        async with await client_for(build_app(response_cache, counter)) as ac:
            await ac.get("/flaky")
            await runner.drain()
            response = await ac.get("/flaky")

        assert response.headers["X-Cache"] == "MISS"
        assert counter.calls == 2

    @pytest.mark.asyncio
    async def test_disabled_cache_passes_through(self, memory_store, runner, counter):
        cache = ResponseCache(memory_store, runner, CacheSettings(enabled=False))
        async with await client_for(build_app(cache, counter)) as ac:
            await ac.get("/profiles/42")
            await runner.drain()
            response = await ac.get("/profiles/42")

        assert "X-Cache" not in response.headers
        assert counter.calls == 2

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_miss(self, runner, counter, cache_settings):
        cache = ResponseCache(BrokenStore(), runner, cache_settings)
        async with await client_for(build_app(cache, counter)) as ac:
            first = await ac.get("/profiles/42")
            await runner.drain()
            second = await ac.get("/profiles/42")

        assert first.status_code == second.status_code == 200
        assert second.headers["X-Cache"] == "MISS"
        assert counter.calls == 2


class TestStaleWhileRevalidate:
    @pytest.mark.asyncio
    async def test_fresh_entry_is_a_hit(self, response_cache, runner, counter, clock):
        async with await client_for(build_app(response_cache, counter)) as ac:
            first = await ac.get("/matches")
            await runner.drain()
            clock.advance(30)
            second = await ac.get("/matches")

        assert first.headers["X-Cache"] == "MISS"
        assert first.headers["X-Cache-Key"] == "matches:anonymous:1"
        assert second.headers["X-Cache"] == "HIT"
        assert second.headers["X-Cache-Age"] == "30"
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_stale_entry_served_then_refreshed(self, response_cache, runner, counter, clock):
        async with await client_for(build_app(response_cache, counter)) as ac:
            await ac.get("/matches")
            await runner.drain()
            clock.advance(61)

            stale = await ac.get("/matches")
            await runner.drain()
            refreshed = await ac.get("/matches")

        assert stale.headers["X-Cache"] == "STALE"
        assert stale.json()["version"] == 1
        assert refreshed.headers["X-Cache"] == "HIT"
        assert refreshed.headers["X-Cache-Age"] == "0"
        assert refreshed.json() == {"page": 1, "version": 2, "path": "/matches"}

    @pytest.mark.asyncio
    async def test_query_params_get_separate_entries(self, response_cache, runner, counter):
        async with await client_for(build_app(response_cache, counter)) as ac:
            await ac.get("/matches", params={"page": 1})
            await runner.drain()
            response = await ac.get("/matches", params={"page": 2})

        assert response.headers["X-Cache"] == "MISS"
        assert response.headers["X-Cache-Key"] == "matches:anonymous:2"

    @pytest.mark.asyncio
    async def test_query_cannot_claim_another_users_entry(self, response_cache, runner, counter):
        app = build_app(response_cache, counter)

        class AsUser:
            def __init__(self, inner, user_id: str) -> None:
                self.inner = inner
                self.user_id = user_id

            async def __call__(self, scope, receive, send):
                scope.setdefault("state", {})["user_id"] = self.user_id
                await self.inner(scope, receive, send)

        async with await client_for(app) as ac:
            anonymous = await ac.get("/matches", params={"user_id": "42"})
            await runner.drain()
        async with await client_for(AsUser(app, "42")) as ac:
            owner = await ac.get("/matches")

        assert anonymous.headers["X-Cache-Key"] == "matches:anonymous:1"
        assert owner.headers["X-Cache"] == "MISS"
        assert owner.headers["X-Cache-Key"] == "matches:42:1"
        assert counter.calls == 2


class TestEtag:
    @pytest.mark.asyncio
    async def test_matching_tag_returns_304(self, response_cache, runner, counter):
        async with await client_for(build_app(response_cache, counter)) as ac:
            first = await ac.get("/preferences/42")
            await runner.drain()
            tag = first.headers["ETag"]
            second = await ac.get("/preferences/42", headers={"If-None-Match": tag})

        assert first.status_code == 200
        assert tag == compute_etag(first.content)
        assert second.status_code == 304
        assert second.headers["ETag"] == tag
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_matching_tag_returns_304_over_redis(self, runner, counter, cache_settings):
        redis_client = StringRedisClient()
        store = RedisCache(RedisSettings(key_prefix="edge:"), client=redis_client)  # type: ignore
        cache = ResponseCache(store, runner, cache_settings)

        async with await client_for(build_app(cache, counter)) as ac:
            first = await ac.get("/preferences/42")
            await runner.drain()
            tag = first.headers["ETag"]
            second = await ac.get("/preferences/42", headers={"If-None-Match": tag})

        assert json.loads(redis_client.data["edge:prefs:42:etag"]) == tag
        assert second.status_code == 304
        assert second.headers["ETag"] == tag
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_mismatched_tag_returns_body(self, response_cache, runner, counter):
        async with await client_for(build_app(response_cache, counter)) as ac:
            await ac.get("/preferences/42")
            await runner.drain()
            response = await ac.get("/preferences/42", headers={"If-None-Match": '"stale"'})

        assert response.status_code == 200
        assert response.json() == {"id": "42", "distance": 25}


class TestUnboundCache:
    @pytest.mark.asyncio
    async def test_resolves_cache_from_app_state(self, response_cache, runner, counter):
        app = build_app(ResponseCache(settings=CacheSettings()), counter)
        app.state.response_cache = response_cache

        async with await client_for(app) as ac:
            await ac.get("/profiles/7")
            await runner.drain()
            response = await ac.get("/profiles/7")

        assert response.headers["X-Cache"] == "HIT"
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_without_app_cache_runs_handler(self, counter):
        app = build_app(ResponseCache(settings=CacheSettings()), counter)

        async with await client_for(app) as ac:
            response = await ac.get("/profiles/7")

        assert response.status_code == 200
        assert "X-Cache" not in response.headers


class TestWarm:
    @pytest.mark.asyncio
    async def test_warm_stores_entry(self, response_cache, memory_store):
        assert await response_cache.warm("profile", {"id": "9"}, {"user_id": "9"}) is True
        assert await memory_store.get("profile:9") == {"id": "9"}

    @pytest.mark.asyncio
    async def test_warm_requires_store(self):
        with pytest.raises(RuntimeError):
            await ResponseCache().warm("profile", {})


def test_parse_if_none_match():
    assert parse_if_none_match(None) == set()
    assert parse_if_none_match('W/"a", "b"') == {'"a"', '"b"'}
