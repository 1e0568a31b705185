"""HTTP response caching for FastAPI GET handlers.

Three decorators share one key scheme (see ``keys.build_cache_key``):

- ``cached``: fixed TTL. Hits return the stored JSON without running the handler.
- ``stale_while_revalidate``: serve whatever is cached immediately, refresh in
  the background once the entry is older than ``stale_seconds``.
- ``etag``: answer ``If-None-Match`` with 304 when the stored entity tag matches.

The decorated handler returns its payload (or a Response) as usual; the
decorator renders it, sets the cache headers, and schedules the store write on
the DetachedTaskRunner so the response is never held up by the store. Store
failures degrade to a miss.

Example:
    response_cache = ResponseCache(store, runner, get_cache_settings())

    @router.get("/profiles/{user_id}")
    @response_cache.cached("profile")
    async def get_profile(user_id: str) -> dict:
        return await profiles.load(user_id)
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import json
import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any

from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from edge_service.core.settings.cache import CacheSettings
from edge_service.infra.cache.keys import build_cache_key, etag_key, meta_key
from edge_service.infra.metrics import tracking

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from edge_service.infra.cache.store import SharedCacheStore
    from edge_service.utils.background import DetachedTaskRunner

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"
CACHE_KEY_HEADER = "X-Cache-Key"
CACHE_AGE_HEADER = "X-Cache-Age"


@dataclass
class _Rendered:
    """A handler result turned into a response plus its JSON payload."""

    response: Response
    payload: Any = None
    has_payload: bool = False
    streamed: bool = False

    @property
    def cacheable(self) -> bool:
        if self.streamed or not self.has_payload:
            return False
        if not 200 <= self.response.status_code < 300:
            return False
        return not (isinstance(self.payload, dict) and self.payload.get("success") is False)


def _render(result: Any) -> _Rendered:
    if isinstance(result, Response):
        if not hasattr(result, "body"):
            # Streaming/file responses: body is not materialized, pass through.
            return _Rendered(response=result, streamed=True)
        content_type = result.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return _Rendered(response=result, payload=json.loads(result.body), has_payload=True)
            except (ValueError, TypeError):
                pass
        return _Rendered(response=result)

    payload = jsonable_encoder(result)
    return _Rendered(response=JSONResponse(content=payload), payload=payload, has_payload=True)


def _request_param(func: Callable[..., Any]) -> tuple[inspect.Signature, str, bool]:
    """Find (or add) the Request parameter FastAPI will inject.

    Returns:
        The signature to publish, the parameter name, and whether it was added
        (an added parameter is stripped before calling the handler).
    """
    sig = inspect.signature(func, eval_str=True)
    for param in sig.parameters.values():
        if param.annotation is Request:
            return sig, param.name, False

    name = "request"
    while name in sig.parameters:
        name = f"_{name}"
    params = list(sig.parameters.values())
    extra = inspect.Parameter(name, inspect.Parameter.KEYWORD_ONLY, annotation=Request)
    # Keyword-only parameters must come before **kwargs.
    if params and params[-1].kind is inspect.Parameter.VAR_KEYWORD:
        params.insert(len(params) - 1, extra)
    else:
        params.append(extra)
    return sig.replace(parameters=params), name, True


async def _invoke(func: Callable[..., Any], kwargs: dict[str, Any]) -> Any:
    result = func(**kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class ResponseCache:
    """Response cache decorators over a shared store and a detached task runner.

    Handler modules are imported before the lifespan connects the store, so a
    cache created without a store (``ResponseCache(settings=...)``) resolves it
    per request from ``app.state.response_cache``.
    """

    def __init__(
        self,
        store: SharedCacheStore | None = None,
        runner: DetachedTaskRunner | None = None,
        settings: CacheSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the response cache.

        Args:
            store: Shared store holding cached payloads; None to resolve from
                app.state per request.
            runner: Runs store writes and refreshes off the request path.
            settings: TTL table, stale threshold and header values.
            clock: Wall-clock seconds, used for stale-while-revalidate ages.
        """
        self.store = store
        self.runner = runner
        self.settings = settings or CacheSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Keys and TTLs
    # ------------------------------------------------------------------

    @staticmethod
    def subject(request: Request) -> str:
        """Authenticated user id, or "anonymous"."""
        user_id = getattr(request.state, "user_id", None)
        return str(user_id) if user_id else "anonymous"

    def key_for(self, resource_type: str, request: Request) -> str:
        # A query string cannot claim another user's entry; only a declared
        # path parameter names a different subject.
        params: dict[str, Any] = dict(request.query_params)
        params["user_id"] = self.subject(request)
        params.update(request.path_params)
        return build_cache_key(resource_type, params)

    def ttl_for(self, resource_type: str, override: int | None = None) -> int:
        return override if override else self.settings.ttl_for(resource_type)

    # ------------------------------------------------------------------
    # Store access that never fails the request
    # ------------------------------------------------------------------

    async def _read(self, *keys: str) -> list[Any]:
        try:
            return list(await asyncio.gather(*(self.store.get(k) for k in keys)))
        except Exception as e:
            tracking.track_cache_store_error("read")
            logger.error(
                "Cache read failed, treating as miss",
                extra={"cache_key": keys[0], "error": str(e)},
                exc_info=True,
            )
            return [None] * len(keys)

    async def _write(self, entries: list[tuple[str, Any]], ttl: int) -> None:
        try:
            await asyncio.gather(*(self.store.set(k, v, ttl) for k, v in entries))
        except Exception as e:
            tracking.track_cache_store_error("write")
            logger.error(
                "Cache write failed",
                extra={"cache_key": entries[0][0], "error": str(e)},
                exc_info=True,
            )

    def _schedule_write(self, entries: list[tuple[str, Any]], ttl: int) -> None:
        self.runner.spawn(self._write(entries, ttl), name="cache_write")

    def _hit_response(self, payload: Any, cache_key: str, state: str) -> JSONResponse:
        return JSONResponse(
            content=payload,
            headers={
                CACHE_HEADER: state,
                CACHE_KEY_HEADER: cache_key,
                "Cache-Control": self.settings.hit_cache_control,
            },
        )

    def _bypass(self, request: Request) -> bool:
        return request.method != "GET" or not self.settings.enabled

    def _backend(self, request: Request) -> ResponseCache | None:
        if self.store is not None and self.runner is not None:
            return self
        return getattr(request.app.state, "response_cache", None)

    # ------------------------------------------------------------------
    # Decorators
    # ------------------------------------------------------------------

    def cached(
        self,
        resource_type: str,
        ttl: int | None = None,
        *,
        condition: Callable[[Request], bool] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
        """Cache successful JSON responses for ``ttl`` seconds.

        Args:
            resource_type: Resource name used for the key and the default TTL.
            ttl: TTL override in seconds.
            condition: Only cache requests for which this returns True.
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
            sig, req_name, injected = _request_param(func)

            @wraps(func)
            async def wrapper(**kwargs: Any) -> Any:
                request: Request = kwargs[req_name]
                if injected:
                    del kwargs[req_name]

                if self._bypass(request) or (condition is not None and not condition(request)):
                    return await _invoke(func, kwargs)
                backend = self._backend(request)
                if backend is None:
                    return await _invoke(func, kwargs)

                cache_key = self.key_for(resource_type, request)
                (cached_value,) = await backend._read(cache_key)
                if cached_value is not None:
                    tracking.track_cache_hit(resource_type)
                    logger.debug("Cache hit", extra={"cache_key": cache_key})
                    return self._hit_response(cached_value, cache_key, "HIT")

                tracking.track_cache_miss(resource_type)
                rendered = _render(await _invoke(func, kwargs))
                if rendered.streamed:
                    return rendered.response

                if rendered.cacheable:
                    backend._schedule_write(
                        [(cache_key, rendered.payload)], self.ttl_for(resource_type, ttl)
                    )
                rendered.response.headers[CACHE_HEADER] = "MISS"
                rendered.response.headers[CACHE_KEY_HEADER] = cache_key
                return rendered.response

            wrapper.__signature__ = sig  # type: ignore[attr-defined]
            return wrapper

        return decorator

    def stale_while_revalidate(
        self,
        resource_type: str,
        stale_seconds: int | None = None,
        fetch: Callable[[Request], Awaitable[Any]] | None = None,
        ttl: int | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
        """Serve cached data at once and refresh it in the background when stale.

        Args:
            resource_type: Resource name used for the key and the default TTL.
            stale_seconds: Age after which a hit triggers a refresh
                (default: CACHE_STALE_SECONDS).
            fetch: Refresh function taking the request. Defaults to calling the
                handler again with the same arguments.
            ttl: TTL override in seconds.
        """
        threshold = self.settings.stale_seconds if stale_seconds is None else stale_seconds

        def decorator(func: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
            sig, req_name, injected = _request_param(func)

            @wraps(func)
            async def wrapper(**kwargs: Any) -> Any:
                request: Request = kwargs[req_name]
                if injected:
                    del kwargs[req_name]

                if self._bypass(request):
                    return await _invoke(func, kwargs)
                backend = self._backend(request)
                if backend is None:
                    return await _invoke(func, kwargs)

                cache_key = self.key_for(resource_type, request)
                cache_meta_key = meta_key(cache_key)
                entry_ttl = self.ttl_for(resource_type, ttl)
                cached_value, meta = await backend._read(cache_key, cache_meta_key)

                if cached_value is not None:
                    now = self._clock()
                    timestamp = meta.get("timestamp") if isinstance(meta, dict) else None
                    age = now - float(timestamp) if timestamp is not None else None
                    is_stale = age is not None and age > threshold

                    if is_stale:
                        backend.runner.spawn(
                            backend._refresh(
                                cache_key, entry_ttl, fetch, func, request, dict(kwargs)
                            ),
                            name="swr_refresh",
                            key=cache_key,
                        )

                    tracking.track_cache_hit(resource_type, stale=is_stale)
                    response = self._hit_response(
                        cached_value, cache_key, "STALE" if is_stale else "HIT"
                    )
                    response.headers[CACHE_AGE_HEADER] = str(round(age) if age is not None else 0)
                    return response

                tracking.track_cache_miss(resource_type)
                rendered = _render(await _invoke(func, kwargs))
                if rendered.streamed:
                    return rendered.response

                if rendered.cacheable:
                    backend._schedule_write(
                        [
                            (cache_key, rendered.payload),
                            (cache_meta_key, {"timestamp": self._clock()}),
                        ],
                        entry_ttl,
                    )
                rendered.response.headers[CACHE_HEADER] = "MISS"
                rendered.response.headers[CACHE_KEY_HEADER] = cache_key
                return rendered.response

            wrapper.__signature__ = sig  # type: ignore[attr-defined]
            return wrapper

        return decorator

    async def _refresh(
        self,
        cache_key: str,
        ttl: int,
        fetch: Callable[[Request], Awaitable[Any]] | None,
        func: Callable[..., Any],
        request: Request,
        kwargs: dict[str, Any],
    ) -> None:
        result = await fetch(request) if fetch is not None else await _invoke(func, kwargs)
        rendered = _render(result)
        if not rendered.cacheable:
            logger.info(
                "Background refresh produced an uncacheable response",
                extra={"cache_key": cache_key, "status_code": rendered.response.status_code},
            )
            return
        await self._write(
            [(cache_key, rendered.payload), (meta_key(cache_key), {"timestamp": self._clock()})],
            ttl,
        )
        logger.debug("Cache refreshed", extra={"cache_key": cache_key})

    def etag(
        self,
        resource_type: str,
        ttl: int | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Awaitable[Any]]]:
        """Answer conditional GETs with 304 when the stored ETag still matches.

        The entity tag is the quoted MD5 hex digest of the JSON body sent to
        the client; it is stored under ``<key>:etag`` for the resource TTL.
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Awaitable[Any]]:
            sig, req_name, injected = _request_param(func)

            @wraps(func)
            async def wrapper(**kwargs: Any) -> Any:
                request: Request = kwargs[req_name]
                if injected:
                    del kwargs[req_name]

                if self._bypass(request):
                    return await _invoke(func, kwargs)
                backend = self._backend(request)
                if backend is None:
                    return await _invoke(func, kwargs)

                cache_etag_key = etag_key(self.key_for(resource_type, request))
                client_tags = parse_if_none_match(request.headers.get("if-none-match"))
                if client_tags:
                    (server_tag,) = await backend._read(cache_etag_key)
                    if server_tag and server_tag in client_tags:
                        tracking.track_cache_not_modified(resource_type)
                        return Response(status_code=304, headers={"ETag": server_tag})

                rendered = _render(await _invoke(func, kwargs))
                if rendered.cacheable:
                    tag = compute_etag(rendered.response.body)
                    rendered.response.headers["ETag"] = tag
                    backend._schedule_write(
                        [(cache_etag_key, tag)], self.ttl_for(resource_type, ttl)
                    )
                return rendered.response

            wrapper.__signature__ = sig  # type: ignore[attr-defined]
            return wrapper

        return decorator

    # ------------------------------------------------------------------
    # Warming
    # ------------------------------------------------------------------

    async def warm(
        self,
        resource_type: str,
        data: Any,
        params: dict[str, Any] | None = None,
        ttl: int | None = None,
    ) -> bool:
        """Preload a cache entry, e.g. right after a handler computed it elsewhere.

        Returns:
            True if stored, False if the store failed.
        """
        if self.store is None:
            msg = "warm() needs a ResponseCache bound to a store"
            raise RuntimeError(msg)
        cache_key = build_cache_key(resource_type, params)
        try:
            await self.store.set(
                cache_key, jsonable_encoder(data), self.ttl_for(resource_type, ttl)
            )
        except Exception as e:
            tracking.track_cache_store_error("write")
            logger.error(
                "Cache warm failed",
                extra={"cache_key": cache_key, "error": str(e)},
                exc_info=True,
            )
            return False
        return True


def compute_etag(body: bytes) -> str:
    """Quoted MD5 hex digest of a response body."""
    return f'"{hashlib.md5(body, usedforsecurity=False).hexdigest()}"'


def parse_if_none_match(header: str | None) -> set[str]:
    """Entity tags listed in an If-None-Match header, weak prefixes dropped."""
    if not header:
        return set()
    tags: set[str] = set()
    for part in header.split(","):
        tag = part.strip()
        if tag.startswith("W/"):
            tag = tag[2:]
        if tag:
            tags.add(tag)
    return tags
