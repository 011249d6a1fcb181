"""Response caching for FastAPI routes.

Endpoints opt in with decorators and live on a router built with
``APIRouter(route_class=CacheAwareRoute)``::

    router = APIRouter(route_class=CacheAwareRoute)

    @router.get("/products")
    @cache("product", CacheTTL.PRODUCT)
    async def list_products(): ...

    @router.post("/products", status_code=201)
    @invalidate_cache("product")
    async def create_product(data: ProductCreate): ...

Decorators go below the router decorator so the route sees them when it is
registered. The store and settings are read from ``app.state`` on every
request, so each app (and each test) owns its own cache.

The cache lookup is the last dependency of a cached route: router, route and
endpoint dependencies (authentication included) run before a hit is served.
Hits replay the exact bytes and content type of the first response.

A read that started before an invalidation may store its result right after
the namespace was cleared; that entry lives until its TTL runs out.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.dependencies.utils import get_parameterless_sub_dependant
from fastapi.routing import APIRoute
from starlette.responses import Response

from src.core.cache_settings import CacheSettings, CacheTTL
from src.core.ttl_store import CacheStats, TTLStore

logger = logging.getLogger(__name__)

CACHE_POLICY_ATTR = "__response_cache__"
INVALIDATES_ATTR = "__invalidates_cache__"

_MISSING = object()
_DEFAULT_SETTINGS = CacheSettings()


@dataclass(frozen=True)
class CachePolicy:
    """How a GET endpoint's responses are cached."""

    namespace: str
    ttl: float | str = CacheTTL.MEDIUM
    key_builder: Callable[[Request], str] | None = None


@dataclass(frozen=True)
class CachedResponse:
    """A captured JSON response body, replayed verbatim on hits."""

    body: bytes
    content_type: str

    def __len__(self) -> int:
        return len(self.body)

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass
class _Lookup:
    store: TTLStore
    namespace: str
    key: str


class _CacheHit(Exception):
    def __init__(self, cached: CachedResponse):
        super().__init__("cache hit")
        self.cached = cached


def default_cache_key(request: Request) -> str:
    """Request path plus query string."""
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def cache(
    namespace: str,
    ttl: float | str = CacheTTL.MEDIUM,
    key_builder: Callable[[Request], str] | None = None,
):
    """Cache successful JSON responses of a GET endpoint.

    ``ttl`` is seconds or a preset name such as ``"short"``.
    """
    if not namespace:
        raise ValueError("Cache namespace must not be empty")
    policy = CachePolicy(namespace=namespace, ttl=ttl, key_builder=key_builder)

    def decorator(func):
        setattr(func, CACHE_POLICY_ATTR, policy)
        return func

    return decorator


def invalidate_cache(*namespaces: str):
    """Drop the given namespaces after the endpoint succeeds."""
    if not namespaces or not all(namespaces):
        raise ValueError("invalidate_cache needs at least one non-empty namespace")

    def decorator(func):
        setattr(func, INVALIDATES_ATTR, tuple(namespaces))
        return func

    return decorator


def _store_for(request: Request) -> TTLStore | None:
    return getattr(request.app.state, "cache_store", None)


def _settings_for(request: Request) -> CacheSettings:
    return getattr(request.app.state, "cache_settings", None) or _DEFAULT_SETTINGS


def get_cache_store(request: Request) -> TTLStore:
    """FastAPI dependency returning the app's cache store."""
    store = _store_for(request)
    if store is None:
        raise HTTPException(status_code=503, detail="Cache store is not configured")
    return store


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _capture(response: Response) -> CachedResponse | None:
    """The response's body when it is JSON, else None."""
    body = getattr(response, "body", None)
    if body is None:
        return None
    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("application/json"):
        return None
    json.loads(body)
    return CachedResponse(body=bytes(body), content_type=content_type)


async def _serve_cached_response(request: Request) -> None:
    """Last dependency of a cached route: raise on a hit."""
    lookup: _Lookup | None = getattr(request.state, "response_cache_lookup", None)
    if lookup is None:
        return
    try:
        cached = lookup.store.get(lookup.namespace, lookup.key, default=_MISSING)
    except Exception:
        logger.exception(f"Cache lookup failed for {lookup.namespace}")
        return
    if cached is _MISSING:
        logger.debug(f"Cache MISS: {lookup.namespace}:{lookup.key}")
        return
    logger.debug(f"Cache HIT: {lookup.namespace}:{lookup.key}")
    raise _CacheHit(cached)


def invalidate_namespaces(store: TTLStore | None, namespaces: tuple[str, ...]) -> None:
    """Best-effort namespace invalidation. Never raises."""
    if store is None:
        logger.warning(f"No cache store configured, skipping invalidation of {namespaces}")
        return
    for namespace in namespaces:
        try:
            count = store.delete_namespace(namespace)
        except Exception:
            logger.exception(f"Failed to invalidate cache namespace {namespace}")
            continue
        logger.info(f"Invalidated {count} entries from {namespace} cache")


class CacheAwareRoute(APIRoute):
    """APIRoute that applies ``cache`` / ``invalidate_cache`` markers."""

    def __init__(self, path: str, endpoint: Callable[..., Any], **kwargs: Any):
        super().__init__(path, endpoint, **kwargs)
        if getattr(endpoint, CACHE_POLICY_ATTR, None) is not None:
            # Appended after the endpoint's own dependencies so they run first.
            self.dependant.dependencies.append(
                get_parameterless_sub_dependant(
                    depends=Depends(_serve_cached_response, use_cache=False),
                    path=self.path_format,
                )
            )

    def get_route_handler(self) -> Callable:
        handler = super().get_route_handler()
        policy: CachePolicy | None = getattr(self.endpoint, CACHE_POLICY_ATTR, None)
        invalidates: tuple[str, ...] = getattr(self.endpoint, INVALIDATES_ATTR, ())
        if policy is None and not invalidates:
            return handler

        warned_presets: set[str] = set()

        def resolve_ttl(settings: CacheSettings) -> float | None:
            try:
                return settings.resolve_ttl(policy.ttl)
            except ValueError:
                if policy.ttl not in warned_presets:
                    warned_presets.add(policy.ttl)
                    logger.warning(
                        f"Unknown cache TTL preset {policy.ttl!r} for {self.path}; "
                        "responses will not be cached"
                    )
                return None

        async def cache_aware_handler(request: Request) -> Response:
            store = _store_for(request)
            settings = _settings_for(request)

            lookup = None
            ttl = None
            if (
                policy is not None
                and request.method == "GET"
                and store is not None
                and settings.enabled
            ):
                ttl = resolve_ttl(settings)
                if ttl is not None:
                    try:
                        key = (policy.key_builder or default_cache_key)(request)
                    except Exception:
                        logger.exception(f"Cache key generation failed for {policy.namespace}")
                    else:
                        lookup = _Lookup(store=store, namespace=policy.namespace, key=key)
                        request.state.response_cache_lookup = lookup

            try:
                response = await handler(request)
            except _CacheHit as hit:
                return Response(
                    content=hit.cached.body,
                    status_code=200,
                    headers={"content-type": hit.cached.content_type, "X-Cache": "HIT"},
                )

            if lookup is not None:
                _store_response(lookup, ttl, response)
            if invalidates and _is_success(response.status_code):
                invalidate_namespaces(store, invalidates)
            return response

        return cache_aware_handler


def _store_response(lookup: _Lookup, ttl: float, response: Response) -> None:
    response.headers["X-Cache"] = "MISS"
    if not _is_success(response.status_code):
        return
    try:
        captured = _capture(response)
        if captured is None:
            return
        lookup.store.set(lookup.namespace, lookup.key, captured, ttl)
    except Exception:
        logger.exception(f"Failed to cache response for {lookup.namespace}:{lookup.key}")


def stats_headers(stats: CacheStats) -> dict[str, str]:
    """Debug headers describing the cache."""
    return {
        "X-Cache-Hit-Rate": f"{stats.hit_rate:.2f}%",
        "X-Cache-Size": str(stats.size),
    }


def install_stats_headers(app: FastAPI) -> None:
    """Attach cache stats headers to every response when enabled."""

    @app.middleware("http")
    async def add_cache_stats_headers(request: Request, call_next):
        response = await call_next(request)
        if not _settings_for(request).expose_stats_headers:
            return response
        store = _store_for(request)
        if store is None:
            return response
        try:
            response.headers.update(stats_headers(store.stats()))
        except Exception:
            logger.exception("Failed to attach cache stats headers")
        return response
