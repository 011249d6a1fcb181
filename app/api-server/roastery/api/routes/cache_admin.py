"""Cache inspection and invalidation endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from src.core.ttl_store import TTLStore

from ..response_cache import get_cache_store

router = APIRouter()
logger = logging.getLogger(__name__)


class CacheStatsData(BaseModel):
    stats: dict
    memory: dict
    namespaces: dict[str, int]


class CacheStatsResponse(BaseModel):
    success: bool = True
    data: CacheStatsData


class InvalidationData(BaseModel):
    namespace: str | None = None
    removed: int


class InvalidationResponse(BaseModel):
    success: bool = True
    data: InvalidationData


@router.get("/stats", response_model=CacheStatsResponse)
def get_cache_stats(store: TTLStore = Depends(get_cache_store)) -> CacheStatsResponse:
    """Counters, approximate memory and per-namespace sizes."""
    return CacheStatsResponse(
        data=CacheStatsData(
            stats=store.stats().to_dict(),
            memory=store.memory_info().to_dict(),
            namespaces=store.namespaces(),
        )
    )


@router.post("/cleanup", response_model=InvalidationResponse)
def cleanup_expired(store: TTLStore = Depends(get_cache_store)) -> InvalidationResponse:
    """Evict expired entries now instead of waiting for the sweeper."""
    removed = store.cleanup()
    return InvalidationResponse(data=InvalidationData(removed=removed))


@router.delete("/{namespace}", response_model=InvalidationResponse)
def invalidate_namespace(
    namespace: str,
    store: TTLStore = Depends(get_cache_store),
) -> InvalidationResponse:
    """Drop every cached response in a namespace."""
    namespace = namespace.strip()
    if not namespace:
        raise HTTPException(status_code=400, detail="Namespace must not be blank")

    removed = store.delete_namespace(namespace)
    logger.info(f"Admin invalidated {removed} entries from {namespace} cache")
    return InvalidationResponse(data=InvalidationData(namespace=namespace, removed=removed))


@router.delete("", response_model=InvalidationResponse)
def clear_cache(store: TTLStore = Depends(get_cache_store)) -> InvalidationResponse:
    """Drop every cached response."""
    removed = store.clear()
    logger.info(f"Admin cleared {removed} cache entries")
    return InvalidationResponse(data=InvalidationData(removed=removed))
