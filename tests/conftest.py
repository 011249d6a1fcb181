"""Pytest configuration and shared fixtures."""

from collections import Counter

import pytest
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.testclient import TestClient
from pydantic import BaseModel

from roastery.api.response_cache import CacheAwareRoute, cache, invalidate_cache
from roastery.api.server import create_app
from src.core.cache_settings import CacheSettings
from src.core.ttl_store import TTLStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return TTLStore(clock=clock)


@pytest.fixture
def settings():
    """Settings with the background sweeper off."""
    return CacheSettings(sweep_interval=0)


class ProductIn(BaseModel):
    name: str
    price: float


class ProductOut(BaseModel):
    id: str
    name: str
    price: float


def build_catalog_router(calls: Counter, state: dict) -> APIRouter:
    """A small roastery catalog wired with the response cache."""
    router = APIRouter(route_class=CacheAwareRoute)

    @router.get("/products")
    @cache("product", 60)
    async def list_products(category: str | None = None):
        calls["list_products"] += 1
        items = [p for p in state["products"].values() if category in (None, p["category"])]
        return {"success": True, "data": items}

    @router.get("/products/{product_id}", response_model=ProductOut)
    @cache("product", "product")
    def get_product(product_id: str):
        calls["get_product"] += 1
        product = state["products"].get(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    @router.post("/products", status_code=201)
    @invalidate_cache("product")
    async def create_product(data: ProductIn):
        calls["create_product"] += 1
        product_id = f"p{len(state['products']) + 1}"
        product = {"id": product_id, "name": data.name, "price": data.price, "category": "coffee"}
        state["products"][product_id] = product
        return {"success": True, "data": product}

    @router.delete("/products/{product_id}")
    @invalidate_cache("product", "dashboard")
    async def delete_product(product_id: str):
        calls["delete_product"] += 1
        if state["products"].pop(product_id, None) is None:
            return JSONResponse(status_code=404, content={"success": False})
        return {"success": True}

    @router.get("/dashboard")
    @cache("dashboard", 30)
    async def dashboard():
        calls["dashboard"] += 1
        if state.get("dashboard_broken"):
            return JSONResponse(status_code=500, content={"success": False, "message": "boom"})
        return {"success": True, "data": {"products": len(state["products"])}}

    @router.get("/orders")
    @cache("order", "short", key_builder=lambda request: request.headers.get("x-user", "anonymous"))
    async def list_orders():
        calls["list_orders"] += 1
        return {"success": True, "data": [], "call": calls["list_orders"]}

    @router.get("/export")
    @cache("report", 60)
    async def export_products():
        calls["export"] += 1
        return PlainTextResponse("id,name\n")

    @router.get("/uncached")
    async def uncached():
        calls["uncached"] += 1
        return {"success": True}

    return router


@pytest.fixture
def catalog_state():
    return {
        "products": {
            "p1": {"id": "p1", "name": "Ethiopia Yirgacheffe", "price": 18.5, "category": "coffee"},
            "p2": {"id": "p2", "name": "V60 Dripper", "price": 25.0, "category": "accessory"},
        }
    }


@pytest.fixture
def calls():
    return Counter()


@pytest.fixture
def catalog_app(store, settings, calls, catalog_state):
    app = create_app(store=store, settings=settings)
    app.include_router(build_catalog_router(calls, catalog_state), prefix="/api")
    return app


@pytest.fixture
def client(catalog_app):
    return TestClient(catalog_app)


@pytest.fixture
def make_client(store, calls, catalog_state):
    """Build a catalog client around the shared store with custom settings."""

    def _make(settings: CacheSettings) -> TestClient:
        app = create_app(store=store, settings=settings)
        app.include_router(build_catalog_router(calls, catalog_state), prefix="/api")
        return TestClient(app)

    return _make
