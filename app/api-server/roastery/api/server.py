"""
Roastery API - FastAPI Server

Hosts the response cache: the TTL store, its expiry sweeper, stats headers
and the cache admin endpoints. Feature routers mount on the app returned by
``create_app`` and opt into caching with ``response_cache.cache`` and
``response_cache.invalidate_cache``.
"""

import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.cache_settings import CacheSettings
from src.core.sweeper import CacheSweeper
from src.core.ttl_store import TTLStore

from .response_cache import install_stats_headers
from .routes import cache_admin

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(
    store: TTLStore | None = None,
    settings: CacheSettings | None = None,
) -> FastAPI:
    """Build the API app with its own cache store."""
    settings = settings or CacheSettings.from_env()
    store = store if store is not None else TTLStore()
    sweeper = CacheSweeper(store, interval=settings.sweep_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run the expiry sweeper for the lifetime of the server."""
        sweeper.start()
        logger.info("Response cache initialized")
        yield
        await sweeper.stop()
        store.clear()
        logger.info("Response cache destroyed")

    app = FastAPI(
        title="Roastery API",
        description="Coffee roastery backend with in-memory response caching",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.cache_store = store
    app.state.cache_settings = settings
    app.state.cache_sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_stats_headers(app)

    app.include_router(cache_admin.router, prefix="/api/admin/cache", tags=["cache"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "An internal error occurred"},
        )

    @app.get("/health")
    def health():
        """Health check endpoint"""
        return {"status": "ok"}

    @app.get("/")
    def root():
        """Root endpoint with API info"""
        return {
            "name": "Roastery API",
            "version": VERSION,
            "docs": "/docs",
        }

    return app


def main():
    """Main entry point for the server"""
    parser = argparse.ArgumentParser(description="Roastery API Server")
    parser.add_argument(
        "--port",
        type=int,
        default=5001,
        help="Port to run the server on (default: 5001)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    args = parser.parse_args()

    print(f"Starting Roastery API on {args.host}:{args.port}")

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["access"]["fmt"] = "%(asctime)s %(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"
    log_config["formatters"]["default"]["fmt"] = "%(asctime)s %(levelprefix)s %(message)s"
    log_config["formatters"]["access"]["datefmt"] = "%H:%M:%S"
    log_config["formatters"]["default"]["datefmt"] = "%H:%M:%S"

    # A single worker: the cache lives in this process's memory.
    uvicorn.run(
        "roastery.api.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level="info",
        log_config=log_config,
    )


if __name__ == "__main__":
    main()
