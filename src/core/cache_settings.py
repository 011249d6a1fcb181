"""Cache configuration: TTL presets and environment-driven settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

logger = logging.getLogger(__name__)


class CacheTTL:
    """Default TTL presets in seconds."""

    SHORT = 60
    MEDIUM = 5 * 60
    LONG = 15 * 60
    PRODUCT = 10 * 60
    CATEGORY = 15 * 60
    ORDER = 60
    SETTINGS = 30 * 60
    USER_PROFILE = 5 * 60

    @classmethod
    def presets(cls) -> dict[str, float]:
        return {
            name.lower(): value
            for name, value in vars(cls).items()
            if name.isupper() and isinstance(value, (int, float))
        }


DEFAULT_CORS_ORIGINS = (
    "http://localhost",
    "http://127.0.0.1",
    "http://localhost:3000",
    "http://localhost:5173",
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning(f"Ignoring invalid boolean for {name}: {raw!r}")
    return default


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid number for {name}: {raw!r}")
        return default


@dataclass
class CacheSettings:
    """Runtime settings for the response cache."""

    enabled: bool = True
    ttl_presets: dict[str, float] = field(default_factory=CacheTTL.presets)
    sweep_interval: float = 30.0
    expose_stats_headers: bool = True
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    def resolve_ttl(self, ttl: float | str) -> float:
        """Turn a preset name or a number of seconds into seconds."""
        if isinstance(ttl, str):
            try:
                return self.ttl_presets[ttl.lower()]
            except KeyError:
                raise ValueError(f"Unknown cache TTL preset: {ttl}") from None
        return float(ttl)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CacheSettings:
        env = os.environ if environ is None else environ
        presets = CacheTTL.presets()
        for name in ("short", "medium", "long"):
            presets[name] = _env_float(env, f"ROASTERY_CACHE_TTL_{name.upper()}", presets[name])

        origins = env.get("ROASTERY_CORS_ORIGINS")
        if origins:
            cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
        else:
            cors_origins = list(DEFAULT_CORS_ORIGINS)

        return cls(
            enabled=_env_bool(env, "ROASTERY_CACHE_ENABLED", True),
            ttl_presets=presets,
            sweep_interval=_env_float(env, "ROASTERY_CACHE_SWEEP_INTERVAL", 30.0),
            expose_stats_headers=_env_bool(env, "ROASTERY_CACHE_STATS_HEADERS", True),
            cors_origins=cors_origins,
        )
