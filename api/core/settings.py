"""
Environment-driven settings.

Every accessor reads the environment at call time so tests can monkeypatch
variables without reloading modules. Missing or malformed values fall back
to the defaults below.
"""

from __future__ import annotations

import os

DEFAULT_REGISTRY_BASE_URL = "https://recherche-entreprises.api.gouv.fr"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# Database

def database_url() -> str:
    return os.environ.get("DATABASE_URL", "").strip()


def db_command_timeout_s() -> float:
    return _env_float("DB_COMMAND_TIMEOUT_S", 60.0)


def db_pool_max_size() -> int:
    return max(1, _env_int("DB_POOL_MAX_SIZE", 10))


# Geographic search caps (also the upper bounds of the geo request bodies)

def max_results() -> int:
    """
    Hard ceiling on distinct owners fetched by one geographic query.
    """
    return max(1, _env_int("GEO_MAX_RESULTS", 10000))


def max_enrichment_batch() -> int:
    return max(0, _env_int("GEO_MAX_ENRICHMENT_BATCH", 100))


def max_polygon_points() -> int:
    return max(3, _env_int("GEO_MAX_POLYGON_POINTS", 100))


def max_radius_meters() -> float:
    return _env_float("GEO_MAX_RADIUS_METERS", 50000.0)


def geo_default_limit() -> int:
    return _env_int("GEO_DEFAULT_LIMIT", 5000)


def radius_default_limit() -> int:
    return _env_int("GEO_RADIUS_DEFAULT_LIMIT", 1000)


def stream_cancel_poll_s() -> float:
    return max(0.01, _env_float("STREAM_CANCEL_POLL_S", 0.25))


# Text lookups (address / siren / owner name)

def search_default_limit() -> int:
    return _env_int("SEARCH_DEFAULT_LIMIT", 100)


def search_max_limit() -> int:
    return _env_int("SEARCH_MAX_LIMIT", 1000)


# Company registry (recherche-entreprises)

def registry_base_url() -> str:
    return os.environ.get("REGISTRY_BASE_URL", DEFAULT_REGISTRY_BASE_URL).strip() or DEFAULT_REGISTRY_BASE_URL


def registry_max_requests_per_second() -> int:
    return max(1, _env_int("REGISTRY_MAX_REQUESTS_PER_SECOND", 7))


def registry_timeout_s() -> float:
    return _env_float("REGISTRY_TIMEOUT_S", 10.0)


def registry_max_depth() -> int:
    return max(0, _env_int("REGISTRY_MAX_DEPTH", 5))


# Auth / HTTP

def api_keys() -> list[str]:
    """
    Accepted API keys: MASTER_API_KEY plus any comma-separated API_KEYS.
    """
    keys: list[str] = []
    master = os.environ.get("MASTER_API_KEY", "").strip()
    if master:
        keys.append(master)
    keys.extend(k for k in _env_list("API_KEYS") if k not in keys)
    return keys


def cors_origins() -> list[str]:
    return _env_list("CORS_ORIGINS") or ["http://localhost:5173", "http://127.0.0.1:5173"]


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
