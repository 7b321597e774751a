"""
asyncpg pool for the geocoded property table.

The pool is opened by the app lifespan (`api/main.py`) and closed on
shutdown. Feature repositories only call `fetch_one` / `fetch_all` with raw
SQL and positional placeholders ($1, $2, ...).
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "cadastre-api"

_pool: asyncpg.Pool | None = None


def _strip_sslmode(url: str) -> str:
    # libpq-style `sslmode` is not understood by asyncpg's DSN parser.
    parts = urlsplit(url)
    if not parts.query:
        return url
    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


def database_url() -> str:
    url = settings.database_url()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _strip_sslmode(url)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    max_size = settings.db_pool_max_size()
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=1,
        max_size=max_size,
        # Large polygons over the national table can take a while.
        command_timeout=settings.db_command_timeout_s(),
        server_settings={"application_name": APPLICATION_NAME},
    )
    logger.info("db_pool_ready max_size=%s", max_size)


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None
    logger.info("db_pool_closed")


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    row = await pool().fetchrow(sql, *args)
    return dict(row) if row is not None else None


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    rows = await pool().fetch(sql, *args)
    return [dict(r) for r in rows]


async def ping() -> bool:
    """
    True when the pool can run a trivial query.
    """
    try:
        row = await fetch_one("SELECT 1 AS ok")
    except (RuntimeError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError):
        logger.exception("db_ping_failed")
        return False
    return row is not None
