"""
PostgreSQL connection pool for the blog API (asyncpg, raw SQL).

`main.lifespan` opens the pool and closes it on shutdown. Repositories never
touch the pool directly; they go through `fetch_one` / `fetch_all` /
`execute` and write asyncpg-style $1, $2 placeholders.

Pool tuning comes from the environment:
- DB_POOL_MIN_SIZE (default 1)
- DB_POOL_MAX_SIZE (default 10)
- DB_COMMAND_TIMEOUT_S (default 30)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


@dataclass(frozen=True)
class PoolSettings:
    dsn: str
    min_size: int = 1
    max_size: int = 10
    command_timeout_s: float = 30.0


def _env_number(name: str, default: float, cast=int):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")

    # asyncpg rejects libpq's `sslmode`, which hosted providers append.
    parts = urlsplit(url)
    if not parts.query:
        return url
    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


def redacted_url(url: str) -> str:
    """
    `url` with the password replaced, for log lines.
    """
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def pool_settings() -> PoolSettings:
    min_size = _env_number("DB_POOL_MIN_SIZE", 1)
    max_size = max(min_size, _env_number("DB_POOL_MAX_SIZE", 10))
    return PoolSettings(
        dsn=database_url(),
        min_size=min_size,
        max_size=max_size,
        command_timeout_s=_env_number("DB_COMMAND_TIMEOUT_S", 30.0, cast=float),
    )


async def init_pool(settings: PoolSettings | None = None) -> None:
    global _pool
    if _pool is not None:
        return None
    settings = settings or pool_settings()
    _pool = await asyncpg.create_pool(
        dsn=settings.dsn,
        min_size=settings.min_size,
        max_size=settings.max_size,
        command_timeout=settings.command_timeout_s,
    )
    logger.info(
        "db_pool_ready url=%s min_size=%s max_size=%s",
        redacted_url(settings.dsn),
        settings.min_size,
        settings.max_size,
    )


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
    return [dict(r) for r in await pool().fetch(sql, *args)]


async def execute(sql: str, *args: Any) -> None:
    await pool().execute(sql, *args)
