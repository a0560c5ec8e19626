"""
Blog persistence (raw SQL).
"""

from __future__ import annotations

from typing import Any

import asyncpg

from core import db

from .slugs import SlugTaken

SLUG_CONSTRAINT = "blogs_slug_key"

_BLOG_COLUMNS = "id, title, slug, description, body, category, image_url, created_at"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS categories (
    id bigserial PRIMARY KEY,
    name text NOT NULL UNIQUE,
    description text,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS blogs (
    id bigserial PRIMARY KEY,
    title text NOT NULL,
    slug text NOT NULL,
    description text NOT NULL,
    body text NOT NULL,
    category text NOT NULL,
    image_url text NOT NULL,
    created_at timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT blogs_slug_key UNIQUE (slug)
);

CREATE INDEX IF NOT EXISTS blogs_created_at_idx ON blogs (created_at DESC, id DESC);
"""


async def ensure_schema() -> None:
    await db.execute(SCHEMA_SQL)


async def category_exists(name: str) -> bool:
    row = await db.fetch_one(
        """
        SELECT 1 AS ok
        FROM categories
        WHERE name = $1
        LIMIT 1
        """,
        name,
    )
    return row is not None


async def slug_exists(slug: str) -> bool:
    row = await db.fetch_one(
        """
        SELECT 1 AS ok
        FROM blogs
        WHERE slug = $1
        LIMIT 1
        """,
        slug,
    )
    return row is not None


async def get_blog_by_slug(slug: str) -> dict[str, Any] | None:
    return await db.fetch_one(
        f"""
        SELECT {_BLOG_COLUMNS}
        FROM blogs
        WHERE slug = $1
        """,
        slug,
    )


async def list_blogs() -> list[dict[str, Any]]:
    """
    All posts, newest first.
    """
    return await db.fetch_all(
        f"""
        SELECT {_BLOG_COLUMNS}
        FROM blogs
        ORDER BY created_at DESC, id DESC
        """
    )


async def list_blog_slugs() -> list[dict[str, Any]]:
    return await db.fetch_all(
        """
        SELECT slug
        FROM blogs
        ORDER BY created_at DESC, id DESC
        """
    )


async def insert_blog(
    *,
    title: str,
    slug: str,
    description: str,
    body: str,
    category: str,
    image_url: str,
) -> dict[str, Any]:
    """
    Insert a post. A duplicate slug surfaces as `SlugTaken` so the
    allocator can pick another candidate.
    """
    try:
        row = await db.fetch_one(
            f"""
            INSERT INTO blogs (title, slug, description, body, category, image_url)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING {_BLOG_COLUMNS}
            """,
            title,
            slug,
            description,
            body,
            category,
            image_url,
        )
    except asyncpg.UniqueViolationError as exc:
        if exc.constraint_name == SLUG_CONSTRAINT:
            raise SlugTaken(slug) from exc
        raise

    if row is None:
        raise RuntimeError("Failed to insert blog.")
    return row
