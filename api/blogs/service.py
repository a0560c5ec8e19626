"""
Blog business logic.

Scope:
- validate creation input and the uploaded cover image
- upload the image to object storage
- derive + allocate a unique slug and insert the post
- read endpoints (list, by slug, slug index)
"""

from __future__ import annotations

import asyncio
import logging
import os

from fastapi import HTTPException, UploadFile, status

from core import storage

from . import repository, schemas, slugs

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB
DEFAULT_CREATE_TIMEOUT_S = 30.0
# Derived slugs are never longer than the title, so this also bounds the slug index row.
DEFAULT_MAX_TITLE_LENGTH = 200

logger = logging.getLogger(__name__)

_allocator: slugs.SlugAllocator | None = None


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


def max_upload_bytes() -> int:
    value = _env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
    return value if value > 0 else DEFAULT_MAX_UPLOAD_BYTES


def slug_max_attempts() -> int:
    return max(1, _env_int("SLUG_MAX_ATTEMPTS", slugs.DEFAULT_MAX_ATTEMPTS))


def create_timeout_s() -> float:
    value = _env_float("BLOG_CREATE_TIMEOUT_S", DEFAULT_CREATE_TIMEOUT_S)
    return value if value > 0 else DEFAULT_CREATE_TIMEOUT_S


def max_title_length() -> int:
    value = _env_int("BLOG_TITLE_MAX_LENGTH", DEFAULT_MAX_TITLE_LENGTH)
    return value if value > 0 else DEFAULT_MAX_TITLE_LENGTH


def allocator() -> slugs.SlugAllocator:
    # One allocator per process so the per-base locks are shared by all requests.
    global _allocator
    if _allocator is None:
        _allocator = slugs.SlugAllocator(repository.slug_exists, max_attempts=slug_max_attempts())
    return _allocator


def _to_blog_response(row: dict) -> schemas.BlogResponse:
    return schemas.BlogResponse(
        id=int(row["id"]),
        title=str(row["title"]),
        slug=str(row["slug"]),
        description=str(row["description"]),
        body=str(row["body"]),
        category=str(row["category"]),
        image_url=str(row["image_url"]),
        created_at=row["created_at"],
    )


async def read_upload_bytes(file: UploadFile, max_bytes: int) -> bytes:
    """
    Read the upload into memory, enforcing a maximum size.
    """
    chunk_size = 1024 * 1024  # 1 MiB
    buf = bytearray()

    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Image too large. Max is {max_bytes} bytes.",
            )

    return bytes(buf)


async def _upload_cover_image(image: UploadFile) -> str:
    data = await read_upload_bytes(image, max_bytes=max_upload_bytes())
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image is required.")

    try:
        return await storage.upload_image(
            data=data,
            filename=image.filename or "image",
            content_type=image.content_type,
        )
    except storage.StorageError as exc:
        logger.error("image_upload_failed filename=%s error=%s", image.filename, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Image upload failed.",
        ) from exc


async def create_blog(
    *,
    title: str,
    description: str,
    body: str,
    category: str,
    image: UploadFile | None,
) -> schemas.BlogResponse:
    # Blank checks use stripped values; text fields are stored as received.
    title, description, body = title or "", description or "", body or ""
    category = (category or "").strip()

    if not (title.strip() and description.strip() and body.strip() and category):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="All fields are required.")

    max_title = max_title_length()
    if len(title.strip()) > max_title:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Title is too long. Max is {max_title} characters.",
        )

    if image is None or not image.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image is required.")

    if not await repository.category_exists(category):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category does not exist.")

    image_url = await _upload_cover_image(image)
    base = slugs.base_slug_for(title)

    async def commit(slug: str) -> dict:
        return await repository.insert_blog(
            title=title,
            slug=slug,
            description=description,
            body=body,
            category=category,
            image_url=image_url,
        )

    try:
        row = await asyncio.wait_for(allocator().allocate(base, commit), timeout=create_timeout_s())
    except slugs.SlugAllocationError as exc:
        # Uploaded image is left orphaned in storage.
        logger.error("blog_create_failed base=%s image_url=%s error=%s", base, image_url, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not save blog post. Try again.",
        ) from exc
    except asyncio.TimeoutError as exc:
        logger.error("blog_create_timeout base=%s timeout_s=%s", base, create_timeout_s())
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Timed out saving blog post.",
        ) from exc

    logger.info("blog_created id=%s slug=%s", row["id"], row["slug"])
    return _to_blog_response(row)


async def list_blogs() -> list[schemas.BlogResponse]:
    rows = await repository.list_blogs()
    return [_to_blog_response(row) for row in rows]


async def get_blog(slug: str) -> schemas.BlogResponse:
    row = await repository.get_blog_by_slug(slug)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog not found.")
    return _to_blog_response(row)


async def list_blog_slugs() -> list[schemas.BlogSlugResponse]:
    rows = await repository.list_blog_slugs()
    return [schemas.BlogSlugResponse(slug=str(row["slug"])) for row in rows]
