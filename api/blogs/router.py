"""
Blog API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, File, Form, UploadFile, status

from . import schemas, service

router = APIRouter()


@router.post("/api/blogs", status_code=status.HTTP_201_CREATED)
async def create_blog(
    # Defaults keep missing fields on our 400 path instead of FastAPI's 422.
    title: str = Form(default=""),
    description: str = Form(default=""),
    body: str = Form(default=""),
    category: str = Form(default=""),
    image: UploadFile | None = File(default=None),
) -> schemas.BlogResponse:
    return await service.create_blog(
        title=title,
        description=description,
        body=body,
        category=category,
        image=image,
    )


@router.get("/api/blogs")
async def list_blogs() -> list[schemas.BlogResponse]:
    """
    All posts, newest first.
    """
    return await service.list_blogs()


@router.get("/api/blogs/{slug}")
async def get_blog(slug: str) -> schemas.BlogResponse:
    return await service.get_blog(slug)


@router.get("/api/blogurls")
async def list_blog_urls() -> list[schemas.BlogSlugResponse]:
    """
    Slug index for sitemap generation.
    """
    return await service.list_blog_slugs()
