"""
Blog API schemas (response models).

Creation input arrives as multipart form fields, so there is no request
model; the service validates those fields itself.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BlogResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: str
    body: str
    category: str
    image_url: str
    created_at: datetime


class BlogSlugResponse(BaseModel):
    slug: str
