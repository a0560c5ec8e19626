"""
Object-storage client for binary assets (Cloudinary upload API over httpx).

Used endpoint:
- POST /v1_1/{cloud_name}/image/upload  -> {"secure_url": "https://...", ...}

Requests are signed: SHA-1 over the sorted `key=value` params joined with
`&`, followed by the API secret.
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.cloudinary.com"
DEFAULT_FOLDER = "blog_images"


# Storage failures are explicit and separable from DB errors.
class StorageError(RuntimeError):
    pass


def base_url() -> str:
    return os.environ.get("CLOUDINARY_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/") or DEFAULT_BASE_URL


def cloud_name() -> str:
    return os.environ.get("CLOUDINARY_CLOUD_NAME", "").strip()


def api_key() -> str:
    return os.environ.get("CLOUDINARY_API_KEY", "").strip()


def api_secret() -> str:
    return os.environ.get("CLOUDINARY_API_SECRET", "").strip()


def default_folder() -> str:
    return os.environ.get("BLOG_IMAGE_FOLDER", DEFAULT_FOLDER).strip() or DEFAULT_FOLDER


def log_config() -> None:
    logger.info(
        "storage_config cloud_name=%s api_key_set=%s api_secret_set=%s",
        cloud_name() or "<unset>",
        bool(api_key()),
        bool(api_secret()),
    )


def sign_params(params: dict[str, Any], secret: str) -> str:
    """
    Compute the upload signature for `params` (file and api_key excluded).
    """
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1((to_sign + secret).encode("utf-8")).hexdigest()


def build_public_id(filename: str, *, now_ms: int | None = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stamp}-{filename}"


async def upload_image(
    *,
    data: bytes,
    filename: str,
    content_type: str | None = None,
    folder: str | None = None,
    timeout_s: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Upload `data` and return the public HTTPS URL of the stored asset.
    """
    name, key, secret = cloud_name(), api_key(), api_secret()
    if not (name and key and secret):
        raise StorageError("Object storage credentials are not configured.")
    if not data:
        raise StorageError("Refusing to upload an empty file.")

    params: dict[str, Any] = {
        "folder": folder or default_folder(),
        "public_id": build_public_id(filename),
        "timestamp": int(time.time()),
    }
    form = {
        **{k: str(v) for k, v in params.items()},
        "api_key": key,
        "signature": sign_params(params, secret),
    }
    files = {"file": (filename, data, content_type or "application/octet-stream")}

    try:
        async with httpx.AsyncClient(base_url=base_url(), timeout=timeout_s, transport=transport) as client:
            resp = await client.post(f"/v1_1/{name}/image/upload", data=form, files=files)
    except httpx.HTTPError as exc:
        raise StorageError(f"Object storage request failed: {exc}") from exc

    if resp.status_code != 200:
        # Keep the error small; upload errors can echo large bodies.
        raise StorageError(f"Object storage upload failed: {resp.status_code} {resp.text[:500]}")

    try:
        body: Any = resp.json()
    except ValueError as exc:
        raise StorageError(f"Object storage returned a non-JSON body: {resp.text[:200]}") from exc
    if not isinstance(body, dict):
        raise StorageError("Object storage returned an unexpected JSON payload.")

    url = body.get("secure_url")
    if not isinstance(url, str) or not url:
        raise StorageError("Object storage returned no secure_url.")

    logger.info("image_uploaded public_id=%s bytes=%s", params["public_id"], len(data))
    return url
