"""
Slug derivation and unique slug allocation for blog posts.

`derive_slug` is pure. `SlugAllocator` probes `base`, `base-1`, `base-2`, ...
against an existence check and commits the first free candidate.

Races are handled on two levels:
- within one process, allocations for the same base run one at a time
  (per-base asyncio.Lock);
- across processes, the DB unique constraint rejects a duplicate insert,
  the repository reports it as `SlugTaken` and the probe starts over.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import weakref
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\-]+", re.ASCII)
_MULTI_HYPHEN_RE = re.compile(r"--+")


class SlugTaken(Exception):
    """
    The slug was claimed by another writer between probe and insert.
    """

    def __init__(self, slug: str) -> None:
        super().__init__(f"Slug already taken: {slug}")
        self.slug = slug


class SlugAllocationError(RuntimeError):
    pass


def derive_slug(title: str) -> str:
    slug = title.lower()
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _NON_WORD_RE.sub("", slug)
    slug = _MULTI_HYPHEN_RE.sub("-", slug)
    return slug.strip("-")


def base_slug_for(title: str) -> str:
    """
    Base slug for a new post. Titles with no usable characters ("!!!")
    get a random token so they don't all compete for the empty slug.
    """
    slug = derive_slug(title)
    if slug:
        return slug
    return f"post-{secrets.token_hex(4)}"


class SlugAllocator:
    def __init__(
        self,
        exists: Callable[[str], Awaitable[bool]],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._exists = exists
        self.max_attempts = max_attempts
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, base: str) -> asyncio.Lock:
        lock = self._locks.get(base)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[base] = lock
        return lock

    async def probe(self, base: str) -> str:
        """
        Return the first of `base`, `base-1`, `base-2`, ... not in use.
        """
        candidate = base
        suffix = 1
        while await self._exists(candidate):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    async def allocate(self, base: str, commit: Callable[[str], Awaitable[T]]) -> T:
        """
        Pick a free slug for `base` and pass it to `commit`, which must
        persist it and raise `SlugTaken` on a uniqueness conflict.

        Returns whatever `commit` returns.
        """
        async with self._lock_for(base):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    slug = await self.probe(base)
                except Exception as exc:
                    raise SlugAllocationError(f"Slug lookup failed for '{base}'.") from exc

                try:
                    return await commit(slug)
                except SlugTaken:
                    logger.warning(
                        "slug_conflict base=%s slug=%s attempt=%s max_attempts=%s",
                        base,
                        slug,
                        attempt,
                        self.max_attempts,
                    )
                except Exception as exc:
                    raise SlugAllocationError(f"Saving slug '{slug}' failed.") from exc

        raise SlugAllocationError(
            f"Could not allocate a unique slug for '{base}' after {self.max_attempts} attempts."
        )
