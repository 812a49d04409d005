from __future__ import annotations

import re
import time
from typing import Callable, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class SlugCollisionError(Exception):
    def __init__(self, slug: str) -> None:
        super().__init__(f"Slug already taken after retry: {slug}")
        self.slug = slug


def slugify(value: str) -> str:
    return _NON_ALNUM.sub("-", (value or "").lower()).strip("-")


def time_suffix(now: Optional[Callable[[], float]] = None) -> str:
    """Last six digits of the current epoch milliseconds."""
    millis = int((now or time.time)() * 1000)
    return str(millis)[-6:].zfill(6)


def allocate_slug(
    candidate: str,
    exists: Callable[[str], bool],
    now: Optional[Callable[[], float]] = None,
) -> str:
    """Return a slug for ``candidate`` that ``exists`` reports as free.

    A taken slug gets one time-based suffix; if that is taken too the
    collision is raised instead of looping.
    """
    slug = slugify(candidate)
    if not slug:
        slug = f"deployment-{time_suffix(now)}"
    if not exists(slug):
        return slug
    retry = f"{slug}-{time_suffix(now)}"
    if exists(retry):
        raise SlugCollisionError(retry)
    return retry
