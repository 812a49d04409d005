"""Runtime settings read from the environment.

Env vars:
- NOVA_PUBLIC_BASE_URL: origin used when building preview roots behind a proxy
- NOVA_PUBLIC_URL_TEMPLATE: deployment url when no base url is supplied (default https://{slug}.novabuilder.app)
- NOVA_PREVIEW_CACHE_SECONDS / NOVA_PREVIEW_STALE_SECONDS: cache window for published previews
- NOVA_TURN_LOCK_TIMEOUT: seconds a build turn waits for the project's previous turn
- NOVA_HISTORY_LIMIT: prior messages sent to the model with each turn
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    public_base_url: Optional[str] = None
    public_url_template: str = "https://{slug}.novabuilder.app"
    preview_cache_seconds: int = 60
    preview_stale_seconds: int = 30
    turn_lock_timeout: float = 30.0
    history_limit: int = 20

    @staticmethod
    def from_env() -> "Settings":
        base = (os.getenv("NOVA_PUBLIC_BASE_URL") or "").strip().rstrip("/") or None
        return Settings(
            public_base_url=base,
            public_url_template=os.getenv("NOVA_PUBLIC_URL_TEMPLATE", "https://{slug}.novabuilder.app"),
            preview_cache_seconds=_env_int("NOVA_PREVIEW_CACHE_SECONDS", 60),
            preview_stale_seconds=_env_int("NOVA_PREVIEW_STALE_SECONDS", 30),
            turn_lock_timeout=_env_float("NOVA_TURN_LOCK_TIMEOUT", 30.0),
            history_limit=_env_int("NOVA_HISTORY_LIMIT", 20),
        )

    @property
    def published_cache_control(self) -> str:
        return f"public, max-age={self.preview_cache_seconds}, stale-while-revalidate={self.preview_stale_seconds}"


def get_settings() -> Settings:
    # Read on every call so runtime overrides (tests, /diag) take effect.
    return Settings.from_env()
