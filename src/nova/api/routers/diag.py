from __future__ import annotations

from fastapi import APIRouter

from ...services.generation import provider_settings

router = APIRouter(prefix="/diag", tags=["diagnostics"])


@router.get("/llm")
async def diag_llm():
    cfg = provider_settings()
    has_key = bool(cfg["api_key"])
    return {
        "provider": cfg["provider"],
        "has_api_key": has_key,
        "base_url": cfg["base_url"],
        "model": cfg["model"],
        "ready": cfg["provider"] == "scripted" or has_key,
    }
