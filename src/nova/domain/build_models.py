from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class Attachment(BaseModel):
    name: str
    url: str = Field(description="data: URL; text attachments are inlined into the prompt")
    type: Optional[str] = None


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    model: Optional[str] = Field(default=None, description="Model override for the generation provider")
    attachments: List[Attachment] = Field(default_factory=list)


class ProjectMessage(BaseModel):
    message_id: str
    project_id: str
    role: str  # 'user' | 'assistant'
    content: str
    created_at: str
    metadata: Optional[Dict[str, Any]] = None


class CancelResponse(BaseModel):
    project_id: str
    cancelled: bool


class BuildStatus(BaseModel):
    project_id: str
    state: str
    preview_source: str
    currently_building: Optional[str] = None
    plan: List[str] = Field(default_factory=list)
    display_text: str = ""
    files: List[str] = Field(default_factory=list)
