from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class DeploymentStatus(str, Enum):
    BUILDING = "building"
    LIVE = "live"
    FAILED = "failed"
    STOPPED = "stopped"


class Version(BaseModel):
    version_id: str
    project_id: str
    number: int
    created_at: datetime
    snapshot: Dict[str, str] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)


class VersionInfo(BaseModel):
    version_id: str
    project_id: str
    number: int
    created_at: datetime
    file_count: int
    meta: Dict[str, Any] = Field(default_factory=dict)


class VersionCreate(BaseModel):
    project_id: str = Field(min_length=1)
    note: Optional[str] = None


class RollbackResponse(BaseModel):
    project_id: str
    restored_version: int
    file_count: int


class Deployment(BaseModel):
    deployment_id: str
    slug: str
    project_id: str
    version_id: str
    status: DeploymentStatus
    url: str
    external_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class DeploymentCreate(BaseModel):
    project_id: str = Field(min_length=1)
    version_id: Optional[str] = None
    slug: Optional[str] = None
    base_url: Optional[str] = Field(default=None, description="e.g. http://localhost:8000; url becomes {base_url}/preview/{slug}")
