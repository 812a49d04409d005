from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    name: str
    description: str = ""
    files: Optional[Dict[str, str]] = Field(default=None, description="Initial file set, path -> content")


class Project(BaseModel):
    project_id: str
    name: str
    description: str
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    config: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Stored config; 'files' or legacy 'htmlContent' entries are merged into the file set",
    )


class ProjectFiles(BaseModel):
    project_id: str
    files: Dict[str, str]


class ProjectFilesReplace(BaseModel):
    files: Dict[str, str]


class FileTreeNode(BaseModel):
    name: str
    path: str
    type: str
    children: List["FileTreeNode"] = Field(default_factory=list)


class ProjectTree(BaseModel):
    project_id: str
    tree: List[FileTreeNode]
    folders: List[str]


FileTreeNode.model_rebuild()
