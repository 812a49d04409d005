from __future__ import annotations

from typing import List
import logging
from fastapi import APIRouter, HTTPException, Query, status

from ...domain.deploy_models import RollbackResponse, Version, VersionCreate, VersionInfo
from ...domain.errors import ProjectNotFound, TurnInProgress, VersionNotFound
from ...infrastructure.repository import get_repo
from ...infrastructure.version_store import get_version_store
from ...services.publishing import rollback, snapshot_version

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/versions", tags=["versions"])


def _info(v: Version) -> VersionInfo:
    return VersionInfo(
        version_id=v.version_id,
        project_id=v.project_id,
        number=v.number,
        created_at=v.created_at,
        file_count=len(v.snapshot),
        meta=v.meta,
    )


@router.get("", response_model=List[VersionInfo])
def list_versions(project_id: str = Query(..., min_length=1)) -> List[VersionInfo]:
    if get_repo().get(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    # Newest first
    return [_info(v) for v in reversed(get_version_store().list_versions(project_id))]


@router.post("", response_model=VersionInfo, status_code=status.HTTP_201_CREATED)
def create_version(payload: VersionCreate) -> VersionInfo:
    meta = {"note": payload.note} if payload.note else {"reason": "manual"}
    try:
        return _info(snapshot_version(payload.project_id, meta))
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")


@router.get("/{version_id}", response_model=Version)
def get_version(version_id: str) -> Version:
    v = get_version_store().get_version(version_id)
    if not v:
        raise HTTPException(status_code=404, detail="Version not found")
    return v


@router.post("/{version_id}/rollback", response_model=RollbackResponse)
def rollback_version(version_id: str) -> RollbackResponse:
    try:
        return rollback(version_id)
    except VersionNotFound:
        raise HTTPException(status_code=404, detail="Version not found")
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except TurnInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc))
