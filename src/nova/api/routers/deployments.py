from __future__ import annotations

from typing import List, Optional
import logging
from fastapi import APIRouter, HTTPException, Query, status

from ...domain.deploy_models import Deployment, DeploymentCreate
from ...domain.errors import (
    DeploymentNotFound,
    NothingToPublish,
    ProjectNotFound,
    SlugCollisionError,
    VersionNotFound,
)
from ...infrastructure.deployment_store import get_deployment_store
from ...services.publishing import publish, refresh_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/deployments", tags=["deployments"])


@router.get("", response_model=List[Deployment])
def list_deployments(project_id: Optional[str] = Query(default=None)) -> List[Deployment]:
    return get_deployment_store().list(project_id)


@router.post("", response_model=Deployment, status_code=status.HTTP_201_CREATED)
def create_deployment(payload: DeploymentCreate) -> Deployment:
    try:
        return publish(
            payload.project_id,
            version_id=payload.version_id,
            slug=payload.slug,
            base_url=payload.base_url,
        )
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except VersionNotFound:
        raise HTTPException(status_code=404, detail="Version not found")
    except NothingToPublish as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SlugCollisionError as exc:
        logger.error("Slug collision after retry: %s", exc.slug)
        raise HTTPException(status_code=409, detail="Slug already taken, please retry")


@router.get("/by-slug/{slug}", response_model=Deployment)
def get_by_slug(slug: str) -> Deployment:
    dep = get_deployment_store().get_by_slug(slug)
    if not dep:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return dep


@router.get("/{deployment_id}/status", response_model=Deployment)
def deployment_status(deployment_id: str) -> Deployment:
    try:
        return refresh_status(deployment_id)
    except DeploymentNotFound:
        raise HTTPException(status_code=404, detail="Deployment not found")
