"""Versions, deployments and rollback.

Publishing resolves a version (given, or a fresh snapshot of the project's
current files), allocates a unique slug, records the deployment row and then
hands the snapshot to the deploy sink. A slug is taken for good once a
deployment row holds it, even after its project is deleted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..config import get_settings
from ..core.slugs import SlugCollisionError, allocate_slug
from ..core.vfs import snapshot
from ..domain.deploy_models import Deployment, DeploymentStatus, RollbackResponse, Version
from ..domain.errors import DeploymentNotFound, NothingToPublish, ProjectNotFound, VersionNotFound
from ..infrastructure.deployment_store import DuplicateSlug, get_deployment_store
from ..infrastructure.events import DEPLOYMENT_CREATED, VERSION_CREATED, VERSION_RESTORED, publish_event
from ..infrastructure.repository import get_repo
from ..infrastructure.version_store import get_version_store
from ..observability.metrics import DEPLOYMENTS
from . import deploy_sink
from .build_turn import get_coordinator

logger = logging.getLogger(__name__)


def snapshot_version(project_id: str, meta: Optional[Dict[str, Any]] = None) -> Version:
    """Freeze the project's current files as the next version number."""
    repo = get_repo()
    if repo.get(project_id) is None:
        raise ProjectNotFound(project_id)
    files = repo.get_files(project_id) or {}
    version = get_version_store().create_version(project_id, snapshot(files), meta)
    logger.info("Created version %d for %s (%d files)", version.number, project_id, len(files))
    publish_event(VERSION_CREATED, {"project_id": project_id, "version_id": version.version_id, "number": version.number})
    return version


def _deployment_url(slug: str, base_url: Optional[str], sink_url: Optional[str]) -> str:
    if base_url:
        return f"{base_url.rstrip('/')}/preview/{slug}"
    if sink_url:
        return sink_url
    return get_settings().public_url_template.format(slug=slug)


def publish(
    project_id: str,
    *,
    version_id: Optional[str] = None,
    slug: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Deployment:
    repo = get_repo()
    project = repo.get(project_id)
    if project is None:
        raise ProjectNotFound(project_id)

    if version_id:
        version = get_version_store().get_version(version_id)
        if version is None or version.project_id != project_id:
            raise VersionNotFound(version_id)
    else:
        if not repo.get_files(project_id):
            raise NothingToPublish(project_id)
        version = snapshot_version(project_id, {"reason": "publish"})

    store = get_deployment_store()
    chosen = allocate_slug(slug or project.name, store.slug_exists)
    try:
        # The row holds the slug before the sink sees any files
        deployment = store.create(
            slug=chosen,
            project_id=project_id,
            version_id=version.version_id,
            url=_deployment_url(chosen, base_url, None),
            status=DeploymentStatus.BUILDING,
        )
    except DuplicateSlug as exc:
        # Lost a race with a concurrent publish for the same slug
        raise SlugCollisionError(exc.slug) from exc

    try:
        receipt = deploy_sink.get_deploy_sink().submit(chosen, dict(version.snapshot))
    except Exception:
        logger.exception("Deploy sink rejected %s", chosen)
        store.update_status(deployment.deployment_id, DeploymentStatus.FAILED)
        DEPLOYMENTS.labels(status=DeploymentStatus.FAILED.value).inc()
        raise
    status = DeploymentStatus.BUILDING if receipt.requires_build else DeploymentStatus.LIVE
    deployment = store.update_status(
        deployment.deployment_id,
        status,
        external_id=receipt.external_id,
        url=_deployment_url(chosen, base_url, receipt.url),
    ) or deployment

    repo.set_status(project_id, "live")
    DEPLOYMENTS.labels(status=status.value).inc()
    publish_event(
        DEPLOYMENT_CREATED,
        {"project_id": project_id, "deployment_id": deployment.deployment_id, "slug": chosen, "status": status.value},
    )
    logger.info("Published %s v%d as %s (%s)", project_id, version.number, chosen, status.value)
    return deployment


def retire_project(project_id: str) -> None:
    """Drop a deleted project's versions and take its deployments offline."""
    removed = get_version_store().delete_project(project_id)
    stopped = get_deployment_store().stop_project(project_id)
    if stopped:
        DEPLOYMENTS.labels(status=DeploymentStatus.STOPPED.value).inc(len(stopped))
    logger.info("Retired project %s: %d versions removed, %d deployments stopped", project_id, removed, len(stopped))


def refresh_status(deployment_id: str) -> Deployment:
    """Poll the sink for a deployment still building remotely."""
    store = get_deployment_store()
    deployment = store.get(deployment_id)
    if deployment is None:
        raise DeploymentNotFound(deployment_id)
    if deployment.status != DeploymentStatus.BUILDING or not deployment.external_id:
        return deployment
    remote = deploy_sink.get_deploy_sink().status(deployment.external_id)
    if remote == deploy_sink.READY:
        new_status = DeploymentStatus.LIVE
    elif remote == deploy_sink.ERROR:
        new_status = DeploymentStatus.FAILED
    else:
        return deployment
    updated = store.update_status(deployment_id, new_status)
    logger.info("Deployment %s is now %s", deployment.slug, new_status.value)
    return updated or deployment


def rollback(version_id: str) -> RollbackResponse:
    """Replace the owning project's files with the version snapshot."""
    version = get_version_store().get_version(version_id)
    if version is None:
        raise VersionNotFound(version_id)
    repo = get_repo()
    if repo.get(version.project_id) is None:
        raise ProjectNotFound(version.project_id)
    coordinator = get_coordinator()
    with coordinator.exclusive(version.project_id):
        repo.replace_files(version.project_id, snapshot(version.snapshot))
        coordinator.clear_overlay(version.project_id)
    publish_event(VERSION_RESTORED, {"project_id": version.project_id, "version_id": version_id})
    logger.info("Rolled back %s to v%d", version.project_id, version.number)
    return RollbackResponse(
        project_id=version.project_id,
        restored_version=version.number,
        file_count=len(version.snapshot),
    )
