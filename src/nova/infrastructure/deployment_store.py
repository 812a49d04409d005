from __future__ import annotations

import uuid
from datetime import UTC, datetime
from threading import RLock
from typing import Dict, List, Optional, Protocol

from ..domain.deploy_models import Deployment, DeploymentStatus


class DuplicateSlug(Exception):
    def __init__(self, slug: str) -> None:
        super().__init__(f"Slug '{slug}' is already taken")
        self.slug = slug


class DeploymentStore(Protocol):
    def slug_exists(self, slug: str) -> bool: ...
    def create(self, *, slug: str, project_id: str, version_id: str, url: str, status: DeploymentStatus) -> Deployment: ...
    def get(self, deployment_id: str) -> Optional[Deployment]: ...
    def get_by_slug(self, slug: str) -> Optional[Deployment]: ...
    def list(self, project_id: Optional[str] = None) -> List[Deployment]: ...
    def update_status(
        self, deployment_id: str, status: DeploymentStatus, external_id: Optional[str] = None, url: Optional[str] = None
    ) -> Optional[Deployment]: ...
    def stop_project(self, project_id: str) -> List[Deployment]: ...


class InMemoryDeploymentStore:
    """Deployments keyed by id with a unique slug index."""

    def __init__(self) -> None:
        self._by_id: Dict[str, Deployment] = {}
        self._slugs: Dict[str, str] = {}
        self._lock = RLock()

    def slug_exists(self, slug: str) -> bool:
        with self._lock:
            return slug in self._slugs

    def create(self, *, slug: str, project_id: str, version_id: str, url: str, status: DeploymentStatus) -> Deployment:
        with self._lock:
            if slug in self._slugs:
                raise DuplicateSlug(slug)
            dep = Deployment(
                deployment_id=uuid.uuid4().hex,
                slug=slug,
                project_id=project_id,
                version_id=version_id,
                status=status,
                url=url,
                created_at=datetime.now(UTC),
            )
            self._by_id[dep.deployment_id] = dep
            self._slugs[slug] = dep.deployment_id
            return dep.model_copy()

    def get(self, deployment_id: str) -> Optional[Deployment]:
        with self._lock:
            dep = self._by_id.get(deployment_id)
            return dep.model_copy() if dep else None

    def get_by_slug(self, slug: str) -> Optional[Deployment]:
        with self._lock:
            did = self._slugs.get(slug)
            return self._by_id[did].model_copy() if did else None

    def list(self, project_id: Optional[str] = None) -> List[Deployment]:
        with self._lock:
            out = [d.model_copy() for d in self._by_id.values() if project_id is None or d.project_id == project_id]
            # Newest first
            return sorted(out, key=lambda d: d.created_at, reverse=True)

    def update_status(
        self, deployment_id: str, status: DeploymentStatus, external_id: Optional[str] = None, url: Optional[str] = None
    ) -> Optional[Deployment]:
        with self._lock:
            dep = self._by_id.get(deployment_id)
            if not dep:
                return None
            dep.status = status
            if external_id is not None:
                dep.external_id = external_id
            if url is not None:
                dep.url = url
            dep.updated_at = datetime.now(UTC)
            return dep.model_copy()

    def stop_project(self, project_id: str) -> List[Deployment]:
        """Mark every deployment of a project stopped. Slugs stay reserved."""
        with self._lock:
            stopped = []
            for dep in self._by_id.values():
                if dep.project_id == project_id and dep.status != DeploymentStatus.STOPPED:
                    dep.status = DeploymentStatus.STOPPED
                    dep.updated_at = datetime.now(UTC)
                    stopped.append(dep.model_copy())
            return stopped


_store: DeploymentStore | None = None


def get_deployment_store() -> DeploymentStore:
    global _store
    if _store is None:
        _store = InMemoryDeploymentStore()
    return _store
