from __future__ import annotations

from ..core.slugs import SlugCollisionError

__all__ = [
    "NovaError",
    "ProjectNotFound",
    "VersionNotFound",
    "DeploymentNotFound",
    "NothingToPublish",
    "TurnInProgress",
    "SlugCollisionError",
]


class NovaError(Exception):
    """Base class for domain errors mapped to HTTP responses by the routers."""


class ProjectNotFound(NovaError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class VersionNotFound(NovaError):
    def __init__(self, version_id: str) -> None:
        super().__init__(f"Version not found: {version_id}")
        self.version_id = version_id


class DeploymentNotFound(NovaError):
    def __init__(self, deployment_id: str) -> None:
        super().__init__(f"Deployment not found: {deployment_id}")
        self.deployment_id = deployment_id


class NothingToPublish(NovaError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project {project_id} has no files to publish")
        self.project_id = project_id


class TurnInProgress(NovaError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"A build is already running for project {project_id}")
        self.project_id = project_id
