from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Dict, List, Optional, Protocol
from pathlib import Path
import json
import logging
from threading import RLock
from ..domain.models import Project, ProjectCreate, ProjectUpdate

logger = logging.getLogger(__name__)


class ProjectRepository(Protocol):
    def list(self) -> List[Project]: ...
    def get(self, project_id: str) -> Optional[Project]: ...
    def create(self, payload: ProjectCreate) -> Project: ...
    def update(self, project_id: str, payload: ProjectUpdate) -> Optional[Project]: ...
    def set_status(self, project_id: str, status: str) -> Optional[Project]: ...
    def delete(self, project_id: str) -> bool: ...
    def get_files(self, project_id: str) -> Optional[Dict[str, str]]: ...
    def replace_files(self, project_id: str, files: Dict[str, str]) -> bool: ...


class InMemoryProjectRepository:
    """In-memory project repository.

    A project's file set is stored beside the project and always replaced as a
    whole; readers get copies.
    """

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self._files: Dict[str, Dict[str, str]] = {}
        self._counter: int = 0
        self._lock = RLock()

    def _generate_project_id(self) -> str:
        self._counter += 1
        year = datetime.now(UTC).year
        return f"PRJ-{year}-{self._counter:04d}"

    def _new_project(self, payload: ProjectCreate) -> Project:
        pid = self._generate_project_id()
        now = datetime.now(UTC)
        project = Project(
            project_id=pid,
            name=payload.name,
            description=payload.description,
            status="draft",
            created_at=now,
            updated_at=now,
        )
        self._projects[pid] = project
        self._files[pid] = dict(payload.files or {})
        return project

    def _apply_update(self, proj: Project, payload: ProjectUpdate) -> Project:
        if payload.name is not None:
            proj.name = payload.name
        if payload.description is not None:
            proj.description = payload.description
        if payload.status is not None:
            proj.status = payload.status
        proj.updated_at = datetime.now(UTC)
        return proj

    def list(self) -> List[Project]:
        with self._lock:
            return list(self._projects.values())

    def get(self, project_id: str) -> Optional[Project]:
        with self._lock:
            return self._projects.get(project_id)

    def create(self, payload: ProjectCreate) -> Project:
        with self._lock:
            return self._new_project(payload)

    def update(self, project_id: str, payload: ProjectUpdate) -> Optional[Project]:
        with self._lock:
            proj = self._projects.get(project_id)
            if not proj:
                return None
            return self._apply_update(proj, payload)

    def set_status(self, project_id: str, status: str) -> Optional[Project]:
        return self.update(project_id, ProjectUpdate(status=status))

    def delete(self, project_id: str) -> bool:
        with self._lock:
            self._files.pop(project_id, None)
            return self._projects.pop(project_id, None) is not None

    def get_files(self, project_id: str) -> Optional[Dict[str, str]]:
        with self._lock:
            if project_id not in self._projects:
                return None
            return dict(self._files.get(project_id, {}))

    def replace_files(self, project_id: str, files: Dict[str, str]) -> bool:
        with self._lock:
            proj = self._projects.get(project_id)
            if not proj:
                return False
            self._files[project_id] = dict(files)
            proj.updated_at = datetime.now(UTC)
            return True


class FileProjectRepository(InMemoryProjectRepository):
    """JSON file-backed repository for development persistence.

    Structure: a single JSON object mapping project_id -> {"project": {...}, "files": {...}}.
    Thread-safe with a coarse RLock; suitable for dev/test, not high concurrency.
    """

    def __init__(self, file_path: Optional[str] = None) -> None:
        super().__init__()
        # Default to run/projects.json at repo root
        root = Path(__file__).resolve().parents[3]
        default_path = root / "run" / "projects.json"
        self._path = Path(file_path or os.getenv("NOVA_PROJECTS_FILE", str(default_path)))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Could not read %s; starting with an empty repository", self._path, exc_info=True)
            return
        max_seq = 0
        for pid, entry in (data or {}).items():
            try:
                proj = Project(**entry["project"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed project entry %s", pid)
                continue
            self._projects[pid] = proj
            self._files[pid] = dict(entry.get("files") or {})
            # track numeric suffix for counter continuity: PRJ-YYYY-####
            parts = str(pid).split("-")
            if len(parts) == 3 and parts[2].isdigit():
                max_seq = max(max_seq, int(parts[2]))
        self._counter = max_seq

    def _save(self) -> None:
        obj = {
            pid: {"project": proj.model_dump(mode="json"), "files": self._files.get(pid, {})}
            for pid, proj in self._projects.items()
        }
        self._path.write_text(json.dumps(obj, indent=2), encoding="utf-8")

    def create(self, payload: ProjectCreate) -> Project:
        with self._lock:
            project = self._new_project(payload)
            self._save()
            return project

    def update(self, project_id: str, payload: ProjectUpdate) -> Optional[Project]:
        with self._lock:
            proj = super().update(project_id, payload)
            if proj:
                self._save()
            return proj

    def delete(self, project_id: str) -> bool:
        with self._lock:
            ok = super().delete(project_id)
            if ok:
                self._save()
            return ok

    def replace_files(self, project_id: str, files: Dict[str, str]) -> bool:
        with self._lock:
            ok = super().replace_files(project_id, files)
            if ok:
                self._save()
            return ok


_repo: ProjectRepository = InMemoryProjectRepository()
_file_repo: ProjectRepository | None = None


def get_repo() -> ProjectRepository:
    global _file_repo
    impl = os.getenv("NOVA_REPO_IMPL", "memory").lower()
    if impl == "file":
        if _file_repo is None:
            _file_repo = FileProjectRepository()
        return _file_repo
    return _repo
