from __future__ import annotations

from typing import List
import logging
from fastapi import APIRouter, HTTPException, status, Response

from ...core.vfs import build_tree, files_from_config, folder_paths, merge
from ...domain.build_models import ProjectMessage
from ...domain.errors import TurnInProgress
from ...domain.models import (
    FileTreeNode,
    Project,
    ProjectCreate,
    ProjectFiles,
    ProjectFilesReplace,
    ProjectTree,
    ProjectUpdate,
)
from ...infrastructure.message_store import get_message_store
from ...infrastructure.repository import get_repo
from ...services.build_turn import get_coordinator
from ...services.publishing import retire_project

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


def _require_project(project_id: str) -> Project:
    proj = get_repo().get(project_id)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj


@router.get("", response_model=List[Project])
def list_projects() -> List[Project]:
    repo = get_repo()
    return repo.list()


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectCreate) -> Project:
    repo = get_repo()
    proj = repo.create(payload)
    logger.info("Created project %s", proj.project_id)
    return proj


@router.get("/{project_id}", response_model=Project)
def get_project(project_id: str) -> Project:
    return _require_project(project_id)


@router.patch("/{project_id}", response_model=Project)
def update_project(project_id: str, payload: ProjectUpdate) -> Project:
    repo = get_repo()
    _require_project(project_id)
    if payload.config is not None:
        incoming = files_from_config(payload.config)
        if incoming:
            try:
                with get_coordinator().exclusive(project_id):
                    repo.replace_files(project_id, merge(repo.get_files(project_id) or {}, incoming))
                    get_coordinator().clear_overlay(project_id)
            except TurnInProgress as exc:
                raise HTTPException(status_code=409, detail=str(exc))
    proj = repo.update(project_id, payload)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_project(project_id: str) -> Response:
    repo = get_repo()
    ok = repo.delete(project_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Project not found")
    get_message_store().delete_project(project_id)
    retire_project(project_id)
    get_coordinator().forget(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/files", response_model=ProjectFiles)
def get_files(project_id: str) -> ProjectFiles:
    files = get_repo().get_files(project_id)
    if files is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectFiles(project_id=project_id, files=files)


@router.put("/{project_id}/files", response_model=ProjectFiles)
def replace_files(project_id: str, payload: ProjectFilesReplace) -> ProjectFiles:
    """Replace the whole file set (editor save). Waits for a running build turn."""
    repo = get_repo()
    _require_project(project_id)
    try:
        with get_coordinator().exclusive(project_id):
            repo.replace_files(project_id, payload.files)
            get_coordinator().clear_overlay(project_id)
    except TurnInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return ProjectFiles(project_id=project_id, files=repo.get_files(project_id) or {})


@router.get("/{project_id}/tree", response_model=ProjectTree)
def get_tree(project_id: str) -> ProjectTree:
    files = get_repo().get_files(project_id)
    if files is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectTree(
        project_id=project_id,
        tree=[FileTreeNode(**node.to_dict()) for node in build_tree(files)],
        folders=sorted(folder_paths(files)),
    )


@router.get("/{project_id}/messages", response_model=List[ProjectMessage])
def list_messages(project_id: str) -> List[ProjectMessage]:
    _require_project(project_id)
    return get_message_store().list_messages(project_id)
