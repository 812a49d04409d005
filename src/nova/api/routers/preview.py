"""Serve project file sets as websites.

Live previews (``/projects/{id}/preview``) read the in-flight overlay or the
durable file set and are never cached. Published previews (``/preview/{slug}``)
read the deployment's immutable version snapshot and may be cached for a
bounded interval.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from ...config import get_settings
from ...core.path_resolver import NotFound, resolve, resolve_root
from ...core.preview import DEPLOYMENT_NOT_FOUND_HTML, EMPTY_PREVIEW_HTML, document_base, inject_base
from ...domain.deploy_models import DeploymentStatus
from ...infrastructure.deployment_store import get_deployment_store
from ...infrastructure.repository import get_repo
from ...infrastructure.version_store import get_version_store
from ...services.build_turn import get_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["preview"])

LIVE_CACHE_CONTROL = "no-store, no-cache"


def serving_root(request: Request, marker: str) -> str:
    """Absolute URL of the preview root, keeping any mount prefix such as /api."""
    path = request.url.path
    idx = path.find(marker)
    root_path = path[: idx + len(marker)] if idx != -1 else marker
    origin = get_settings().public_base_url or f"{request.url.scheme}://{request.url.netloc}"
    return f"{origin}{root_path}/"


def _serve(files: Dict[str, str], file_path: str, root: str, cache_control: str) -> Response:
    resolved = resolve(files, file_path)
    if isinstance(resolved, NotFound):
        return PlainTextResponse(f"File not found: {resolved.requested}", status_code=404)
    body = resolved.content
    if resolved.is_html:
        body = inject_base(body, document_base(root, resolved.path))
    return Response(content=body, media_type=resolved.content_type, headers={"Cache-Control": cache_control})


def _serve_root(files: Dict[str, str], root: str, placeholder: Optional[str], cache_control: str) -> Response:
    """Serve index.html. Without one, the placeholder page, or a 404 when there is none."""
    html, found = resolve_root(files, placeholder or "")
    if not found and placeholder is None:
        return _not_found_page()
    return HTMLResponse(content=inject_base(html, root), headers={"Cache-Control": cache_control})


def _not_found_page() -> HTMLResponse:
    return HTMLResponse(content=DEPLOYMENT_NOT_FOUND_HTML, status_code=404)


def _live_files(project_id: str) -> Dict[str, str]:
    overlay = get_coordinator().overlay(project_id)
    if overlay is not None:
        return overlay
    try:
        files = get_repo().get_files(project_id)
    except Exception:
        logger.exception("Failed to load files for %s", project_id)
        raise HTTPException(status_code=500, detail="Error loading preview")
    if files is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return files


def _published_files(slug: str) -> Optional[Dict[str, str]]:
    try:
        deployment = get_deployment_store().get_by_slug(slug)
        if deployment is None or deployment.status == DeploymentStatus.STOPPED:
            return None
        version = get_version_store().get_version(deployment.version_id)
    except Exception:
        logger.exception("Failed to load deployment %s", slug)
        raise HTTPException(status_code=500, detail="Error loading preview")
    if version is None:
        logger.warning("Deployment %s points at missing version %s", slug, deployment.version_id)
        return None
    return version.snapshot


def _live_root(request: Request, project_id: str) -> Tuple[str, str]:
    return serving_root(request, f"/projects/{project_id}/preview"), LIVE_CACHE_CONTROL


@router.get("/projects/{project_id}/preview")
def live_preview(project_id: str, request: Request) -> Response:
    root, cache = _live_root(request, project_id)
    return _serve_root(_live_files(project_id), root, EMPTY_PREVIEW_HTML, cache)


@router.get("/projects/{project_id}/preview/{file_path:path}")
def live_preview_file(project_id: str, file_path: str, request: Request) -> Response:
    root, cache = _live_root(request, project_id)
    files = _live_files(project_id)
    if not file_path.strip("/"):
        return _serve_root(files, root, EMPTY_PREVIEW_HTML, cache)
    return _serve(files, file_path, root, cache)


@router.get("/preview/{slug}")
def published_preview(slug: str, request: Request) -> Response:
    files = _published_files(slug)
    if files is None:
        return _not_found_page()
    root = serving_root(request, f"/preview/{slug}")
    return _serve_root(files, root, None, get_settings().published_cache_control)


@router.get("/preview/{slug}/{file_path:path}")
def published_preview_file(slug: str, file_path: str, request: Request) -> Response:
    files = _published_files(slug)
    if files is None:
        return _not_found_page()
    root = serving_root(request, f"/preview/{slug}")
    cache = get_settings().published_cache_control
    if not file_path.strip("/"):
        return _serve_root(files, root, None, cache)
    return _serve(files, file_path, root, cache)
