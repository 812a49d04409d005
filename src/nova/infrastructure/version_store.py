"""Immutable project version snapshots.

Each version holds a deep copy of the project's file set at the moment it was
taken. Numbers are per project, start at 1 and only grow.
"""

from __future__ import annotations

import copy
import logging
import os
import uuid
from datetime import UTC, datetime
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol

from ..domain.deploy_models import Version

logger = logging.getLogger(__name__)


class VersionStore(Protocol):
    def create_version(self, project_id: str, files: Dict[str, str], meta: Optional[Dict[str, Any]] = None) -> Version: ...
    def list_versions(self, project_id: str) -> List[Version]: ...
    def get_version(self, version_id: str) -> Optional[Version]: ...
    def latest_version(self, project_id: str) -> Optional[Version]: ...
    def delete_project(self, project_id: str) -> int: ...


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _ensure_utc(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return _utc_now()


class InMemoryVersionStore:
    def __init__(self) -> None:
        self._by_id: Dict[str, Version] = {}
        self._by_project: Dict[str, List[str]] = {}
        self._lock = RLock()

    def create_version(self, project_id: str, files: Dict[str, str], meta: Optional[Dict[str, Any]] = None) -> Version:
        with self._lock:
            ids = self._by_project.setdefault(project_id, [])
            number = (self._by_id[ids[-1]].number + 1) if ids else 1
            version = Version(
                version_id=uuid.uuid4().hex,
                project_id=project_id,
                number=number,
                created_at=_utc_now(),
                snapshot=copy.deepcopy(dict(files)),
                meta=dict(meta or {}),
            )
            self._by_id[version.version_id] = version
            ids.append(version.version_id)
            return version.model_copy(deep=True)

    def list_versions(self, project_id: str) -> List[Version]:
        with self._lock:
            return [self._by_id[vid].model_copy(deep=True) for vid in self._by_project.get(project_id, [])]

    def get_version(self, version_id: str) -> Optional[Version]:
        with self._lock:
            version = self._by_id.get(version_id)
            return version.model_copy(deep=True) if version else None

    def latest_version(self, project_id: str) -> Optional[Version]:
        with self._lock:
            ids = self._by_project.get(project_id, [])
            if not ids:
                return None
            return self._by_id[ids[-1]].model_copy(deep=True)

    def delete_project(self, project_id: str) -> int:
        with self._lock:
            ids = self._by_project.pop(project_id, [])
            for vid in ids:
                self._by_id.pop(vid, None)
            return len(ids)


class MongoVersionStore:
    """Mongo-backed version store.

    If Mongo is unreachable and NOVA_VERSION_STORE_REQUIRE_MONGO is not true,
    operations fall back to an internal in-memory store to avoid breaking dev/CI.
    """

    def __init__(self) -> None:
        self._fallback = InMemoryVersionStore()
        self._client = None
        self._coll = None
        try:
            from pymongo import MongoClient  # type: ignore

            mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
            mongo_db = os.getenv("MONGO_DB", "nova")
            self._client = MongoClient(mongo_url, serverSelectionTimeoutMS=500)
            # Trigger server selection
            self._client.server_info()
            self._coll = self._client[mongo_db]["versions"]
            self._coll.create_index([("project_id", 1), ("number", 1)], unique=True)
            self._coll.create_index("version_id", unique=True)
        except Exception:
            logger.info("Mongo unavailable; version store running in memory")
            self._client = None
            self._coll = None

    def _use_fallback(self) -> bool:
        if self._client is None or self._coll is None:
            if os.getenv("NOVA_VERSION_STORE_REQUIRE_MONGO", "false").lower() in ("1", "true", "yes"):  # pragma: no cover
                raise RuntimeError("Mongo version store required but not available")
            return True
        return False

    def _to_model(self, doc: Dict[str, Any]) -> Version:
        return Version(
            version_id=str(doc["version_id"]),
            project_id=str(doc["project_id"]),
            number=int(doc["number"]),
            created_at=_ensure_utc(doc.get("created_at")),
            snapshot=dict(doc.get("snapshot") or {}),
            meta=dict(doc.get("meta") or {}),
        )

    def create_version(self, project_id: str, files: Dict[str, str], meta: Optional[Dict[str, Any]] = None) -> Version:
        if self._use_fallback():
            return self._fallback.create_version(project_id, files, meta)
        last = next(iter(self._coll.find({"project_id": project_id}).sort("number", -1).limit(1)), None)
        number = int(last["number"]) + 1 if last else 1
        doc = {
            "version_id": uuid.uuid4().hex,
            "project_id": project_id,
            "number": number,
            "created_at": _utc_now(),
            "snapshot": copy.deepcopy(dict(files)),
            "meta": dict(meta or {}),
        }
        self._coll.insert_one(dict(doc))
        return self._to_model(doc)

    def list_versions(self, project_id: str) -> List[Version]:
        if self._use_fallback():
            return self._fallback.list_versions(project_id)
        return [self._to_model(d) for d in self._coll.find({"project_id": project_id}).sort("number", 1)]

    def get_version(self, version_id: str) -> Optional[Version]:
        if self._use_fallback():
            return self._fallback.get_version(version_id)
        doc = self._coll.find_one({"version_id": version_id})
        return self._to_model(doc) if doc else None

    def latest_version(self, project_id: str) -> Optional[Version]:
        if self._use_fallback():
            return self._fallback.latest_version(project_id)
        doc = next(iter(self._coll.find({"project_id": project_id}).sort("number", -1).limit(1)), None)
        return self._to_model(doc) if doc else None

    def delete_project(self, project_id: str) -> int:
        if self._use_fallback():
            return self._fallback.delete_project(project_id)
        return int(self._coll.delete_many({"project_id": project_id}).deleted_count)


_store: VersionStore | None = None


def get_version_store() -> VersionStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("NOVA_VERSION_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        _store = MongoVersionStore()
    else:
        _store = InMemoryVersionStore()
    return _store
