from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol
import uuid

from ..domain.build_models import ProjectMessage


class MessageStore(Protocol):
    def add_exchange(self, project_id: str, user_content: str, assistant_content: str, metadata: Optional[Dict[str, Any]] = None) -> List[ProjectMessage]: ...

    def list_messages(self, project_id: str) -> List[ProjectMessage]: ...

    def recent_messages(self, project_id: str, limit: int = 20) -> List[ProjectMessage]: ...

    def delete_project(self, project_id: str) -> None: ...


@dataclass
class _Message:
    message_id: str
    project_id: str
    role: str
    content: str
    created_at: str
    metadata: Dict[str, Any] | None = None


class InMemoryMessageStore:
    """Per-project conversation log, oldest first."""

    def __init__(self) -> None:
        self._messages: Dict[str, List[_Message]] = {}
        self._lock = RLock()

    def _now_iso(self) -> str:
        return datetime.now(UTC).isoformat().replace("+00:00", "Z")

    def _message_model(self, message: _Message) -> ProjectMessage:
        return ProjectMessage(**message.__dict__)

    def _append(self, project_id: str, role: str, content: str, metadata: Optional[Dict[str, Any]]) -> _Message:
        msg = _Message(
            message_id=uuid.uuid4().hex,
            project_id=project_id,
            role=role,
            content=content,
            created_at=self._now_iso(),
            metadata=dict(metadata) if metadata else None,
        )
        self._messages.setdefault(project_id, []).append(msg)
        return msg

    def add_exchange(
        self,
        project_id: str,
        user_content: str,
        assistant_content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ProjectMessage]:
        """Append a user/assistant pair under one lock so readers never see half a turn."""
        with self._lock:
            user = self._append(project_id, "user", user_content, None)
            assistant = self._append(project_id, "assistant", assistant_content, metadata)
            return [self._message_model(user), self._message_model(assistant)]

    def list_messages(self, project_id: str) -> List[ProjectMessage]:
        with self._lock:
            return [self._message_model(m) for m in self._messages.get(project_id, [])]

    def recent_messages(self, project_id: str, limit: int = 20) -> List[ProjectMessage]:
        with self._lock:
            msgs = self._messages.get(project_id, [])
            if limit <= 0:
                return []
            return [self._message_model(m) for m in msgs[-limit:]]

    def delete_project(self, project_id: str) -> None:
        with self._lock:
            self._messages.pop(project_id, None)


_store: MessageStore | None = None


def get_message_store() -> MessageStore:
    global _store
    if _store is None:
        _store = InMemoryMessageStore()
    return _store
