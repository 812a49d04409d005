"""One build turn: user message in, generated files merged and persisted.

Turn lifecycle per project (see ``core.builder_state``)::

    idle --start--> streaming --complete--> persisted
                        |--cancel--> cancelled
                        '--fail----> failed

Only one turn runs per project at a time. The turn lock is taken when the
turn is started (so a second request can be rejected before any streaming
begins) and released when the event generator finishes, in whichever thread
the web server drains it from. Rollbacks and manual file replacement take the
same lock.

Nothing is written to the repository or the message log until the stream
completes. A cancelled or failed turn leaves the durable file set untouched;
a cancelled turn keeps its partial output visible through the live preview
overlay until the next turn starts, a failed one drops it.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set

from ..config import get_settings
from ..core import builder_state as bs
from ..core.stream_parser import ParseState, StreamParser
from ..core.vfs import merge
from ..domain.build_models import Attachment, BuildStatus
from ..domain.errors import ProjectNotFound, TurnInProgress
from ..infrastructure.events import TURN_PERSISTED, publish_event
from ..infrastructure.message_store import get_message_store
from ..infrastructure.repository import get_repo
from ..observability.metrics import BUILD_TURNS, FILES_EMITTED
from .generation import CancellationToken, GenerationClient, GenerationError, get_generation_client
from .prompts import build_messages

logger = logging.getLogger(__name__)

STOPPED_TEXT = "Generation stopped."
FAILED_DETAIL = "Generation failed"


class TurnCoordinator:
    """Per-project turn locks, cancel tokens, builder states and live preview overlays."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._machines: Dict[str, bs.BuilderMachine] = {}
        self._overlays: Dict[str, Dict[str, str]] = {}
        self._latest: Dict[str, ParseState] = {}

    def _lock_for(self, project_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(project_id, threading.Lock())

    def acquire(self, project_id: str, timeout: float) -> None:
        lock = self._lock_for(project_id)
        got = lock.acquire(timeout=timeout) if timeout > 0 else lock.acquire(blocking=False)
        if not got:
            raise TurnInProgress(project_id)

    def release(self, project_id: str) -> None:
        lock = self._lock_for(project_id)
        if lock.locked():
            lock.release()

    @contextmanager
    def exclusive(self, project_id: str, timeout: Optional[float] = None) -> Iterator[None]:
        self.acquire(project_id, get_settings().turn_lock_timeout if timeout is None else timeout)
        try:
            yield
        finally:
            self.release(project_id)

    def machine(self, project_id: str) -> bs.BuilderMachine:
        with self._guard:
            return self._machines.setdefault(project_id, bs.BuilderMachine())

    def register(self, project_id: str) -> CancellationToken:
        token = CancellationToken()
        with self._guard:
            self._tokens[project_id] = token
        return token

    def unregister(self, project_id: str, token: CancellationToken) -> None:
        with self._guard:
            if self._tokens.get(project_id) is token:
                del self._tokens[project_id]

    def cancel(self, project_id: str) -> bool:
        """Trip the running turn's token; False when nothing is running."""
        with self._guard:
            token = self._tokens.get(project_id)
        if token is None or token.cancelled:
            return False
        token.cancel()
        logger.info("Cancel requested for project %s", project_id)
        return True

    def set_overlay(self, project_id: str, files: Dict[str, str]) -> None:
        with self._guard:
            self._overlays[project_id] = dict(files)

    def overlay(self, project_id: str) -> Optional[Dict[str, str]]:
        with self._guard:
            files = self._overlays.get(project_id)
            return dict(files) if files is not None else None

    def clear_overlay(self, project_id: str) -> None:
        with self._guard:
            self._overlays.pop(project_id, None)

    def record(self, project_id: str, state: ParseState) -> None:
        with self._guard:
            self._latest[project_id] = state

    def status(self, project_id: str) -> BuildStatus:
        machine = self.machine(project_id)
        with self._guard:
            latest = self._latest.get(project_id) or ParseState()
        return BuildStatus(
            project_id=project_id,
            state=machine.state,
            preview_source=bs.preview_source(machine.state),
            currently_building=latest.currently_building,
            plan=list(latest.plan),
            display_text=latest.display_text,
            files=list(latest.files),
        )

    def forget(self, project_id: str) -> None:
        with self._guard:
            self._machines.pop(project_id, None)
            self._overlays.pop(project_id, None)
            self._latest.pop(project_id, None)


class BuildTurn:
    def __init__(
        self,
        project_id: str,
        message: str,
        *,
        client: GenerationClient,
        coordinator: TurnCoordinator,
        token: CancellationToken,
        base_files: Dict[str, str],
        prompt: List[Dict[str, str]],
    ) -> None:
        self.project_id = project_id
        self.message = message
        self._client = client
        self._coordinator = coordinator
        self._token = token
        self._base_files = base_files
        self._prompt = prompt
        self._machine = coordinator.machine(project_id)
        self._emitted: Set[str] = set()

    def _progress(self, state: ParseState) -> Dict[str, Any]:
        return {
            "type": "progress",
            "state": self._machine.state,
            "currently_building": state.currently_building,
            "plan": list(state.plan),
            "display_text": state.display_text,
            "files": list(state.files),
        }

    def _new_files(self, state: ParseState) -> Iterator[Dict[str, Any]]:
        fresh = [p for p in state.files if p not in self._emitted]
        if not fresh:
            return
        for path in fresh:
            self._emitted.add(path)
            yield {"type": "file", "path": path, "content": state.files[path]}
        self._coordinator.set_overlay(self.project_id, merge(self._base_files, state.files))

    def events(self) -> Iterator[Dict[str, Any]]:
        """Run the turn, yielding start/chunk/file/progress events and one terminal event."""
        pid = self.project_id
        parser = StreamParser()
        chunks: List[str] = []
        try:
            self._coordinator.clear_overlay(pid)
            self._machine.fire("start")
            logger.info("Build turn started for %s", pid, extra={"project_id": pid, "model": self._client.model})
            yield {"type": "start", "project_id": pid, "state": self._machine.state}
            try:
                for chunk in self._client.stream(self._prompt, self._token):
                    if self._token.cancelled:
                        break
                    chunks.append(chunk)
                    parser.feed(chunk)
                    self._machine.fire("chunk")
                    state = parser.snapshot()
                    self._coordinator.record(pid, state)
                    yield {"type": "chunk", "text": chunk}
                    yield from self._new_files(state)
                    yield self._progress(state)
            except GenerationError as exc:
                yield self._fail(exc)
                return

            state = parser.close().snapshot()
            self._coordinator.record(pid, state)
            yield from self._new_files(state)
            if self._token.cancelled:
                yield self._finish_cancelled(state)
            else:
                yield self._persist(state, "".join(chunks))
        except Exception as exc:
            logger.exception("Build turn crashed for %s", pid)
            yield self._fail(exc)
        finally:
            if self._machine.busy:
                # Consumer went away mid-stream
                self._machine.fire("cancel")
                BUILD_TURNS.labels(outcome="cancelled").inc()
            self._coordinator.unregister(pid, self._token)
            self._coordinator.release(pid)

    def _fail(self, exc: Exception) -> Dict[str, Any]:
        logger.warning("Build turn failed for %s: %s", self.project_id, exc)
        if self._machine.busy:
            self._machine.fire("fail")
        self._coordinator.clear_overlay(self.project_id)
        BUILD_TURNS.labels(outcome="failed").inc()
        return {"type": "error", "state": self._machine.state, "detail": FAILED_DETAIL}

    def _finish_cancelled(self, state: ParseState) -> Dict[str, Any]:
        if state.files:
            self._coordinator.set_overlay(self.project_id, merge(self._base_files, state.files))
        self._machine.fire("cancel")
        BUILD_TURNS.labels(outcome="cancelled").inc()
        logger.info("Build turn cancelled for %s with %d partial files", self.project_id, len(state.files))
        event = self._progress(state)
        event["type"] = "cancelled"
        event["display_text"] = state.display_text or STOPPED_TEXT
        return event

    def _persist(self, state: ParseState, full_text: str) -> Dict[str, Any]:
        pid = self.project_id
        repo = get_repo()
        merged = merge(self._base_files, state.files)
        if state.files and not repo.replace_files(pid, merged):
            raise ProjectNotFound(pid)
        exchange = get_message_store().add_exchange(
            pid,
            self.message,
            full_text,
            metadata={"plan": list(state.plan), "files": list(state.files)},
        )
        repo.set_status(pid, "building")
        self._coordinator.clear_overlay(pid)
        self._machine.fire("complete")
        BUILD_TURNS.labels(outcome="persisted").inc()
        FILES_EMITTED.inc(len(state.files))
        publish_event(TURN_PERSISTED, {"project_id": pid, "files": list(state.files)})
        logger.info("Build turn persisted for %s: %d files", pid, len(state.files))
        event = self._progress(state)
        event.update({"type": "done", "message_id": exchange[-1].message_id, "file_count": len(merged)})
        return event


_coordinator = TurnCoordinator()


def get_coordinator() -> TurnCoordinator:
    return _coordinator


def start_turn(
    project_id: str,
    message: str,
    *,
    model: Optional[str] = None,
    attachments: Optional[Sequence[Attachment]] = None,
    client: Optional[GenerationClient] = None,
    coordinator: Optional[TurnCoordinator] = None,
) -> BuildTurn:
    """Claim the project's turn lock and prepare a turn.

    Raises ProjectNotFound or TurnInProgress before any output is produced.
    """
    repo = get_repo()
    if repo.get(project_id) is None:
        raise ProjectNotFound(project_id)
    settings = get_settings()
    coordinator = coordinator or get_coordinator()
    try:
        coordinator.acquire(project_id, settings.turn_lock_timeout)
    except TurnInProgress:
        BUILD_TURNS.labels(outcome="busy").inc()
        raise
    try:
        base_files = repo.get_files(project_id) or {}
        history = get_message_store().recent_messages(project_id, settings.history_limit)
        prompt = build_messages(base_files, history, message, attachments)
        token = coordinator.register(project_id)
        return BuildTurn(
            project_id,
            message,
            client=client or get_generation_client(model),
            coordinator=coordinator,
            token=token,
            base_files=base_files,
            prompt=prompt,
        )
    except Exception:
        coordinator.release(project_id)
        raise


def cancel_turn(project_id: str) -> bool:
    return get_coordinator().cancel(project_id)
