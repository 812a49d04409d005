"""Incremental parser for model-authored build responses.

The model answers with a short description, an optional plan block and any
number of file blocks::

    One sentence describing what you are doing.

    📋 Plan:
    • Step 1: Create homepage

    FILE: index.html
    ```html
    <html>...</html>
    ```

Text arrives in chunks that are not aligned to line boundaries, so the parser
keeps its state (current block, fence state, emitted files) between chunks and
only interprets newline-terminated lines until the stream is closed. Completed
files are never retracted or rewritten by later input.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

READY_SENTINEL = "[NOVA_READY]"
PLAN_HEADER = "📋 Plan:"
FALLBACK_HTML_PATH = "index.html"

_FENCE = "```"
_FILE_MARKER = re.compile(r"^\s*FILE:\s*(.*?)\s*$")
# Inside an open block only an unindented marker interrupts the content.
_FILE_MARKER_COL0 = re.compile(r"^FILE:\s*(\S.*?)\s*$")
_BULLET = re.compile(r"^\s*(?:[-*•\u2022\u2023\u25E6\u2043–—]|\d+[\.)])\s*")
_STEP_LABEL = re.compile(r"^Step\s+\d+\s*:\s*", re.IGNORECASE)
_BLANK_RUNS = re.compile(r"\n{3,}")

SCANNING = "scanning"
EXPECT_FENCE = "expect_fence"
IN_FILE = "in_file"
IN_BARE_FENCE = "in_bare_fence"


@dataclass
class ParseState:
    files: Dict[str, str] = field(default_factory=dict)
    currently_building: Optional[str] = None
    plan: List[str] = field(default_factory=list)
    display_text: str = ""

    @property
    def has_files(self) -> bool:
        return bool(self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [{"path": p, "content": c} for p, c in self.files.items()],
            "currently_building": self.currently_building,
            "plan": list(self.plan),
            "display_text": self.display_text,
        }


def normalize_path(raw: str) -> str:
    path = (raw or "").strip().strip("`'\"").strip()
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def clean_display_text(text: str) -> str:
    """Drop the plan block (and everything after it) and control sentinels."""
    idx = text.find(PLAN_HEADER)
    if idx != -1:
        text = text[:idx]
    text = text.replace(READY_SENTINEL, "")
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def _display_fragment(line: str) -> Tuple[str, bool]:
    """Visible part of one prelude line, and whether the plan header cut it."""
    idx = line.find(PLAN_HEADER)
    if idx != -1:
        line = line[:idx]
    return line.replace(READY_SENTINEL, ""), idx != -1


def _plan_step(stripped: str) -> Optional[str]:
    if not stripped:
        return None
    m = _BULLET.match(stripped)
    if not m:
        return None
    text = stripped[m.end():]
    return _STEP_LABEL.sub("", text, count=1).strip()


class StreamParser:
    """Line-oriented state machine fed with arbitrary chunks.

    ``feed`` costs time proportional to the chunk; ``snapshot`` returns the
    current ParseState; ``close`` marks the end of the stream and flushes the
    trailing unterminated line.
    """

    def __init__(self) -> None:
        self._state = SCANNING
        self._tail: List[str] = []
        self._path: Optional[str] = None
        self._captured: List[str] = []
        self._files: Dict[str, str] = {}
        self._seen_marker = False
        self._bare_is_html = False
        self._prelude_closed = False
        # Display text is built line by line: pieces, a pending blank line, and
        # whether the plan header has cut it off.
        self._display_parts: List[str] = []
        self._display_cache: Optional[str] = ""
        self._display_blank = False
        self._display_done = False
        self._plan: List[str] = []
        self._plan_mode = "pending"  # pending | open | done
        self._closed = False

    @property
    def state(self) -> str:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: str) -> "StreamParser":
        if not chunk or self._closed:
            return self
        if "\n" not in chunk:
            self._tail.append(chunk)
            return self
        parts = chunk.split("\n")
        first = "".join(self._tail) + parts[0]
        self._tail = [parts[-1]] if parts[-1] else []
        self._consume(first)
        for line in parts[1:-1]:
            self._consume(line)
        return self

    def close(self) -> "StreamParser":
        if self._closed:
            return self
        if self._tail:
            line = "".join(self._tail)
            self._tail = []
            self._consume(line)
        self._closed = True
        return self

    def snapshot(self) -> ParseState:
        tail = "".join(self._tail) if self._tail and self._tail_needed() else ""
        plan = list(self._plan)
        if tail and self._plan_mode == "open":
            step = _plan_step(tail.strip())
            if step:
                plan.append(step)
        building = self._path if self._state in (EXPECT_FENCE, IN_FILE) else None
        return ParseState(
            files=dict(self._files),
            currently_building=building,
            plan=plan,
            display_text=self._display_text(tail),
        )

    def _tail_needed(self) -> bool:
        # Only an open plan or an open prelude reads the unterminated line.
        if self._state != SCANNING:
            return False
        return self._plan_mode == "open" or not (self._prelude_closed or self._display_done)

    # -- line handling -----------------------------------------------------

    def _consume(self, raw: str) -> None:
        line = raw[:-1] if raw.endswith("\r") else raw
        stripped = line.strip()
        if stripped == READY_SENTINEL:
            return
        self._track_prelude(line, stripped)

        if self._state == IN_FILE:
            self._consume_file_line(line, stripped)
            return
        if self._state == IN_BARE_FENCE:
            self._consume_bare_line(line, stripped)
            return

        marker = _FILE_MARKER.match(line)
        if marker:
            path = normalize_path(marker.group(1))
            if path:
                if self._state == EXPECT_FENCE:
                    logger.debug("Dropping block %s: fence never opened", self._path)
                self._start_block(path)
                return

        if self._state == EXPECT_FENCE:
            if stripped.startswith(_FENCE):
                self._state = IN_FILE
            return

        if stripped.startswith(_FENCE):
            self._state = IN_BARE_FENCE
            self._bare_is_html = stripped[3:].strip().lower() == "html"
            self._captured = []
            if self._plan_mode == "open":
                self._plan_mode = "done"
            return
        self._track_plan(stripped)

    def _consume_file_line(self, line: str, stripped: str) -> None:
        marker = _FILE_MARKER_COL0.match(line)
        if marker:
            path = normalize_path(marker.group(1))
            if path:
                if path != self._path:
                    self._complete(self._path, self._captured)
                else:
                    logger.info("Restarting block %s after repeated FILE marker", path)
                self._start_block(path)
                return
        if stripped == _FENCE:
            self._complete(self._path, self._captured)
            self._path = None
            self._captured = []
            self._state = SCANNING
            return
        self._captured.append(line)

    def _consume_bare_line(self, line: str, stripped: str) -> None:
        if stripped == _FENCE:
            if self._bare_is_html and not self._seen_marker:
                self._complete(FALLBACK_HTML_PATH, self._captured)
            self._captured = []
            self._bare_is_html = False
            self._state = SCANNING
            return
        if self._bare_is_html:
            self._captured.append(line)

    def _start_block(self, path: str) -> None:
        self._seen_marker = True
        if self._plan_mode == "open":
            self._plan_mode = "done"
        self._path = path
        self._captured = []
        self._state = EXPECT_FENCE

    def _complete(self, path: Optional[str], lines: List[str]) -> None:
        if not path:
            return
        if path in self._files:
            logger.warning("Ignoring repeated block for %s; first version kept", path)
            return
        self._files[path] = "\n".join(lines)

    def _track_prelude(self, line: str, stripped: str) -> None:
        if self._prelude_closed:
            return
        if stripped.startswith("FILE:") or stripped.startswith(_FENCE):
            self._prelude_closed = True
            return
        if self._display_done:
            return
        piece, cut = _display_fragment(line)
        if cut:
            self._display_done = True
        if not piece.strip():
            self._display_blank = bool(self._display_parts)
            return
        if self._display_parts:
            self._display_parts.append("\n\n" if self._display_blank else "\n")
        else:
            piece = piece.lstrip()
        self._display_parts.append(piece)
        self._display_blank = False
        self._display_cache = None

    def _track_plan(self, stripped: str) -> None:
        if self._plan_mode == "pending":
            if stripped.startswith(PLAN_HEADER):
                self._plan_mode = "open"
            return
        if self._plan_mode == "open":
            step = _plan_step(stripped)
            if step is None:
                self._plan_mode = "done"
            elif step:
                self._plan.append(step)

    def _display_text(self, tail: str) -> str:
        if self._display_cache is None:
            self._display_cache = "".join(self._display_parts)
        text = self._display_cache
        if tail and not (self._prelude_closed or self._display_done):
            s = tail.strip()
            if not (s.startswith("FILE:") or s.startswith(_FENCE)):
                piece, _cut = _display_fragment(tail[:-1] if tail.endswith("\r") else tail)
                if piece.strip():
                    if text:
                        text = text + ("\n\n" if self._display_blank else "\n") + piece
                    else:
                        text = piece.lstrip()
        return text.rstrip()


def parse(buffer: str, final: bool = False) -> ParseState:
    """Parse a whole buffer. ``final`` treats the buffer as the end of the stream."""
    parser = StreamParser().feed(buffer)
    if final:
        parser.close()
    return parser.snapshot()
