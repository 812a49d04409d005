from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator

from ..core.stream_parser import READY_SENTINEL


def ndjson_lines(events: Iterable[Dict[str, Any]]) -> Iterator[str]:
    """One JSON document per line, flushed per event."""
    for event in events:
        yield json.dumps(event, ensure_ascii=False) + "\n"


def text_stream(events: Iterable[Dict[str, Any]]) -> Iterator[str]:
    """Raw model text, then the ready sentinel once the turn is persisted.

    Cancelled turns end without the sentinel; failures end with an opaque
    ``[Error: ...]`` line.
    """
    for event in events:
        kind = event.get("type")
        if kind == "chunk":
            yield event["text"]
        elif kind == "done":
            yield f"\n{READY_SENTINEL}"
        elif kind == "error":
            yield f"\n[Error: {event.get('detail', 'Generation failed')}]"
