from __future__ import annotations

from typing import Dict, Optional

# Builder states for one project
IDLE = "idle"
STREAMING = "streaming"
CANCELLED = "cancelled"
FAILED = "failed"
PERSISTED = "persisted"

STATES = (IDLE, STREAMING, CANCELLED, FAILED, PERSISTED)

# (state, event) -> next state
TRANSITIONS: Dict[str, Dict[str, str]] = {
    IDLE: {"start": STREAMING},
    STREAMING: {
        "chunk": STREAMING,
        "cancel": CANCELLED,
        "fail": FAILED,
        "complete": PERSISTED,
    },
    CANCELLED: {"start": STREAMING, "reset": IDLE},
    FAILED: {"start": STREAMING, "reset": IDLE},
    PERSISTED: {"start": STREAMING, "reset": IDLE},
}


class InvalidTransition(Exception):
    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Event '{event}' not allowed in state '{state}'")
        self.state = state
        self.event = event


def next_state(current: str, event: str) -> Optional[str]:
    return TRANSITIONS.get(current, {}).get(event)


def is_valid_transition(current: str, event: str) -> bool:
    return next_state(current, event) is not None


def preview_source(state: str) -> str:
    """Streaming output is previewed inline; everything else through the preview routes."""
    return "inline" if state == STREAMING else "served"


class BuilderMachine:
    def __init__(self, state: str = IDLE) -> None:
        self.state = state

    def fire(self, event: str) -> str:
        target = next_state(self.state, event)
        if target is None:
            raise InvalidTransition(self.state, event)
        self.state = target
        return target

    @property
    def busy(self) -> bool:
        return self.state == STREAMING
