"""Where published file sets go.

A sink receives a finished file set for a slug. Sinks that build remotely
return ``requires_build=True`` plus an external id that ``status`` can be
polled with; the default ``PreviewSink`` serves straight from this app's
``/preview/{slug}`` routes, so deployments are live immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

# Remote build states reported by ``DeploySink.status``
READY = "READY"
ERROR = "ERROR"
BUILDING = "BUILDING"


@dataclass(frozen=True)
class SinkReceipt:
    requires_build: bool
    external_id: Optional[str] = None
    url: Optional[str] = None


class DeploySink(Protocol):
    def submit(self, slug: str, files: Dict[str, str]) -> SinkReceipt: ...
    def status(self, external_id: str) -> str: ...


class PreviewSink:
    def submit(self, slug: str, files: Dict[str, str]) -> SinkReceipt:
        logger.info("Publishing %d files under slug %s", len(files), slug)
        return SinkReceipt(requires_build=False)

    def status(self, external_id: str) -> str:
        return READY


_sink: Optional[DeploySink] = None


def set_deploy_sink(sink: Optional[DeploySink]) -> None:
    global _sink
    _sink = sink


def get_deploy_sink() -> DeploySink:
    global _sink
    if _sink is None:
        _sink = PreviewSink()
    return _sink
