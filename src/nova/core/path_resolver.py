"""Resolve request paths against a file set the way a static file server would."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Tuple, Union


@dataclass(frozen=True)
class ResolvedFile:
    path: str
    content: str

    @property
    def content_type(self) -> str:
        return content_type(self.path)

    @property
    def is_html(self) -> bool:
        return self.content_type.startswith("text/html")


@dataclass(frozen=True)
class NotFound:
    requested: str


Resolution = Union[ResolvedFile, NotFound]
ResolutionStrategy = Callable[[str], Iterable[str]]


def exact_match(path: str) -> Iterable[str]:
    yield path


def extensionless_page(path: str) -> Iterable[str]:
    if "." not in path:
        yield f"{path}.html"
        yield f"{path}/index.html"


def directory_index(path: str) -> Iterable[str]:
    if not path.endswith(".html"):
        yield f"{path}/index.html"


STRATEGIES: List[ResolutionStrategy] = [exact_match, extensionless_page, directory_index]


def normalize_request_path(path: str) -> str:
    return (path or "").strip().strip("/")


def resolve(files: Mapping[str, str], requested: str) -> Resolution:
    """Return the first entry matched by STRATEGIES, or NotFound.

    The empty path is not resolved here; see ``resolve_root``.
    """
    path = normalize_request_path(requested)
    if not path:
        return NotFound(requested=requested)
    for strategy in STRATEGIES:
        for candidate in strategy(path):
            content = files.get(candidate)
            if content is not None:
                return ResolvedFile(path=candidate, content=content)
    return NotFound(requested=path)


def resolve_root(files: Mapping[str, str], placeholder: str) -> Tuple[str, bool]:
    """Serve ``index.html`` for the root; returns (html, found)."""
    html = files.get("index.html")
    if html is None:
        return placeholder, False
    return html, True


_CONTENT_TYPES: List[Tuple[Tuple[str, ...], str]] = [
    ((".css",), "text/css"),
    ((".js", ".mjs"), "text/javascript"),
    ((".json",), "application/json"),
    ((".svg",), "image/svg+xml"),
    ((".html", ".htm"), "text/html"),
]


def content_type(path: str) -> str:
    for suffixes, mime in _CONTENT_TYPES:
        if path.endswith(suffixes):
            return f"{mime}; charset=utf-8"
    return "text/plain; charset=utf-8"
