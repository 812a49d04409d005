"""Virtual file store helpers.

A project's site is a flat mapping of slash-separated relative paths to text
content. The mapping is replaced wholesale; these helpers never mutate their
inputs.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set


@dataclass
class TreeNode:
    name: str
    path: str
    type: str  # "file" | "folder"
    children: List["TreeNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "children": [c.to_dict() for c in self.children],
        }


def merge(existing: Mapping[str, str], parsed: Mapping[str, str]) -> Dict[str, str]:
    """Overlay ``parsed`` on ``existing``. Paths missing from ``parsed`` are kept."""
    merged = dict(existing or {})
    merged.update(parsed or {})
    return merged


def build_tree(files: Mapping[str, str]) -> List[TreeNode]:
    root: List[TreeNode] = []
    folders: Dict[str, TreeNode] = {}

    def ensure_folder(parts: List[str]) -> List[TreeNode]:
        if not parts:
            return root
        full_path = "/".join(parts)
        node = folders.get(full_path)
        if node is not None:
            return node.children
        parent = ensure_folder(parts[:-1])
        node = TreeNode(name=parts[-1], path=full_path, type="folder")
        parent.append(node)
        folders[full_path] = node
        return node.children

    for file_path in sorted(files or {}):
        parts = file_path.split("/")
        container = ensure_folder(parts[:-1])
        container.append(TreeNode(name=parts[-1], path=file_path, type="file"))
    return root


def folder_paths(files: Mapping[str, str]) -> Set[str]:
    """Every intermediate folder path, e.g. ``pages`` and ``pages/docs``."""
    out: Set[str] = set()
    for file_path in files or {}:
        parts = file_path.split("/")
        for i in range(1, len(parts)):
            out.add("/".join(parts[:i]))
    return out


def files_from_config(config: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Read a stored project config.

    Older projects stored a single page under ``htmlContent``; newer ones a
    ``files`` mapping.
    """
    if not config:
        return {}
    files = config.get("files")
    if isinstance(files, Mapping):
        return {str(k): str(v) for k, v in files.items() if isinstance(v, str)}
    html = config.get("htmlContent")
    if isinstance(html, str) and html:
        return {"index.html": html}
    return {}


def snapshot(files: Mapping[str, str]) -> Dict[str, str]:
    return copy.deepcopy(dict(files or {}))
