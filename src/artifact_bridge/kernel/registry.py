"""projects.json: raw workspace path -> project directory.

The hook process may start in a subdirectory or with a differently spelled
path; the registry lets it find the mailbox the editor side registered.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..paths import projects_file
from ..util.file_lock import locked
from ..util.fs import atomic_write_json, read_json
from ..util.time import utc_now_iso
from .identity import workspace_basename


@dataclass
class ProjectRegistry:
    """Flat `{workspacePath: {path, name, lastActive}}` map, the shape the editor extension writes."""

    path: Path
    projects: Dict[str, Dict[str, Any]]

    def find(self, workspace_path: str) -> Optional[Dict[str, Any]]:
        return self.projects.get(workspace_path)

    def save(self) -> None:
        atomic_write_json(self.path, self.projects)


def _lock_path(home: Path) -> Path:
    return home / "projects.lock"


def load_registry(home: Path) -> ProjectRegistry:
    path = projects_file(home)
    projects = {str(k): v for k, v in read_json(path).items() if isinstance(v, dict)}
    return ProjectRegistry(path=path, projects=projects)


def register_project(home: Path, workspace_path: str, project_path: Path) -> ProjectRegistry:
    """Record (or refresh) the mapping for `workspace_path`."""
    with locked(_lock_path(home)):
        reg = load_registry(home)
        reg.projects[workspace_path] = {
            "path": str(project_path),
            "name": workspace_basename(workspace_path),
            "lastActive": utc_now_iso(),
        }
        reg.save()
    return reg


def lookup_project_path(home: Path, workspace_path: str) -> Optional[Path]:
    """Registered project dir for the workspace or its nearest registered ancestor."""
    reg = load_registry(home)
    candidate = workspace_path.rstrip("/\\")
    while candidate:
        entry = reg.find(candidate)
        if entry and str(entry.get("path") or "").strip():
            return Path(str(entry["path"]))
        parent = os.path.dirname(candidate)
        if parent == candidate:
            break
        candidate = parent
    return None
