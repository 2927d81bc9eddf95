"""Per-process context: root, workspace, ProjectId, mailbox and settings.

Built once at process start and handed to every component instead of
module-level path caches.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..paths import ensure_home
from .identity import project_id_for
from .mailbox import Mailbox, open_mailbox
from .registry import lookup_project_path, register_project
from .settings import IpcSettings, load_settings


@dataclass
class ProjectContext:
    home: Path
    workspace: str
    project_id: str
    mailbox: Mailbox
    settings: IpcSettings

    @property
    def session_state_path(self) -> Path:
        return self.mailbox.path / "session-state.json"

    @property
    def session_lock_path(self) -> Path:
        return self.mailbox.path / "session-state.lock"

    def register(self) -> None:
        register_project(self.home, self.workspace, self.mailbox.path)


def open_project(
    workspace: str,
    *,
    home: Optional[Path] = None,
    settings: Optional[IpcSettings] = None,
    use_registry: bool = False,
) -> ProjectContext:
    """Resolve the project for `workspace`.

    With `use_registry`, a workspace nested below a registered one reuses the
    registered mailbox, so a hook started in a subdirectory still reaches the
    editor that owns the parent folder.
    """
    root = home or ensure_home()
    pid = project_id_for(workspace)
    mailbox = open_mailbox(root, pid)
    if use_registry and workspace:
        registered = lookup_project_path(root, workspace)
        if registered is not None:
            mailbox = Mailbox(path=registered)
            pid = registered.name
    return ProjectContext(
        home=root,
        workspace=workspace,
        project_id=pid,
        mailbox=mailbox,
        settings=settings or load_settings(root),
    )
