"""SessionState persistence for the CLI side.

Several hook processes can run at once for the same project (parallel tool
calls), so every read-modify-write happens under the project's session lock.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from pydantic import ValidationError

from ..contracts.v1 import ChangedFile, SessionState
from ..contracts.v1.plan import ChangeType
from ..util.file_lock import locked
from ..util.fs import atomic_write_json, read_json, remove_file
from ..util.time import now_ms, utc_now_iso
from .project import ProjectContext


logger = logging.getLogger("artifact_bridge.session")


def new_session() -> SessionState:
    return SessionState(session_id=f"session-{now_ms()}", started_at=utc_now_iso())


def load_session(ctx: ProjectContext) -> SessionState:
    """Current session, or a fresh one when the file is missing or unreadable."""
    doc = read_json(ctx.session_state_path)
    if not doc:
        return new_session()
    try:
        state = SessionState.model_validate(doc)
    except ValidationError:
        logger.warning("session state unreadable, starting over", extra={"project_id": ctx.project_id})
        return new_session()
    return state


def save_session(ctx: ProjectContext, state: SessionState) -> None:
    state.updated_at = utc_now_iso()
    atomic_write_json(ctx.session_state_path, state.to_wire())


@contextmanager
def editing_session(ctx: ProjectContext) -> Iterator[SessionState]:
    """Hold the session lock, yield the state, and save it on clean exit."""
    with locked(ctx.session_lock_path):
        state = load_session(ctx)
        yield state
        save_session(ctx, state)


def update_session(ctx: ProjectContext, fn: Callable[[SessionState], None]) -> SessionState:
    with editing_session(ctx) as state:
        fn(state)
    return state


def add_file_change(
    ctx: ProjectContext,
    file_path: str,
    change_type: ChangeType,
    *,
    lines_added: int = 0,
    lines_removed: int = 0,
) -> SessionState:
    """Record a change; repeated changes to one file accumulate on its entry."""

    def _apply(state: SessionState) -> None:
        existing = state.find_file(file_path)
        if existing is not None:
            existing.lines_added += lines_added
            existing.lines_removed += lines_removed
            existing.change_count = (existing.change_count or 1) + 1
            return
        state.changed_files.append(
            ChangedFile(
                file_path=file_path,
                change_type=change_type,
                lines_added=lines_added,
                lines_removed=lines_removed,
                change_count=1,
                timestamp=utc_now_iso(),
            )
        )

    return update_session(ctx, _apply)


def start_plan(ctx: ProjectContext, plan_id: str, *, started_ms: Optional[int] = None) -> SessionState:
    def _apply(state: SessionState) -> None:
        state.current_plan_id = plan_id
        state.plan_start_time = started_ms if started_ms is not None else now_ms()

    return update_session(ctx, _apply)


def clear_session(ctx: ProjectContext) -> bool:
    with locked(ctx.session_lock_path):
        removed = remove_file(ctx.session_state_path)
    if removed:
        logger.info("session state cleared", extra={"project_id": ctx.project_id})
    return removed
