"""Tool handlers for the hook process.

Each handler returns a HookResult; exit code 1 blocks the gated tool. Routing
is on (hook event, tool name); anything unrouted is allowed through silently.
Envelopes go to the project's inbox through an OutboundQueue, which is
flushed before the process blocks on an approval and again before exit.
"""
from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..contracts.v1 import (
    ApprovalOutcome,
    DEFAULT_PLAN_TITLE,
    ImplementationPlanArtifact,
    MessageType,
    PlanDocument,
    SessionState,
    TaskListArtifact,
    TaskListItem,
    WalkthroughArtifact,
    WalkthroughFileChange,
    WalkthroughSection,
)
from ..contracts.v1.plan import ChangeType
from ..daemon.outbound import OutboundQueue
from ..daemon.state import StateBroadcaster
from ..kernel.approval import ApprovalHandshake
from ..kernel.codec import encode
from ..kernel.plan_parser import find_latest_plan_file, parse_plan_markdown, plan_id_for_title
from ..kernel.project import ProjectContext
from ..kernel.router import Router
from ..kernel.session import add_file_change, load_session, start_plan, update_session
from ..paths import plans_dir as default_plans_dir
from ..util.time import now_ms, utc_now_iso
from .invocation import HookEvent, ToolInvocation, ToolName


FLUSH_TIMEOUT_SECONDS = 10.0
REVIEW_SUMMARY = "Please review and approve the implementation plan."
DRAFTING_SUMMARY = "Claude Code is creating a plan..."

_RM_RE = re.compile(r"\brm\s+(?:-[rf]+\s+)?(.+)")

logger = logging.getLogger("artifact_bridge.hook")


@dataclass
class HookResult:
    exit_code: int = 0
    message: str = ""
    outcome: Optional[ApprovalOutcome] = None


ALLOW = HookResult()


def _close_plan(state: SessionState) -> None:
    state.current_plan_id = None
    state.plan_start_time = None


def map_todo_status(status: Any) -> str:
    s = str(status or "")
    if s == "completed":
        return "completed"
    if s == "in_progress":
        return "in-progress"
    return "pending"


def relative_to_workspace(file_path: str, workspace: str) -> str:
    ws = workspace.rstrip("/\\")
    if ws and file_path.startswith(ws) and len(file_path) > len(ws) and file_path[len(ws)] in "/\\":
        return file_path[len(ws) + 1 :]
    return file_path


def _line_count(text: str) -> int:
    return len(text.split("\n"))


def build_walkthrough(state: SessionState) -> WalkthroughArtifact:
    changed = [
        WalkthroughFileChange(
            file_path=f.file_path,
            change_type=f.change_type,
            lines_added=f.lines_added,
            lines_removed=f.lines_removed,
            summary=f"{f.change_count} change(s)",
        )
        for f in state.changed_files
    ]
    added = sum(f.lines_added for f in changed)
    removed = sum(f.lines_removed for f in changed)
    return WalkthroughArtifact(
        summary=f"{len(changed)} files changed (+{added}/-{removed} lines)",
        sections=[
            WalkthroughSection(
                id="changes-summary",
                title="Changes Summary",
                content=(
                    f"This session started at {state.started_at}.\n\n"
                    f"{len(changed)} files have been modified."
                ),
                order=1,
            )
        ],
        changed_files=changed,
        key_points=list(state.key_points),
        created_at=state.started_at,
        updated_at=utc_now_iso(),
    )


def build_plan_artifact(plan_id: str, doc: PlanDocument, *, status: str = "pending-review") -> ImplementationPlanArtifact:
    now = utc_now_iso()
    return ImplementationPlanArtifact(
        id=plan_id,
        title=doc.title or DEFAULT_PLAN_TITLE,
        status=status,
        summary=doc.summary or REVIEW_SUMMARY,
        sections=doc.sections,
        estimated_changes=doc.estimated_changes,
        created_at=now,
        updated_at=now,
    )


class HookRunner:
    def __init__(
        self,
        ctx: ProjectContext,
        *,
        cancel: Optional[threading.Event] = None,
        plans_dir: Optional[Path] = None,
    ) -> None:
        self.ctx = ctx
        self.cancel = cancel or threading.Event()
        self.plans_dir = plans_dir or default_plans_dir()
        s = ctx.settings
        self.outbound = OutboundQueue(
            lambda env: ctx.mailbox.place("inbox", env),
            retry_attempts=s.retry_attempts,
            retry_delay_seconds=s.retry_delay_seconds,
            name="hook",
        )
        self.state = StateBroadcaster(ctx.mailbox.state_path, watch=False)
        self.router: Router[ToolInvocation, HookResult] = Router("hook", key=lambda inv: inv.route_key)

        post, pre = HookEvent.POST_TOOL_USE, HookEvent.PRE_TOOL_USE
        self.router.register(post, self.on_todo_write, action=ToolName.TODO_WRITE)
        self.router.register(post, self.on_write, action=ToolName.WRITE)
        self.router.register(post, self.on_edit, action=ToolName.EDIT)
        self.router.register(post, self.on_bash, action=ToolName.BASH)
        self.router.register(post, self.on_enter_plan_mode, action=ToolName.ENTER_PLAN_MODE)
        self.router.register(post, self.on_exit_plan_mode, action=ToolName.EXIT_PLAN_MODE)
        self.router.register(pre, self.on_pre_exit_plan_mode, action=ToolName.EXIT_PLAN_MODE)

    def run(self, invocation: ToolInvocation) -> HookResult:
        if self.router.resolve(invocation) is None:
            logger.debug("nothing to do for %s/%s", invocation.event.value, invocation.tool_name)
            return ALLOW
        logger.info(
            "%s: %s",
            invocation.event.value,
            invocation.tool_name,
            extra={"project_id": self.ctx.project_id, "tool": invocation.tool_name},
        )
        try:
            result = self.router.dispatch(invocation)
        finally:
            self.close()
        # A failed handler returns None: fail open.
        return result or ALLOW

    def close(self) -> None:
        if not self.outbound.flush(timeout=FLUSH_TIMEOUT_SECONDS):
            logger.warning("outbound queue not drained before exit", extra={"project_id": self.ctx.project_id})
        self.outbound.close()

    # ----------------------------------------------------------------- send

    def _send_artifact(self, action: str, artifact: Dict[str, Any]) -> "Future[bool]":
        return self.outbound.enqueue(encode(MessageType.ARTIFACT, {"action": action, "artifact": artifact}))

    def _send_status(self, plan_id: str, status: str) -> None:
        self._send_artifact("update", {"id": plan_id, "status": status, "updatedAt": utc_now_iso()})

    def _track(self, file_path: str, change_type: ChangeType, *, added: int = 0, removed: int = 0) -> SessionState:
        rel = relative_to_workspace(file_path, self.ctx.workspace)
        state = add_file_change(self.ctx, rel, change_type, lines_added=added, lines_removed=removed)
        if not state.walkthrough_created:

            def _mark(s: SessionState) -> None:
                s.walkthrough_created = True

            state = update_session(self.ctx, _mark)
        self._send_artifact("update", build_walkthrough(state).to_wire())
        logger.info("%s tracked: %s (+%d/-%d)", change_type, rel, added, removed)
        return state

    # ---------------------------------------------------------------- tools

    def on_todo_write(self, inv: ToolInvocation) -> HookResult:
        todos = inv.tool_input.get("todos") or []
        ts = now_ms()
        items: List[TaskListItem] = []
        for i, todo in enumerate(todos if isinstance(todos, list) else []):
            if not isinstance(todo, dict):
                continue
            items.append(
                TaskListItem(
                    id=f"task-{i}-{ts}",
                    text=str(todo.get("content") or todo.get("text") or ""),
                    status=map_todo_status(todo.get("status")),
                    order=i + 1,
                )
            )
        now = utc_now_iso()
        self._send_artifact("update", TaskListArtifact(items=items, created_at=now, updated_at=now).to_wire())
        logger.info("task list synced: %d tasks", len(items))
        return ALLOW

    def on_write(self, inv: ToolInvocation) -> HookResult:
        path = str(inv.tool_input.get("file_path") or inv.tool_input.get("path") or "")
        if path:
            content = str(inv.tool_input.get("content") or "")
            self._track(path, "create", added=_line_count(content))
        return ALLOW

    def on_edit(self, inv: ToolInvocation) -> HookResult:
        path = str(inv.tool_input.get("file_path") or inv.tool_input.get("path") or "")
        if path:
            old = str(inv.tool_input.get("old_string") or "")
            new = str(inv.tool_input.get("new_string") or "")
            self._track(path, "modify", added=_line_count(new), removed=_line_count(old))
        return ALLOW

    def on_bash(self, inv: ToolInvocation) -> HookResult:
        m = _RM_RE.search(str(inv.tool_input.get("command") or ""))
        if m:
            self._track(m.group(1).strip(), "delete")
        return ALLOW

    def on_enter_plan_mode(self, inv: ToolInvocation) -> HookResult:
        started = now_ms()
        plan_id = f"impl-plan-{started}"
        start_plan(self.ctx, plan_id, started_ms=started)
        draft = build_plan_artifact(plan_id, PlanDocument(summary=DRAFTING_SUMMARY), status="draft")
        self._send_artifact("create", draft.to_wire())
        self.state.publish_state("planning", "Drafting an implementation plan")
        logger.info("plan started", extra={"plan_id": plan_id})
        return ALLOW

    def on_exit_plan_mode(self, inv: ToolInvocation) -> HookResult:
        session = load_session(self.ctx)
        plan_id = session.current_plan_id
        if not plan_id:
            logger.warning("no plan in progress, nothing to review")
            return ALLOW

        doc = PlanDocument()
        plan_file = find_latest_plan_file(self.plans_dir, session.plan_start_time or 0)
        if plan_file is not None:
            logger.info("plan file %s", plan_file, extra={"plan_id": plan_id})
            doc = parse_plan_markdown(plan_file.read_text(encoding="utf-8"))
        else:
            logger.warning("no plan file found", extra={"plan_id": plan_id})

        sent = self._send_artifact(
            "update",
            {
                "id": plan_id,
                "title": doc.title,
                "summary": doc.summary or REVIEW_SUMMARY,
                "sections": [s.to_wire() for s in doc.sections],
                "estimatedChanges": doc.estimated_changes,
                "status": "pending-review",
                "updatedAt": utc_now_iso(),
            },
        )
        return self._await_decision(plan_id, doc.title, sent)

    def on_pre_exit_plan_mode(self, inv: ToolInvocation) -> HookResult:
        text = str(inv.tool_input.get("plan") or "")
        if not text:
            logger.info("no plan text, allowing")
            return ALLOW
        doc = parse_plan_markdown(text)
        plan_id = plan_id_for_title(doc.title)
        sent = self._send_artifact("create", build_plan_artifact(plan_id, doc).to_wire())
        logger.info("plan sent for review (%d sections)", len(doc.sections), extra={"plan_id": plan_id})
        return self._await_decision(plan_id, doc.title, sent)

    # ------------------------------------------------------------- approval

    def _await_decision(self, plan_id: str, title: str, sent: "Future[bool]") -> HookResult:
        # The plan must be on disk before anyone can answer it.
        flushed = self.outbound.flush(timeout=FLUSH_TIMEOUT_SECONDS)
        if not flushed or not sent.done() or sent.exception() is not None:
            logger.warning("plan did not reach the inbox, allowing without review", extra={"plan_id": plan_id})
            return ALLOW
        self.state.publish_state("waiting-for-approval", f"Waiting for approval: {title}")
        s = self.ctx.settings
        outcome = ApprovalHandshake(
            self.ctx.mailbox,
            plan_id,
            timeout_seconds=s.approval_timeout_seconds,
            poll_seconds=s.approval_poll_seconds,
            cancel=self.cancel,
            watch=s.watch,
        ).wait()
        # Reviewed plans are closed; a later post-invocation ExitPlanMode must not ask twice.
        update_session(self.ctx, _close_plan)

        if outcome.approved:
            self._send_status(plan_id, "approved")
            self.state.publish_state("executing", f"Implementing: {title}")
            logger.info("plan approved", extra={"plan_id": plan_id})
            return HookResult(exit_code=0, outcome=outcome)

        self._send_status(plan_id, "draft")
        self.state.publish_state("waiting-for-input", f"Plan not approved ({outcome.reason})")
        logger.info("plan not approved: %s", outcome.reason, extra={"plan_id": plan_id})
        if outcome.reason == "cancelled":
            return HookResult(exit_code=0, outcome=outcome)
        if outcome.reason == "custom":
            message = f"Plan not approved. Reviewer response: {outcome.custom_response}"
        elif outcome.reason == "timeout":
            message = "Plan approval timed out."
        else:
            message = "Plan rejected by reviewer."
        return HookResult(exit_code=1, message=message, outcome=outcome)
