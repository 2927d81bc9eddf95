"""Blocking approval handshake for the CLI side.

WAITING -> APPROVED | REJECTED | TIMED_OUT (| CANCELLED)

The caller holds a plan id and blocks until the editor drops a matching
decision into outbox/ or the timeout elapses. A matching file is deleted
before the decision is returned; if the delete loses a race the file belongs
to someone else and the scan moves on. The poll interval is a safety net:
an optional directory watch wakes the wait as soon as a file lands.
"""
from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..contracts.v1 import ENVELOPE_SUFFIX, ApprovalOutcome, Envelope, MessageType
from ..util.watch import DirectoryWatcher
from .codec import ParseError, decode
from .mailbox import Mailbox


DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_POLL_SECONDS = 1.0

logger = logging.getLogger("artifact_bridge.approval")


class ApprovalState(str, Enum):
    WAITING = "waiting"
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"


def match_decision(envelope: Envelope, plan_id: str) -> Optional[ApprovalOutcome]:
    """Decision carried by `envelope` for `plan_id`, or None if it is not one."""
    if envelope.artifact_id != plan_id:
        return None
    action = envelope.action
    if envelope.type == MessageType.FEEDBACK:
        if action == "proceed":
            return ApprovalOutcome(approved=True)
        if action == "reject":
            return ApprovalOutcome(approved=False, reason="rejected")
        return None
    if envelope.type == MessageType.OPTION_RESPONSE and action == "option-selected":
        selected = envelope.payload.get("selectedOptionId")
        custom = envelope.payload.get("customResponse")
        if selected:
            return ApprovalOutcome(approved=True, selected_option_id=str(selected))
        if custom:
            return ApprovalOutcome(approved=False, reason="custom", custom_response=str(custom))
        return ApprovalOutcome(approved=False, reason="rejected")
    return None


def _state_for(outcome: ApprovalOutcome) -> ApprovalState:
    if outcome.approved:
        return ApprovalState.APPROVED
    if outcome.reason == "timeout":
        return ApprovalState.TIMED_OUT
    if outcome.reason == "cancelled":
        return ApprovalState.CANCELLED
    return ApprovalState.REJECTED


class ApprovalHandshake:
    def __init__(
        self,
        mailbox: Mailbox,
        plan_id: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        cancel: Optional[threading.Event] = None,
        watch: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.mailbox = mailbox
        self.plan_id = plan_id
        self.timeout_seconds = max(0.0, float(timeout_seconds))
        self.poll_seconds = max(0.01, float(poll_seconds))
        self.cancel = cancel or threading.Event()
        self._watch = watch
        self._clock = clock
        self._wake = threading.Event()
        self.state = ApprovalState.WAITING

    def _on_outbox_change(self, _path: Path) -> None:
        self._wake.set()

    def scan(self) -> Optional[ApprovalOutcome]:
        """One pass over outbox/; consumes and returns the first matching decision."""
        for path in self.mailbox.list("outbox"):
            try:
                envelope = decode(path.read_bytes())
            except FileNotFoundError:
                continue
            except (OSError, ParseError):
                # Possibly still being written; the next pass retries it.
                continue
            outcome = match_decision(envelope, self.plan_id)
            if outcome is None:
                continue
            if not self.mailbox.remove(path):
                continue
            logger.info(
                "decision %s received",
                "approve" if outcome.approved else outcome.reason,
                extra={"plan_id": self.plan_id, "message_id": envelope.id},
            )
            return outcome
        return None

    def _finish(self, outcome: ApprovalOutcome) -> ApprovalOutcome:
        self.state = _state_for(outcome)
        return outcome

    def wait(self) -> ApprovalOutcome:
        watcher: Optional[DirectoryWatcher] = None
        if self._watch:
            watcher = DirectoryWatcher(
                self.mailbox.outbox_path, self._on_outbox_change, match=lambda n: n.endswith(ENVELOPE_SUFFIX)
            )
            watcher.start()
        deadline = self._clock() + self.timeout_seconds
        logger.info(
            "waiting for approval (timeout %.0fs)", self.timeout_seconds, extra={"plan_id": self.plan_id}
        )
        try:
            while True:
                outcome = self.scan()
                if outcome is not None:
                    return self._finish(outcome)
                if self.cancel.is_set():
                    logger.info("approval wait cancelled", extra={"plan_id": self.plan_id})
                    return self._finish(ApprovalOutcome(approved=False, reason="cancelled"))
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.info("approval timed out", extra={"plan_id": self.plan_id})
                    return self._finish(ApprovalOutcome(approved=False, reason="timeout"))
                self._wake.wait(min(self.poll_seconds, remaining))
                self._wake.clear()
        finally:
            if watcher is not None:
                watcher.stop()


def wait_for_approval(
    mailbox: Mailbox,
    plan_id: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    poll_seconds: float = DEFAULT_POLL_SECONDS,
    cancel: Optional[threading.Event] = None,
    watch: bool = False,
) -> ApprovalOutcome:
    return ApprovalHandshake(
        mailbox,
        plan_id,
        timeout_seconds=timeout_seconds,
        poll_seconds=poll_seconds,
        cancel=cancel,
        watch=watch,
    ).wait()
