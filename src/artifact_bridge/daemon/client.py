"""Editor-side IPC client.

Owns the three moving parts of the long-running process for one project:
outbound queue -> outbox/, inbound delivery <- inbox/, and the state
observer on state/current.json. Listeners are plain callables.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Union

from .. import __version__
from ..contracts.v1 import (
    ClaudeStateSnapshot,
    DiscussionRequestData,
    Envelope,
    ErrorData,
    FeedbackData,
    MessageType,
    OptionSelectionData,
    StatusData,
)
from ..kernel.codec import encode
from ..kernel.project import ProjectContext
from ..util.time import now_ms
from .inbound import InboundDelivery
from .outbound import DeliveryError, OutboundQueue
from .state import StateBroadcaster


logger = logging.getLogger("artifact_bridge.client")


class IpcClient:
    def __init__(self, ctx: ProjectContext) -> None:
        self.ctx = ctx
        s = ctx.settings
        self.outbound = OutboundQueue(
            lambda env: ctx.mailbox.place("outbox", env),
            retry_attempts=s.retry_attempts,
            retry_delay_seconds=s.retry_delay_seconds,
            on_error=self._emit_error,
        )
        self.inbound = InboundDelivery(
            ctx.mailbox,
            self._emit_message,
            active_interval=s.active_poll_seconds,
            idle_interval=s.idle_poll_seconds,
            idle_threshold=s.idle_threshold_seconds,
            dedup_capacity=s.dedup_capacity,
            malformed_max_age_seconds=s.malformed_max_age_seconds,
            watch=s.watch,
        )
        self.state = StateBroadcaster(ctx.mailbox.state_path, on_change=self._emit_state, watch=s.watch)
        self._message_listeners: List[Callable[[Envelope], None]] = []
        self._error_listeners: List[Callable[[BaseException], None]] = []
        self._state_listeners: List[Callable[[ClaudeStateSnapshot], None]] = []
        self.connected = False

    # -------------------------------------------------------------- listeners

    def on_message(self, fn: Callable[[Envelope], None]) -> None:
        self._message_listeners.append(fn)

    def on_error(self, fn: Callable[[BaseException], None]) -> None:
        self._error_listeners.append(fn)

    def on_state_change(self, fn: Callable[[ClaudeStateSnapshot], None]) -> None:
        self._state_listeners.append(fn)

    def _emit_message(self, envelope: Envelope) -> None:
        logger.info(
            "received %s/%s",
            envelope.type.value,
            envelope.action or "-",
            extra={"project_id": self.ctx.project_id, "message_id": envelope.id},
        )
        for fn in list(self._message_listeners):
            try:
                fn(envelope)
            except Exception:
                logger.exception("message listener failed", extra={"message_id": envelope.id})

    def _emit_error(self, err: BaseException) -> None:
        for fn in list(self._error_listeners):
            try:
                fn(err)
            except Exception:
                logger.exception("error listener failed")

    def _emit_state(self, snapshot: ClaudeStateSnapshot) -> None:
        for fn in list(self._state_listeners):
            try:
                fn(snapshot)
            except Exception:
                logger.exception("state listener failed")

    # -------------------------------------------------------------- lifecycle

    def initialize(self) -> None:
        """Create the mailbox, register the project, start watching, say ready."""
        self.ctx.mailbox.ensure()
        self.ctx.register()
        self.inbound.start()
        self.state.observe()
        self.send_status("ready")
        self.connected = True
        logger.info(
            "ipc client ready at %s", self.ctx.mailbox.path, extra={"project_id": self.ctx.project_id}
        )

    def close(self, timeout: float = 2.0) -> None:
        if self.connected:
            self.connected = False
            try:
                self.send_status("disconnected")
            except Exception:
                logger.exception("failed to queue disconnected status")
        self.outbound.flush(timeout=timeout)
        self.inbound.stop()
        self.state.stop()
        self.outbound.close()

    # ------------------------------------------------------------------ send

    def send(self, kind: Union[MessageType, str], payload: Any) -> "Future[bool]":
        return self.outbound.enqueue(encode(kind, payload))

    def send_artifact(self, payload: Any) -> "Future[bool]":
        """`payload` is one of the artifact actions (create, update, delete, request-review)."""
        return self.send(MessageType.ARTIFACT, payload)

    def send_feedback(
        self,
        artifact_id: str,
        action: str,
        *,
        reason: Optional[str] = None,
        comments: Optional[List[Dict[str, Any]]] = None,
        feedback: Optional[str] = None,
    ) -> "Future[bool]":
        data = FeedbackData(artifact_id=artifact_id, action=action, reason=reason, comments=comments, feedback=feedback)
        return self.send(MessageType.FEEDBACK, data)

    def send_status(self, status: str) -> "Future[bool]":
        return self.send(MessageType.STATUS, StatusData(status=status, extension_version=__version__))

    def send_error(self, code: str, message: str, details: Any = None) -> "Future[bool]":
        return self.send(MessageType.ERROR, ErrorData(code=code, message=message, details=details))

    def send_option_selection(
        self,
        artifact_id: str,
        selected_option_id: Optional[str],
        custom_response: Optional[str] = None,
    ) -> "Future[bool]":
        data = OptionSelectionData(
            artifact_id=artifact_id,
            selected_option_id=selected_option_id,
            custom_response=custom_response,
            timestamp=now_ms(),
        )
        return self.send(MessageType.OPTION_RESPONSE, data)

    def send_discussion_request(
        self,
        artifact_id: str,
        thread_id: str,
        comments: List[Dict[str, Any]],
        request_type: str,
    ) -> "Future[bool]":
        data = DiscussionRequestData(
            artifact_id=artifact_id, thread_id=thread_id, comments=comments, request_type=request_type
        )
        return self.send(MessageType.DISCUSSION, data)

    # ------------------------------------------------------------------ misc

    @property
    def claude_state(self) -> Optional[ClaudeStateSnapshot]:
        return self.state.current

    def cleanup_processed(self, max_age_seconds: Optional[float] = None) -> int:
        age = self.ctx.settings.processed_max_age_seconds if max_age_seconds is None else max_age_seconds
        cleaned = self.ctx.mailbox.cleanup_processed(age)
        if cleaned:
            logger.info("removed %d processed message(s)", cleaned, extra={"project_id": self.ctx.project_id})
        return cleaned


__all__ = ["DeliveryError", "IpcClient"]
