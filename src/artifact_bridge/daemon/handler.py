"""Editor-side dispatch of inbox envelopes.

Routes on (type, payload action). A handler that raises is reported back to
the CLI side as an `error` envelope with code HANDLER_ERROR; the envelope
itself is already consumed and is not retried.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from ..contracts.v1 import (
    ArtifactCreateData,
    ArtifactDeleteData,
    ArtifactRequestReviewData,
    ArtifactUpdateData,
    ClaudeStateSnapshot,
    DiscussionResponseData,
    Envelope,
    ErrorData,
    MessageType,
    PlanOptionsData,
)
from ..kernel.router import Router
from ..util.time import utc_now_iso
from .client import IpcClient
from .presenter import Presenter
from .store import ArtifactStore


HANDLER_ERROR = "HANDLER_ERROR"
ARTIFACT_NOT_FOUND = "ARTIFACT_NOT_FOUND"

logger = logging.getLogger("artifact_bridge.handler")


def _envelope_key(envelope: Envelope) -> tuple:
    return (envelope.type.value, envelope.action)


class MessageHandler:
    def __init__(self, client: IpcClient, store: ArtifactStore, presenter: Presenter) -> None:
        self.client = client
        self.store = store
        self.presenter = presenter
        self.router: Router[Envelope, None] = Router(
            "editor", key=_envelope_key, on_handler_error=self._report_failure
        )
        r = self.router
        r.register(MessageType.ARTIFACT, self.on_artifact_create, action="create")
        r.register(MessageType.ARTIFACT, self.on_artifact_update, action="update")
        r.register(MessageType.ARTIFACT, self.on_artifact_delete, action="delete")
        r.register(MessageType.ARTIFACT, self.on_artifact_request_review, action="request-review")
        r.register(MessageType.STATUS, self.on_status)
        r.register(MessageType.ERROR, self.on_error)
        r.register(MessageType.STATE, self.on_state)
        r.register(MessageType.OPTIONS, self.on_options)
        r.register(MessageType.DISCUSSION_RESPONSE, self.on_discussion_response)

    def attach(self) -> "MessageHandler":
        self.client.on_message(self.handle)
        self.client.on_state_change(self.handle_state_change)
        return self

    def handle(self, envelope: Envelope) -> None:
        self.router.dispatch(envelope)

    def _report_failure(self, envelope: Envelope, err: BaseException) -> None:
        self.client.send_error(HANDLER_ERROR, str(err) or type(err).__name__, {"messageId": envelope.id})

    # -------------------------------------------------------------- artifact

    def on_artifact_create(self, envelope: Envelope) -> None:
        data = ArtifactCreateData.model_validate(envelope.payload)
        artifact = self.store.upsert(data.artifact)
        self.presenter.show_artifact(artifact)
        self.presenter.notify(f"Artifact created: {artifact.get('title', artifact.get('id'))}")

    def on_artifact_update(self, envelope: Envelope) -> None:
        data = ArtifactUpdateData.model_validate(envelope.payload)
        incoming: Dict[str, Any] = dict(data.artifact)
        aid = str(incoming["id"])
        existing = self.store.get(aid)

        if existing is None:
            if not incoming.get("type"):
                logger.warning("update for unknown artifact %s", aid)
                self.client.send_error(ARTIFACT_NOT_FOUND, f"Artifact {aid} not found")
                return
            now = utc_now_iso()
            incoming.setdefault("createdAt", now)
            incoming.setdefault("comments", [])
            incoming["updatedAt"] = now
            created = self.store.upsert(incoming)
            self.presenter.show_artifact(created)
            self.presenter.notify(f"Artifact created: {created.get('title', aid)}")
            return

        merged = {**existing, **incoming, "updatedAt": utc_now_iso()}
        updated = self.store.upsert(merged)
        self.presenter.show_artifact(updated)
        status = incoming.get("status")
        if status and status != existing.get("status"):
            self.presenter.notify(f'Artifact "{existing.get("title", aid)}" status: {status}')

    def on_artifact_delete(self, envelope: Envelope) -> None:
        data = ArtifactDeleteData.model_validate(envelope.payload)
        existing = self.store.get(data.artifact_id)
        if existing is None:
            logger.warning("delete for unknown artifact %s", data.artifact_id)
            return
        self.store.delete(data.artifact_id)
        self.presenter.notify(f"Artifact deleted: {existing.get('title', data.artifact_id)}")

    def on_artifact_request_review(self, envelope: Envelope) -> None:
        data = ArtifactRequestReviewData.model_validate(envelope.payload)
        aid = data.artifact_id
        if self.store.get(aid) is None:
            self.client.send_error(ARTIFACT_NOT_FOUND, f"Artifact {aid} not found")
            return
        updated = self.store.update_status(aid, "pending-review") or {}
        self.presenter.show_artifact(updated)
        self.presenter.notify(f"Review requested: {updated.get('title', aid)}")
        if self.presenter.confirm_review(updated):
            self.store.update_status(aid, "approved")
            self.client.send_feedback(aid, "proceed")

    # ----------------------------------------------------------------- other

    def on_status(self, envelope: Envelope) -> None:
        logger.info("cli status: %s", envelope.payload.get("status"), extra={"message_id": envelope.id})

    def on_error(self, envelope: Envelope) -> None:
        data = ErrorData.model_validate(envelope.payload)
        self.presenter.show_error(f"CLI Error [{data.code}]: {data.message}")

    def on_state(self, envelope: Envelope) -> None:
        self.handle_state_change(ClaudeStateSnapshot.model_validate(envelope.payload))

    def handle_state_change(self, snapshot: ClaudeStateSnapshot) -> None:
        self.presenter.update_state(snapshot)
        if snapshot.state == "waiting-for-approval":
            self.presenter.notify("Claude is waiting for plan approval")

    def on_options(self, envelope: Envelope) -> None:
        data = PlanOptionsData.model_validate(envelope.payload)
        choice = self.presenter.present_options(data)
        if choice is None:
            return
        selected, custom = choice
        if selected or custom:
            self.client.send_option_selection(data.artifact_id, selected, custom)

    def on_discussion_response(self, envelope: Envelope) -> None:
        data = DiscussionResponseData.model_validate(envelope.payload)
        self.store.add_comment(data.artifact_id, data.response.content, "agent", section_id=data.thread_id)
        self.presenter.show_discussion_response(data)
        artifact = self.store.get(data.artifact_id)
        if artifact is not None:
            self.presenter.show_artifact(artifact)
