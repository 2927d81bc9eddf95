"""Payload contracts carried inside an Envelope.

Directions:
- CLI -> editor (inbox): artifact, status, error, state, options,
  discussion-response
- editor -> CLI (outbox): feedback, option-response, discussion, status, error

Artifact and feedback payloads are discriminated further by `action`.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, field_validator

from .base import WireModel
from .envelope import MessageType


ArtifactType = Literal["task-list", "implementation-plan", "walkthrough"]
ArtifactStatus = Literal["draft", "pending-review", "approved", "completed"]

ClaudeState = Literal[
    "idle",
    "thinking",
    "planning",
    "executing",
    "waiting-for-input",
    "waiting-for-approval",
    "error",
]


class ArtifactCreateData(WireModel):
    action: Literal["create"] = "create"
    artifact: Dict[str, Any]


class ArtifactUpdateData(WireModel):
    action: Literal["update"] = "update"
    artifact: Dict[str, Any]

    @field_validator("artifact")
    @classmethod
    def _require_id(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not str(v.get("id") or "").strip():
            raise ValueError("artifact update requires an id")
        return v


class ArtifactDeleteData(WireModel):
    action: Literal["delete"] = "delete"
    artifact_id: str


class ArtifactRequestReviewData(WireModel):
    action: Literal["request-review"] = "request-review"
    artifact_id: str


class FeedbackData(WireModel):
    artifact_id: str
    action: Literal["proceed", "reject", "review-submitted"]
    reason: Optional[str] = None
    comments: Optional[List[Dict[str, Any]]] = None
    feedback: Optional[str] = None


class StatusData(WireModel):
    status: Literal["connected", "disconnected", "ready", "busy"]
    extension_version: Optional[str] = None


class ErrorData(WireModel):
    code: str
    message: str
    details: Optional[Any] = None


class Progress(WireModel):
    current: int
    total: int
    label: Optional[str] = None


class ClaudeStateSnapshot(WireModel):
    """Single-slot status document; the latest write wins."""

    state: ClaudeState
    description: str = ""
    progress: Optional[Progress] = None
    started_at: int
    updated_at: Optional[int] = None


class PlanOption(WireModel):
    id: str
    title: str
    description: str = ""
    pros: Optional[List[str]] = None
    cons: Optional[List[str]] = None
    estimated_effort: Optional[Literal["low", "medium", "high"]] = None
    recommended: Optional[bool] = None


class PlanOptionsData(WireModel):
    action: Literal["present-options"] = "present-options"
    artifact_id: str
    prompt: str
    options: List[PlanOption] = Field(default_factory=list)
    allow_custom: Optional[bool] = None
    timeout: Optional[int] = None


class OptionSelectionData(WireModel):
    artifact_id: str
    action: Literal["option-selected"] = "option-selected"
    selected_option_id: Optional[str] = None
    custom_response: Optional[str] = None
    timestamp: int


class DiscussionRequestData(WireModel):
    action: Literal["request-discussion"] = "request-discussion"
    artifact_id: str
    thread_id: str
    comments: List[Dict[str, Any]] = Field(default_factory=list)
    request_type: Literal["answer-question", "clarify", "revise-plan"]


class DiscussionReply(WireModel):
    content: str
    author: Literal["agent"] = "agent"
    suggested_revisions: Optional[List[Dict[str, Any]]] = None
    resolved: Optional[bool] = None


class DiscussionResponseData(WireModel):
    action: Literal["discussion-response"] = "discussion-response"
    artifact_id: str
    thread_id: str
    response: DiscussionReply


_PAYLOAD_MODELS: Dict[Tuple[MessageType, str], Type[WireModel]] = {
    (MessageType.ARTIFACT, "create"): ArtifactCreateData,
    (MessageType.ARTIFACT, "update"): ArtifactUpdateData,
    (MessageType.ARTIFACT, "delete"): ArtifactDeleteData,
    (MessageType.ARTIFACT, "request-review"): ArtifactRequestReviewData,
    (MessageType.FEEDBACK, ""): FeedbackData,
    (MessageType.STATUS, ""): StatusData,
    (MessageType.ERROR, ""): ErrorData,
    (MessageType.STATE, ""): ClaudeStateSnapshot,
    (MessageType.OPTIONS, ""): PlanOptionsData,
    (MessageType.OPTION_RESPONSE, ""): OptionSelectionData,
    (MessageType.DISCUSSION, ""): DiscussionRequestData,
    (MessageType.DISCUSSION_RESPONSE, ""): DiscussionResponseData,
}


def payload_model(kind: MessageType, action: str = "") -> Optional[Type[WireModel]]:
    return _PAYLOAD_MODELS.get((kind, action)) or _PAYLOAD_MODELS.get((kind, ""))


def normalize_payload(kind: MessageType, payload: Any) -> Dict[str, Any]:
    """Validate `payload` against the contract for `kind` and return its wire form.

    Raises pydantic.ValidationError when the payload does not fit.
    """
    if isinstance(payload, BaseModel):
        data: Dict[str, Any] = (
            payload.to_wire() if isinstance(payload, WireModel) else payload.model_dump(mode="json")
        )
    elif isinstance(payload, dict):
        data = dict(payload)
    else:
        data = {} if payload is None else {"value": payload}
    model = payload_model(kind, str(data.get("action") or ""))
    if model is None:
        return data
    return model.model_validate(data).to_wire()
