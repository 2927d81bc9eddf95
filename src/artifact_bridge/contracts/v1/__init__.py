from __future__ import annotations

from .artifact import (
    TASK_LIST_ID,
    WALKTHROUGH_ID,
    ImplementationPlanArtifact,
    TaskListArtifact,
    TaskListItem,
    WalkthroughArtifact,
    WalkthroughFileChange,
    WalkthroughSection,
)
from .base import WireModel
from .envelope import ENVELOPE_SUFFIX, Envelope, MessageType, id_from_filename
from .payloads import (
    ArtifactCreateData,
    ArtifactDeleteData,
    ArtifactRequestReviewData,
    ArtifactStatus,
    ArtifactUpdateData,
    ClaudeState,
    ClaudeStateSnapshot,
    DiscussionReply,
    DiscussionRequestData,
    DiscussionResponseData,
    ErrorData,
    FeedbackData,
    OptionSelectionData,
    PlanOption,
    PlanOptionsData,
    Progress,
    StatusData,
    normalize_payload,
)
from .plan import DEFAULT_PLAN_TITLE, ApprovalOutcome, FileChange, PlanDocument, PlanSection
from .session import ChangedFile, SessionState

__all__ = [
    "ApprovalOutcome",
    "ArtifactCreateData",
    "ArtifactDeleteData",
    "ArtifactRequestReviewData",
    "ArtifactStatus",
    "ArtifactUpdateData",
    "ChangedFile",
    "ClaudeState",
    "ClaudeStateSnapshot",
    "DEFAULT_PLAN_TITLE",
    "DiscussionReply",
    "DiscussionRequestData",
    "DiscussionResponseData",
    "ENVELOPE_SUFFIX",
    "Envelope",
    "ErrorData",
    "FeedbackData",
    "FileChange",
    "ImplementationPlanArtifact",
    "MessageType",
    "OptionSelectionData",
    "PlanDocument",
    "PlanOption",
    "PlanOptionsData",
    "PlanSection",
    "Progress",
    "SessionState",
    "StatusData",
    "TASK_LIST_ID",
    "TaskListArtifact",
    "TaskListItem",
    "WALKTHROUGH_ID",
    "WalkthroughArtifact",
    "WalkthroughFileChange",
    "WalkthroughSection",
    "WireModel",
    "id_from_filename",
    "normalize_payload",
]
