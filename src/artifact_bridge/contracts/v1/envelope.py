from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


ENVELOPE_SUFFIX = ".json"


class MessageType(str, Enum):
    ARTIFACT = "artifact"
    FEEDBACK = "feedback"
    STATUS = "status"
    ERROR = "error"
    STATE = "state"
    OPTIONS = "options"
    OPTION_RESPONSE = "option-response"
    DISCUSSION = "discussion"
    DISCUSSION_RESPONSE = "discussion-response"


class Envelope(BaseModel):
    """Uniform wrapper for every message written to a mailbox directory."""

    id: str
    timestamp: int
    type: MessageType
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @property
    def filename(self) -> str:
        # Timestamp first: lexical order of names is chronological order.
        return f"{self.timestamp}-{self.id}{ENVELOPE_SUFFIX}"

    @property
    def action(self) -> str:
        return str(self.payload.get("action") or "")

    @property
    def artifact_id(self) -> str:
        aid = self.payload.get("artifactId")
        if aid:
            return str(aid)
        artifact = self.payload.get("artifact")
        if isinstance(artifact, dict):
            return str(artifact.get("id") or "")
        return ""

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def id_from_filename(name: str) -> str:
    """Recover the envelope id from `{timestamp}-{id}.json` without reading the file."""
    stem = name[: -len(ENVELOPE_SUFFIX)] if name.endswith(ENVELOPE_SUFFIX) else name
    ts, sep, rest = stem.partition("-")
    if not sep or not ts.isdigit():
        return ""
    return rest
