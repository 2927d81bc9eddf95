from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field

from .base import WireModel


ChangeType = Literal["create", "modify", "delete"]

DEFAULT_PLAN_TITLE = "Implementation Plan"


class FileChange(WireModel):
    file_path: str
    change_type: ChangeType = "modify"
    description: str = ""


class PlanSection(WireModel):
    id: str
    title: str
    description: str = ""
    files: List[str] = Field(default_factory=list)
    changes: List[FileChange] = Field(default_factory=list)
    order: int = 0


class PlanDocument(WireModel):
    title: str = DEFAULT_PLAN_TITLE
    summary: str = ""
    sections: List[PlanSection] = Field(default_factory=list)

    @property
    def estimated_changes(self) -> int:
        return sum(len(s.changes) for s in self.sections)


class ApprovalOutcome(WireModel):
    """Result of one approval handshake. Never persisted."""

    approved: bool
    reason: Optional[Literal["rejected", "timeout", "custom", "cancelled"]] = None
    custom_response: Optional[str] = None
    selected_option_id: Optional[str] = None
