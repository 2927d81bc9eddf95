"""Application artifacts the CLI side publishes through `artifact` envelopes.

Only their envelope-relevant shape lives here; rendering and storage belong
to the editor side.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import Field

from .base import WireModel
from .payloads import ArtifactStatus
from .plan import ChangeType, PlanSection


TaskStatus = Literal["pending", "in-progress", "completed"]
TaskCategory = Literal["research", "implementation", "verification", "other"]

TASK_LIST_ID = "claude-code-tasks"
WALKTHROUGH_ID = "claude-code-walkthrough"


class TaskListItem(WireModel):
    id: str
    text: str
    status: TaskStatus = "pending"
    category: TaskCategory = "other"
    order: int = 0


class TaskListArtifact(WireModel):
    id: str = TASK_LIST_ID
    type: Literal["task-list"] = "task-list"
    title: str = "Claude Code Tasks"
    status: ArtifactStatus = "draft"
    items: List[TaskListItem] = Field(default_factory=list)
    comments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: str
    updated_at: str


class WalkthroughFileChange(WireModel):
    file_path: str
    change_type: ChangeType
    lines_added: int = 0
    lines_removed: int = 0
    summary: str = ""


class WalkthroughSection(WireModel):
    id: str
    title: str
    content: str = ""
    order: int = 0


class WalkthroughArtifact(WireModel):
    id: str = WALKTHROUGH_ID
    type: Literal["walkthrough"] = "walkthrough"
    title: str = "Session Changes"
    status: ArtifactStatus = "draft"
    summary: str = ""
    sections: List[WalkthroughSection] = Field(default_factory=list)
    changed_files: List[WalkthroughFileChange] = Field(default_factory=list)
    key_points: List[str] = Field(default_factory=list)
    comments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ImplementationPlanArtifact(WireModel):
    id: str
    type: Literal["implementation-plan"] = "implementation-plan"
    title: str
    status: ArtifactStatus = "draft"
    summary: str = ""
    sections: List[PlanSection] = Field(default_factory=list)
    estimated_changes: int = 0
    comments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: str
    updated_at: str
