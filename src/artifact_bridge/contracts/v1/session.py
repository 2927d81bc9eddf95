from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from .base import WireModel
from .plan import ChangeType


class ChangedFile(WireModel):
    file_path: str
    change_type: ChangeType
    lines_added: int = 0
    lines_removed: int = 0
    change_count: int = 1
    timestamp: str = ""


class SessionState(WireModel):
    """Per-project tracking document owned by the CLI side."""

    session_id: str
    started_at: str
    changed_files: List[ChangedFile] = Field(default_factory=list)
    key_points: List[str] = Field(default_factory=list)
    current_plan_id: Optional[str] = None
    plan_start_time: Optional[int] = None
    walkthrough_created: Optional[bool] = None
    updated_at: Optional[str] = None

    def find_file(self, file_path: str) -> Optional[ChangedFile]:
        for f in self.changed_files:
            if f.file_path == file_path:
                return f
        return None
