"""What the message handler needs from a UI. Rendering itself lives elsewhere."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from ..contracts.v1 import ClaudeStateSnapshot, DiscussionResponseData, PlanOptionsData


# (selected option id, custom response); both None means "no answer yet".
OptionChoice = Tuple[Optional[str], Optional[str]]


class Presenter(ABC):
    @abstractmethod
    def show_artifact(self, artifact: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def notify(self, message: str) -> None:
        pass

    @abstractmethod
    def show_error(self, message: str) -> None:
        pass

    @abstractmethod
    def update_state(self, snapshot: ClaudeStateSnapshot) -> None:
        pass

    def present_options(self, options: PlanOptionsData) -> Optional[OptionChoice]:
        """Ask for a choice. None when the UI answers later (or never)."""
        return None

    def confirm_review(self, artifact: Dict[str, Any]) -> bool:
        """True when the reviewer approves on the spot."""
        return False

    def show_discussion_response(self, response: DiscussionResponseData) -> None:
        pass


class LoggingPresenter(Presenter):
    """Headless presenter: everything goes to the log."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("artifact_bridge.presenter")

    def show_artifact(self, artifact: Dict[str, Any]) -> None:
        self._logger.info(
            "artifact %s [%s] %s", artifact.get("id"), artifact.get("status", "-"), artifact.get("title", "")
        )

    def notify(self, message: str) -> None:
        self._logger.info(message)

    def show_error(self, message: str) -> None:
        self._logger.error(message)

    def update_state(self, snapshot: ClaudeStateSnapshot) -> None:
        self._logger.info("claude: %s", snapshot.description or snapshot.state)

    def present_options(self, options: PlanOptionsData) -> Optional[OptionChoice]:
        for opt in options.options:
            mark = "*" if opt.recommended else " "
            self._logger.info("option %s%s: %s", mark, opt.id, opt.title)
        return None

    def show_discussion_response(self, response: DiscussionResponseData) -> None:
        self._logger.info("discussion %s/%s: %s", response.artifact_id, response.thread_id, response.response.content)
