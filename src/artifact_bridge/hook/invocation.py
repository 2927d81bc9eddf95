"""How the CLI host describes a tool call to the hook process.

Two input modes:
- pre-invocation: a JSON document on stdin with hook_event_name, tool_name,
  cwd and tool_input (the host waits for the exit code)
- post-invocation: environment variables CLAUDE_TOOL_NAME, CLAUDE_TOOL_INPUT,
  CLAUDE_TOOL_OUTPUT and CLAUDE_WORKING_DIR
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


logger = logging.getLogger("artifact_bridge.hook.invocation")


class HookEvent(str, Enum):
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"


class ToolName(str, Enum):
    TODO_WRITE = "TodoWrite"
    WRITE = "Write"
    EDIT = "Edit"
    BASH = "Bash"
    ENTER_PLAN_MODE = "EnterPlanMode"
    EXIT_PLAN_MODE = "ExitPlanMode"


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            obj = json.loads(value)
        except ValueError:
            logger.warning("tool input is not JSON")
            return {}
        return obj if isinstance(obj, dict) else {}
    return {}


@dataclass
class ToolInvocation:
    event: HookEvent
    tool_name: str
    cwd: str
    tool_input: Dict[str, Any] = field(default_factory=dict)
    tool_output: Any = None

    @property
    def route_key(self) -> tuple:
        return (self.event.value, self.tool_name)

    @classmethod
    def from_stdin(cls, text: str) -> Optional["ToolInvocation"]:
        """Parse a stdin document. None when it is not a hook event we know."""
        try:
            doc = json.loads(text)
        except ValueError:
            return None
        if not isinstance(doc, dict):
            return None
        try:
            event = HookEvent(str(doc.get("hook_event_name") or ""))
        except ValueError:
            return None
        tool = str(doc.get("tool_name") or "").strip()
        if not tool:
            return None
        return cls(
            event=event,
            tool_name=tool,
            cwd=str(doc.get("cwd") or "").strip() or os.getcwd(),
            tool_input=_as_dict(doc.get("tool_input")),
            tool_output=doc.get("tool_response"),
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> Optional["ToolInvocation"]:
        tool = str(environ.get("CLAUDE_TOOL_NAME") or "").strip()
        if not tool:
            return None
        output_raw = environ.get("CLAUDE_TOOL_OUTPUT") or ""
        try:
            output: Any = json.loads(output_raw) if output_raw else None
        except ValueError:
            output = output_raw
        return cls(
            event=HookEvent.POST_TOOL_USE,
            tool_name=tool,
            cwd=str(environ.get("CLAUDE_WORKING_DIR") or "").strip() or os.getcwd(),
            tool_input=_as_dict(environ.get("CLAUDE_TOOL_INPUT") or "{}"),
            tool_output=output,
        )
