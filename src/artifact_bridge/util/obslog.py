from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TextIO


_CONFIGURED: Dict[str, bool] = {}

# Correlation keys lifted from `logger.*(..., extra={...})` into the JSON line.
_CORRELATION_KEYS = ("project_id", "message_id", "plan_id", "tool", "op")


def _utc_ts_iso(ts: float) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except (OverflowError, OSError, ValueError):
        return ""


class JsonlFormatter(logging.Formatter):
    """One JSON object per log line, small and stable."""

    def __init__(self, *, component: str):
        super().__init__()
        self._component = str(component or "").strip() or "artifact-bridge"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_ts_iso(getattr(record, "created", 0.0) or 0.0),
            "level": record.levelname,
            "logger": record.name,
            "component": self._component,
            "msg": record.getMessage(),
        }

        for k in _CORRELATION_KEYS:
            v = getattr(record, k, None)
            if v is None:
                continue
            sv = str(v).strip()
            if sv:
                payload[k] = sv

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        try:
            return json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError):
            # Never crash logging over an odd message argument.
            return '{"component":"%s","level":"%s","msg":"(log serialization failed)"}' % (
                self._component,
                payload.get("level", "INFO"),
            )


def _parse_level(level: str, default: int = logging.INFO) -> int:
    s = str(level or "").strip().upper()
    if not s:
        return default
    value = getattr(logging, s, default)
    return value if isinstance(value, int) else default


def setup_root_json_logging(
    *,
    component: str,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    log_path: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Configure root logging once per process.

    - One handler with the JSONL formatter: a FileHandler when `log_path` is
      given (the hook process, whose stdout belongs to its host), otherwise a
      StreamHandler on `stream` or stderr.
    - `force=True` drops previously installed handlers first.
    """
    key = f"root:{component}"
    if _CONFIGURED.get(key) and not force:
        return
    _CONFIGURED[key] = True

    lvl = _parse_level(level)
    root = logging.getLogger()
    root.setLevel(lvl)

    if force:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()

    for h in root.handlers:
        if isinstance(h.formatter, JsonlFormatter):
            h.setLevel(lvl)
            return

    handler: logging.Handler
    if log_path is not None:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_path, encoding="utf-8")
        except OSError:
            handler = logging.StreamHandler(stream or sys.stderr)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(lvl)
    handler.setFormatter(JsonlFormatter(component=component))
    root.addHandler(handler)
