"""IPC settings for both processes.

Stored in {root}/settings.yaml; every key is optional:

    retry_attempts: 3
    retry_delay_seconds: 1.0
    active_poll_seconds: 0.1
    idle_poll_seconds: 0.5
    idle_threshold_seconds: 5.0
    approval_timeout_seconds: 300
    approval_poll_seconds: 1.0
    processed_max_age_seconds: 86400
    malformed_max_age_seconds: 60
    dedup_capacity: 4096
    watch: true
    log_level: INFO

Environment overrides: CLAUDE_ARTIFACTS_APPROVAL_TIMEOUT,
CLAUDE_ARTIFACTS_WATCH, CLAUDE_ARTIFACTS_LOG_LEVEL.
"""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml  # type: ignore

from ..paths import artifacts_home, settings_file
from ..util.conv import coerce_bool, coerce_float, coerce_int
from ..util.fs import atomic_write_text


@dataclass
class IpcSettings:
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    active_poll_seconds: float = 0.1
    idle_poll_seconds: float = 0.5
    idle_threshold_seconds: float = 5.0
    approval_timeout_seconds: float = 300.0
    approval_poll_seconds: float = 1.0
    processed_max_age_seconds: float = 24 * 60 * 60.0
    malformed_max_age_seconds: float = 60.0
    dedup_capacity: int = 4096
    watch: bool = True
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "IpcSettings":
        base = cls()
        return cls(
            retry_attempts=coerce_int(d.get("retry_attempts"), default=base.retry_attempts, minimum=1),
            retry_delay_seconds=coerce_float(d.get("retry_delay_seconds"), default=base.retry_delay_seconds),
            active_poll_seconds=coerce_float(
                d.get("active_poll_seconds"), default=base.active_poll_seconds, minimum=0.01
            ),
            idle_poll_seconds=coerce_float(d.get("idle_poll_seconds"), default=base.idle_poll_seconds, minimum=0.01),
            idle_threshold_seconds=coerce_float(d.get("idle_threshold_seconds"), default=base.idle_threshold_seconds),
            approval_timeout_seconds=coerce_float(
                d.get("approval_timeout_seconds"), default=base.approval_timeout_seconds
            ),
            approval_poll_seconds=coerce_float(
                d.get("approval_poll_seconds"), default=base.approval_poll_seconds, minimum=0.01
            ),
            processed_max_age_seconds=coerce_float(
                d.get("processed_max_age_seconds"), default=base.processed_max_age_seconds
            ),
            malformed_max_age_seconds=coerce_float(
                d.get("malformed_max_age_seconds"), default=base.malformed_max_age_seconds
            ),
            dedup_capacity=coerce_int(d.get("dedup_capacity"), default=base.dedup_capacity, minimum=16),
            watch=coerce_bool(d.get("watch"), default=base.watch),
            log_level=str(d.get("log_level") or base.log_level).strip().upper(),
        )


def _apply_env(doc: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    timeout = environ.get("CLAUDE_ARTIFACTS_APPROVAL_TIMEOUT", "").strip()
    if timeout:
        doc["approval_timeout_seconds"] = timeout
    watch = environ.get("CLAUDE_ARTIFACTS_WATCH", "").strip()
    if watch:
        doc["watch"] = watch
    level = environ.get("CLAUDE_ARTIFACTS_LOG_LEVEL", "").strip()
    if level:
        doc["log_level"] = level
    return doc


def load_settings(home: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None) -> IpcSettings:
    """Load settings.yaml with environment overrides; bad input yields defaults."""
    path = settings_file(home or artifacts_home())
    doc: Dict[str, Any] = {}
    try:
        if path.exists():
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                doc = loaded
    except (OSError, yaml.YAMLError):
        doc = {}
    return IpcSettings.from_dict(_apply_env(doc, os.environ if environ is None else environ))


def save_settings(settings: IpcSettings, home: Optional[Path] = None) -> Path:
    path = settings_file(home or artifacts_home())
    atomic_write_text(path, yaml.safe_dump(settings.to_dict(), allow_unicode=True, sort_keys=False))
    return path
