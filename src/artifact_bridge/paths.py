from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def artifacts_home() -> Path:
    env = os.environ.get("CLAUDE_ARTIFACTS_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".claude-artifacts").resolve()


def ensure_home() -> Path:
    home = artifacts_home()
    home.mkdir(parents=True, exist_ok=True)
    return home


def plans_dir() -> Path:
    """Directory the CLI host drops plan markdown files into."""
    env = os.environ.get("CLAUDE_PLANS_DIR", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".claude" / "plans").resolve()


def hooks_dir(home: Optional[Path] = None) -> Path:
    return (home or artifacts_home()) / "hooks"


def projects_file(home: Optional[Path] = None) -> Path:
    return (home or artifacts_home()) / "projects.json"


def bridge_log_path(home: Optional[Path] = None) -> Path:
    return (home or artifacts_home()) / "bridge.log"


def settings_file(home: Optional[Path] = None) -> Path:
    return (home or artifacts_home()) / "settings.yaml"
