"""Workspace path -> ProjectId.

Both processes compute this on their own and must agree byte for byte, so it
stays a pure function of the raw path string: no resolving, no normalizing.
"""
from __future__ import annotations

import hashlib
import os
import re


DEFAULT_PROJECT_ID = "default"

_SLUG_RE = re.compile(r"[^a-z0-9]")


def workspace_basename(path: str) -> str:
    # Trailing separators are ignored the way path.basename does it; a
    # backslash only separates on Windows.
    seps = os.sep + (os.altsep or "")
    return os.path.basename(path.rstrip(seps))


def project_slug(workspace_path: str) -> str:
    return _SLUG_RE.sub("-", workspace_basename(workspace_path).lower())


def path_hash8(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()[:8]


def project_id_for(workspace_path: str) -> str:
    """`{slug(basename)}-{md5(path)[:8]}`; an empty path maps to "default"."""
    if not workspace_path:
        return DEFAULT_PROJECT_ID
    return f"{project_slug(workspace_path)}-{path_hash8(workspace_path)}"
