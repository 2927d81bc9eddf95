"""Markdown plan -> PlanDocument.

Rules:
- the first "# " line is the title; later ones are ordinary text
- every "## " line opens a section and closes the previous one
- section text accumulates into its description; inline code spans that look
  like file names (`path/to/file.ext`) become file references, once per
  section, each with an implicit "modify" change
- text before the first section that does not start with "#" is the summary
- input is never rejected: missing structure falls back to defaults
"""
from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path
from typing import List, Optional

from ..contracts.v1 import DEFAULT_PLAN_TITLE, FileChange, PlanDocument, PlanSection


_FILE_REF_RE = re.compile(r"`([^`]+\.[a-z]+)`")


def section_id(order: int) -> str:
    return f"section-{order + 1}"


def plan_id_for_title(title: str) -> str:
    """Stable plan id: re-sending a plan with the same title updates one artifact."""
    h = hashlib.md5((title or "untitled").encode("utf-8")).hexdigest()[:8]
    return f"impl-plan-{h}"


def _file_refs(line: str) -> List[str]:
    return _FILE_REF_RE.findall(line)


def parse_plan_markdown(content: str) -> PlanDocument:
    title: Optional[str] = None
    summary_lines: List[str] = []
    sections: List[PlanSection] = []
    current: Optional[PlanSection] = None
    body: List[str] = []

    def _close() -> None:
        if current is None:
            return
        current.description = "\n".join(body).strip()
        sections.append(current)

    for line in (content or "").splitlines():
        if title is None and line.startswith("# "):
            title = line[2:].strip()
            continue

        if line.startswith("## "):
            _close()
            current = PlanSection(id=section_id(len(sections)), title=line[3:].strip(), order=len(sections))
            body = []
            continue

        if current is not None:
            body.append(line)
            for ref in _file_refs(line):
                if ref in current.files:
                    continue
                current.files.append(ref)
                current.changes.append(FileChange(file_path=ref, change_type="modify", description=""))
        elif line.strip() and not line.startswith("#"):
            summary_lines.append(line)

    _close()

    return PlanDocument(
        title=title or DEFAULT_PLAN_TITLE,
        summary="\n".join(summary_lines).strip(),
        sections=sections,
    )


def find_latest_plan_file(plans_dir: Path, after_ms: int = 0) -> Optional[Path]:
    """Newest *.md in `plans_dir` modified after `after_ms` (epoch millis)."""
    try:
        names = os.listdir(plans_dir)
    except (FileNotFoundError, NotADirectoryError):
        return None
    best: Optional[Path] = None
    best_mtime = -1.0
    for name in names:
        if not name.endswith(".md"):
            continue
        p = plans_dir / name
        try:
            mtime_ms = p.stat().st_mtime * 1000.0
        except OSError:
            continue
        if mtime_ms <= after_ms:
            continue
        if mtime_ms > best_mtime:
            best, best_mtime = p, mtime_ms
    return best
