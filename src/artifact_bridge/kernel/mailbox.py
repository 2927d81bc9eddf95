"""Per-project mailbox: inbox / outbox / processed plus a state slot.

Layout: {root}/{project_id}/{inbox,outbox,processed,state}

- inbox: CLI -> editor envelopes
- outbox: editor -> CLI envelopes
- processed: consumed inbox envelopes (moved, never copied)
- state: single-slot documents such as current.json

One consumer per directory is assumed. The atomic rename in `consume` is the
only guard against double delivery: whoever renames first wins, the loser
sees the file gone and skips it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Set

from ..contracts.v1 import ENVELOPE_SUFFIX, Envelope, id_from_filename
from ..util.fs import atomic_write_text, file_age_seconds, list_files, move_file, remove_file
from .codec import dumps


MailboxDir = Literal["inbox", "outbox", "processed", "state"]

INVALID_SUFFIX = ".invalid"

logger = logging.getLogger("artifact_bridge.mailbox")


@dataclass
class Mailbox:
    path: Path

    @property
    def inbox_path(self) -> Path:
        return self.path / "inbox"

    @property
    def outbox_path(self) -> Path:
        return self.path / "outbox"

    @property
    def processed_path(self) -> Path:
        return self.path / "processed"

    @property
    def state_path(self) -> Path:
        return self.path / "state"

    def dir_path(self, name: MailboxDir) -> Path:
        return self.path / name

    def ensure(self) -> "Mailbox":
        for d in (self.inbox_path, self.outbox_path, self.processed_path, self.state_path):
            d.mkdir(parents=True, exist_ok=True)
        return self

    def place(self, name: MailboxDir, envelope: Envelope) -> Path:
        """Write `envelope` into directory `name` (created if missing)."""
        target = self.dir_path(name) / envelope.filename
        atomic_write_text(target, dumps(envelope))
        return target

    def list(self, name: MailboxDir) -> List[Path]:
        return list_files(self.dir_path(name), suffix=ENVELOPE_SUFFIX)

    def consume(self, path: Path) -> Optional[Path]:
        """Move an inbox file into processed/. None if it was already taken."""
        dst = self.processed_path / path.name
        if not move_file(path, dst):
            return None
        return dst

    def quarantine(self, path: Path) -> Optional[Path]:
        """Park an undecodable file in processed/ under a name no scan lists."""
        dst = self.processed_path / (path.name + INVALID_SUFFIX)
        if not move_file(path, dst):
            return None
        logger.warning("quarantined malformed envelope %s", path.name)
        return dst

    def remove(self, path: Path) -> bool:
        return remove_file(path)

    def processed_ids(self) -> Set[str]:
        """Ids of every envelope already moved to processed/ (from filenames)."""
        ids: Set[str] = set()
        for p in self.list("processed"):
            mid = id_from_filename(p.name)
            if mid:
                ids.add(mid)
        return ids

    def cleanup_processed(self, max_age_seconds: float = 24 * 60 * 60) -> int:
        cleaned = 0
        try:
            entries = list(self.processed_path.iterdir())
        except FileNotFoundError:
            return 0
        for p in entries:
            age = file_age_seconds(p)
            if age is None or age <= max_age_seconds:
                continue
            if remove_file(p):
                cleaned += 1
        return cleaned


def open_mailbox(home: Path, project_id: str) -> Mailbox:
    return Mailbox(path=home / project_id)
