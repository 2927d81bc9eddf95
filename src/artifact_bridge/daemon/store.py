"""Artifact storage seen from the message handler.

The editor owns real persistence; the handler only needs a keyed store.
"""
from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..util.time import utc_now_iso


class ArtifactStore(ABC):
    @abstractmethod
    def get(self, artifact_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def upsert(self, artifact: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace by id, keeping the caller's id."""
        pass

    @abstractmethod
    def delete(self, artifact_id: str) -> bool:
        pass

    @abstractmethod
    def all(self) -> List[Dict[str, Any]]:
        pass

    def update_status(self, artifact_id: str, status: str) -> Optional[Dict[str, Any]]:
        artifact = self.get(artifact_id)
        if artifact is None:
            return None
        return self.upsert({**artifact, "status": status, "updatedAt": utc_now_iso()})

    def add_comment(
        self,
        artifact_id: str,
        content: str,
        author: str,
        *,
        section_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        artifact = self.get(artifact_id)
        if artifact is None:
            return None
        comment: Dict[str, Any] = {
            "id": f"comment-{uuid.uuid4().hex[:12]}",
            "artifactId": artifact_id,
            "content": content,
            "author": author,
            "resolved": False,
            "createdAt": utc_now_iso(),
        }
        if section_id:
            comment["sectionId"] = section_id
        comments = list(artifact.get("comments") or [])
        comments.append(comment)
        self.upsert({**artifact, "comments": comments, "updatedAt": utc_now_iso()})
        return comment


class MemoryArtifactStore(ArtifactStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, Dict[str, Any]] = {}

    def get(self, artifact_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(artifact_id)
            return dict(item) if item is not None else None

    def upsert(self, artifact: Dict[str, Any]) -> Dict[str, Any]:
        aid = str(artifact.get("id") or "").strip()
        if not aid:
            raise ValueError("artifact id is required")
        with self._lock:
            self._items[aid] = dict(artifact)
            return dict(self._items[aid])

    def delete(self, artifact_id: str) -> bool:
        with self._lock:
            return self._items.pop(artifact_id, None) is not None

    def all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(v) for v in self._items.values()]
