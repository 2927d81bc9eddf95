"""Single-slot status channel: state/current.json.

Last value wins. Writers skip byte-identical publishes; observers emit only
when the decoded value differs from the last one they saw, so intermediate
states can be missed but a repeated state never fires twice.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from ..contracts.v1 import ClaudeStateSnapshot
from ..util.fs import atomic_write_text
from ..util.time import now_ms
from ..util.watch import DirectoryWatcher


STATE_FILENAME = "current.json"
DEFAULT_FALLBACK_POLL_SECONDS = 1.0

logger = logging.getLogger("artifact_bridge.state")


def _render(snapshot: ClaudeStateSnapshot) -> str:
    return json.dumps(snapshot.to_wire(), ensure_ascii=False, indent=2, sort_keys=True) + "\n"


class StateBroadcaster:
    def __init__(
        self,
        state_dir: Path,
        *,
        on_change: Optional[Callable[[ClaudeStateSnapshot], None]] = None,
        watch: bool = True,
        fallback_poll_seconds: float = DEFAULT_FALLBACK_POLL_SECONDS,
    ) -> None:
        self.state_dir = state_dir
        self._on_change = on_change
        self._watch = watch
        self.fallback_poll_seconds = fallback_poll_seconds
        self._lock = threading.Lock()
        self._last_published: Optional[str] = None
        self._last_seen: Optional[Dict[str, Any]] = None
        self._current: Optional[ClaudeStateSnapshot] = None
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._watcher: Optional[DirectoryWatcher] = None

    @property
    def state_file(self) -> Path:
        return self.state_dir / STATE_FILENAME

    @property
    def current(self) -> Optional[ClaudeStateSnapshot]:
        return self._current

    # ----------------------------------------------------------------- write

    def publish(self, snapshot: Union[ClaudeStateSnapshot, Dict[str, Any]]) -> bool:
        """Overwrite current.json. False when the content would not change."""
        snap = snapshot if isinstance(snapshot, ClaudeStateSnapshot) else ClaudeStateSnapshot.model_validate(snapshot)
        text = _render(snap)
        with self._lock:
            if text == self._last_published:
                return False
            try:
                on_disk = self.state_file.read_text(encoding="utf-8")
            except OSError:
                on_disk = None
            if text == on_disk:
                self._last_published = text
                return False
            atomic_write_text(self.state_file, text)
            self._last_published = text
        return True

    def publish_state(self, state: str, description: str = "", *, started_at: Optional[int] = None) -> bool:
        """Publish `state`, keeping startedAt while the state itself is unchanged.

        Re-publishing the state and description already on disk is a no-op.
        """
        prev = self.read()
        if prev is not None and prev.state == state and prev.description == description and started_at is None:
            return False
        ts = now_ms()
        if started_at is None:
            started_at = prev.started_at if prev is not None and prev.state == state else ts
        return self.publish(
            ClaudeStateSnapshot(state=state, description=description, started_at=started_at, updated_at=ts)
        )

    # ------------------------------------------------------------------ read

    def read(self) -> Optional[ClaudeStateSnapshot]:
        try:
            raw = self.state_file.read_text(encoding="utf-8")
        except OSError:
            return None
        try:
            return ClaudeStateSnapshot.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            return None

    def check(self) -> Optional[ClaudeStateSnapshot]:
        """Read current.json and emit if it changed since the last check."""
        snap = self.read()
        if snap is None:
            return None
        value = snap.to_wire()
        with self._lock:
            if value == self._last_seen:
                return None
            self._last_seen = value
            self._current = snap
        if self._on_change is not None:
            try:
                self._on_change(snap)
            except Exception:
                logger.exception("state listener failed")
        return snap

    # --------------------------------------------------------------- observe

    def observe(self) -> None:
        """Start watching current.json; the fallback timer covers missed events."""
        if self._thread is not None:
            return
        self.state_dir.mkdir(parents=True, exist_ok=True)
        if self._watch:
            self._watcher = DirectoryWatcher(self.state_dir, self._on_file_event, match=lambda n: n == STATE_FILENAME)
            self._watcher.start()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="artifact-bridge-state", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        t, self._thread = self._thread, None
        if t is not None:
            t.join(timeout=timeout)

    def _on_file_event(self, _path: Path) -> None:
        self._wake.set()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.check()
            except Exception:
                logger.exception("state check failed")
            self._wake.wait(self.fallback_poll_seconds)
            self._wake.clear()
