from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer


logger = logging.getLogger("artifact_bridge.watch")


class _CallbackHandler(FileSystemEventHandler):
    """Forward create/modify/move-in events for matching files to a callback."""

    def __init__(self, callback: Callable[[Path], None], match: Callable[[str], bool]):
        super().__init__()
        self._callback = callback
        self._match = match

    def _fire(self, raw: object) -> None:
        path = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else str(raw or "")
        if path and self._match(Path(path).name):
            self._callback(Path(path))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._fire(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._fire(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writes land as temp-file renames.
        if not event.is_directory:
            self._fire(getattr(event, "dest_path", ""))


class DirectoryWatcher:
    """Non-recursive watch on one directory. A notification source, not a source of truth."""

    def __init__(self, directory: Path, callback: Callable[[Path], None], *, match: Callable[[str], bool]):
        self.directory = directory
        self._handler = _CallbackHandler(callback, match)
        self._observer: Optional[Observer] = None

    def start(self) -> bool:
        """Start watching. False when the platform watcher is unavailable."""
        if self._observer is not None:
            return True
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            observer = Observer()
            observer.daemon = True
            observer.schedule(self._handler, str(self.directory), recursive=False)
            observer.start()
        except (OSError, RuntimeError) as e:
            logger.warning("watch unavailable for %s, polling only: %s", self.directory, e)
            return False
        self._observer = observer
        return True

    def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=2.0)
