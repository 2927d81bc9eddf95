"""Inbound delivery: discover inbox envelopes, deliver each id at most once.

Two triggers feed one scanner thread:
- a directory watch on inbox/ (wakes the scanner immediately)
- a timer whose interval adapts to activity: ACTIVE while anything happened
  within IDLE_THRESHOLD, IDLE otherwise

Per file: skip ids already seen, decode, move to processed/, then hand the
envelope to the callback. The seen-id set is bounded and seeded from
processed/ at start, so a restart never replays what was already consumed.
Undecodable files stay in place for the next tick (they may be mid-write)
until they pass the malformed age limit, then they are quarantined.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..contracts.v1 import ENVELOPE_SUFFIX, Envelope, id_from_filename
from ..kernel.codec import ParseError, decode
from ..kernel.mailbox import Mailbox
from ..util.fs import file_age_seconds
from ..util.watch import DirectoryWatcher


ACTIVE_INTERVAL_SECONDS = 0.1
IDLE_INTERVAL_SECONDS = 0.5
IDLE_THRESHOLD_SECONDS = 5.0
DEFAULT_DEDUP_CAPACITY = 4096
DEFAULT_MALFORMED_MAX_AGE_SECONDS = 60.0

logger = logging.getLogger("artifact_bridge.inbound")


class SeenIds:
    """Insertion-ordered id set that forgets the oldest ids past `capacity`."""

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY, ids: Iterable[str] = ()):
        self.capacity = max(1, int(capacity))
        self._ids: "OrderedDict[str, None]" = OrderedDict()
        for i in ids:
            self.add(i)

    def __contains__(self, mid: object) -> bool:
        return mid in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, mid: str) -> None:
        if mid in self._ids:
            self._ids.move_to_end(mid)
            return
        self._ids[mid] = None
        while len(self._ids) > self.capacity:
            self._ids.popitem(last=False)


class InboundDelivery:
    def __init__(
        self,
        mailbox: Mailbox,
        on_message: Callable[[Envelope], None],
        *,
        active_interval: float = ACTIVE_INTERVAL_SECONDS,
        idle_interval: float = IDLE_INTERVAL_SECONDS,
        idle_threshold: float = IDLE_THRESHOLD_SECONDS,
        dedup_capacity: int = DEFAULT_DEDUP_CAPACITY,
        malformed_max_age_seconds: float = DEFAULT_MALFORMED_MAX_AGE_SECONDS,
        watch: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.mailbox = mailbox
        self._on_message = on_message
        self.active_interval = active_interval
        self.idle_interval = idle_interval
        self.idle_threshold = idle_threshold
        self.malformed_max_age_seconds = malformed_max_age_seconds
        self._clock = clock
        self._last_activity: Optional[float] = None
        self._seen = SeenIds(dedup_capacity)
        self._scan_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._watcher: Optional[DirectoryWatcher] = None
        if watch:
            self._watcher = DirectoryWatcher(
                mailbox.inbox_path, self._on_inbox_change, match=lambda n: n.endswith(ENVELOPE_SUFFIX)
            )

    # ------------------------------------------------------------------ timing

    def record_activity(self) -> None:
        self._last_activity = self._clock()

    def current_interval(self) -> float:
        if self._last_activity is None:
            return self.idle_interval
        if self._clock() - self._last_activity < self.idle_threshold:
            return self.active_interval
        return self.idle_interval

    # --------------------------------------------------------------- lifecycle

    def seed_from_processed(self) -> int:
        ids = self.mailbox.processed_ids()
        for mid in sorted(ids):
            self._seen.add(mid)
        return len(ids)

    def start(self) -> None:
        if self._thread is not None:
            return
        self.mailbox.ensure()
        seeded = self.seed_from_processed()
        logger.info("inbound delivery starting (%d processed ids seeded)", seeded)
        if self._watcher is not None:
            self._watcher.start()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="artifact-bridge-inbound", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._watcher is not None:
            self._watcher.stop()
        t, self._thread = self._thread, None
        if t is not None:
            t.join(timeout=timeout)

    def _on_inbox_change(self, _path: Path) -> None:
        self.record_activity()
        self._wake.set()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("inbox poll failed")
            self._wake.wait(self.current_interval())
            self._wake.clear()

    # ------------------------------------------------------------------ scan

    def poll_once(self) -> int:
        """Scan inbox/ once; returns how many envelopes were delivered."""
        delivered = 0
        with self._scan_lock:
            for path in self.mailbox.list("inbox"):
                if self._process_file(path):
                    delivered += 1
        if delivered:
            self.record_activity()
        return delivered

    def _process_file(self, path: Path) -> bool:
        name_id = id_from_filename(path.name)
        if name_id and name_id in self._seen:
            # Seen but still in inbox: an earlier move did not complete.
            self.mailbox.consume(path)
            return False

        try:
            envelope = decode(path.read_bytes())
        except FileNotFoundError:
            return False
        except (OSError, ParseError) as e:
            self._handle_undecodable(path, e)
            return False

        if envelope.id in self._seen:
            self.mailbox.consume(path)
            return False
        self._seen.add(envelope.id)

        if self.mailbox.consume(path) is None:
            # Another reader moved it first; it is theirs.
            return False

        try:
            self._on_message(envelope)
        except Exception:
            logger.exception("message callback failed", extra={"message_id": envelope.id})
        logger.debug("delivered %s", envelope.type.value, extra={"message_id": envelope.id})
        return True

    def _handle_undecodable(self, path: Path, err: Exception) -> None:
        age = file_age_seconds(path)
        if age is not None and age > self.malformed_max_age_seconds:
            self.mailbox.quarantine(path)
            return
        logger.info("skipping undecodable %s for now: %s", path.name, err)
