"""Outbound queue: strict FIFO with bounded retry in front of Mailbox.place.

- enqueue() appends and starts the drain thread if none is running
- the head item is retried in place; nothing behind it overtakes it
- after `retry_attempts` failures the head is dropped, its future fails with
  DeliveryError and the error callback fires once
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, Optional

from ..contracts.v1 import Envelope


DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

logger = logging.getLogger("artifact_bridge.outbound")


class DeliveryError(RuntimeError):
    """An envelope could not be placed after every retry."""

    def __init__(self, envelope: Envelope, attempts: int, cause: BaseException):
        super().__init__(f"failed to place {envelope.id} after {attempts} attempt(s): {cause}")
        self.envelope = envelope
        self.attempts = attempts
        self.cause = cause


class QueueClosedError(RuntimeError):
    """The queue was closed before the envelope was placed."""


@dataclass
class QueuedMessage:
    envelope: Envelope
    future: "Future[bool]" = field(default_factory=Future)
    attempts: int = 0


class OutboundQueue:
    def __init__(
        self,
        place: Callable[[Envelope], Path],
        *,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        on_error: Optional[Callable[[DeliveryError], None]] = None,
        name: str = "outbound",
    ) -> None:
        self._place = place
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_delay_seconds = max(0.0, float(retry_delay_seconds))
        self._on_error = on_error
        self._name = name
        self._lock = threading.Lock()
        self._items: Deque[QueuedMessage] = deque()
        self._draining = False
        self._closed = threading.Event()
        self._idle = threading.Condition(self._lock)

    def enqueue(self, envelope: Envelope) -> "Future[bool]":
        item = QueuedMessage(envelope=envelope)
        with self._lock:
            if self._closed.is_set():
                item.future.set_exception(QueueClosedError(f"{self._name} queue is closed"))
                return item.future
            self._items.append(item)
            start = not self._draining
            if start:
                self._draining = True
        if start:
            threading.Thread(target=self._drain, name=f"artifact-bridge-{self._name}", daemon=True).start()
        return item.future

    def pending(self) -> int:
        with self._lock:
            return len(self._items)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue is empty and the drain loop idle."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._items and not self._draining, timeout=timeout)

    def close(self) -> None:
        """Stop retrying; anything still queued fails with QueueClosedError."""
        self._closed.set()
        with self._lock:
            if self._draining:
                return
            dropped = list(self._items)
            self._items.clear()
            self._idle.notify_all()
        for item in dropped:
            item.future.set_exception(QueueClosedError(f"{self._name} queue is closed"))

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._items:
                    self._draining = False
                    self._idle.notify_all()
                    return
                if self._closed.is_set():
                    dropped = list(self._items)
                    self._items.clear()
                    self._draining = False
                    self._idle.notify_all()
                    break
                item = self._items[0]

            try:
                self._place(item.envelope)
            except Exception as e:
                item.attempts += 1
                if item.attempts >= self.retry_attempts:
                    with self._lock:
                        self._items.popleft()
                    err = DeliveryError(item.envelope, item.attempts, e)
                    logger.error(str(err), extra={"message_id": item.envelope.id})
                    item.future.set_exception(err)
                    self._emit_error(err)
                else:
                    logger.warning(
                        "place failed (attempt %d/%d): %s",
                        item.attempts,
                        self.retry_attempts,
                        e,
                        extra={"message_id": item.envelope.id},
                    )
                    self._closed.wait(self.retry_delay_seconds)
                continue

            with self._lock:
                self._items.popleft()
            logger.debug("placed %s", item.envelope.filename, extra={"message_id": item.envelope.id})
            item.future.set_result(True)

        for item in dropped:
            item.future.set_exception(QueueClosedError(f"{self._name} queue is closed"))

    def _emit_error(self, err: DeliveryError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(err)
        except Exception:
            logger.exception("error callback failed")
