from __future__ import annotations

import json
import threading
import uuid
from typing import Any, Union

from pydantic import ValidationError

from ..contracts.v1 import Envelope, MessageType, normalize_payload
from ..util.time import now_ms


DEFAULT_PRODUCER = "msg"


class ParseError(ValueError):
    """An envelope file could not be decoded (malformed or still being written)."""


class _StrictlyIncreasingMs:
    """Epoch-ms stamps that never repeat within a process.

    Filenames sort by timestamp first, so two envelopes encoded in the same
    millisecond would otherwise order by their random suffix.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def __call__(self) -> int:
        with self._lock:
            ts = max(now_ms(), self._last + 1)
            self._last = ts
            return ts


_stamp = _StrictlyIncreasingMs()


def new_message_id(producer: str = DEFAULT_PRODUCER, *, timestamp: int = 0) -> str:
    ts = timestamp or now_ms()
    return f"{producer}-{ts}-{uuid.uuid4().hex[:9]}"


def encode(kind: Union[MessageType, str], payload: Any, *, producer: str = DEFAULT_PRODUCER) -> Envelope:
    """Wrap `payload` in a fresh envelope stamped with now().

    The payload is validated against its contract; a mismatch raises
    pydantic.ValidationError at the producer, not at the consumer.
    """
    mt = MessageType(kind)
    ts = _stamp()
    return Envelope(
        id=new_message_id(producer, timestamp=ts),
        timestamp=ts,
        type=mt,
        payload=normalize_payload(mt, payload),
    )


def dumps(envelope: Envelope) -> str:
    return json.dumps(envelope.to_wire(), ensure_ascii=False, indent=2) + "\n"


def decode(data: Union[bytes, str]) -> Envelope:
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        obj = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"malformed envelope: {e}") from e
    if not isinstance(obj, dict):
        raise ParseError("envelope is not a JSON object")
    try:
        return Envelope.model_validate(obj)
    except ValidationError as e:
        raise ParseError(f"invalid envelope: {e.error_count()} error(s)") from e
