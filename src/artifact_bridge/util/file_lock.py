from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator


class LockUnavailableError(RuntimeError):
    """Raised when a non-blocking lock is held by another process."""


def _ensure_lock_region(f: IO[bytes]) -> None:
    # msvcrt locks a byte range, so the file needs at least one byte.
    f.seek(0, os.SEEK_END)
    if f.tell() <= 0:
        f.write(b"\0")
        f.flush()
    f.seek(0)


def _lock(fd: int, *, blocking: bool) -> None:
    if os.name == "nt":
        import msvcrt  # Windows only

        msvcrt.locking(fd, msvcrt.LK_LOCK if blocking else msvcrt.LK_NBLCK, 1)
        return

    import fcntl  # POSIX only

    flags = fcntl.LOCK_EX
    if not blocking:
        flags |= fcntl.LOCK_NB
    fcntl.flock(fd, flags)


def _unlock(fd: int) -> None:
    if os.name == "nt":
        import msvcrt  # Windows only

        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
        return

    import fcntl  # POSIX only

    fcntl.flock(fd, fcntl.LOCK_UN)


def acquire_lockfile(path: Path, *, blocking: bool = True) -> IO[bytes]:
    """Open + lock a lockfile. Keep the returned handle open to hold the lock."""
    path.parent.mkdir(parents=True, exist_ok=True)
    f = path.open("r+b") if path.exists() else path.open("w+b")
    try:
        _ensure_lock_region(f)
        _lock(f.fileno(), blocking=blocking)
    except OSError as e:
        f.close()
        if not blocking:
            raise LockUnavailableError(str(e)) from e
        raise
    return f


def release_lockfile(f: IO[bytes]) -> None:
    """Release a lockfile acquired via acquire_lockfile."""
    try:
        _unlock(f.fileno())
    except OSError:
        pass
    finally:
        f.close()


@contextmanager
def locked(path: Path, *, blocking: bool = True) -> Iterator[None]:
    """Hold an exclusive lock on `path` for the duration of the block."""
    f = acquire_lockfile(path, blocking=blocking)
    try:
        yield
    finally:
        release_lockfile(f)
