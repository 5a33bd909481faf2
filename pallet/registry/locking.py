"""Per-Index-File advisory locks.

Each package name gets its own lock file under ``.locks/`` so that publishes
of unrelated packages never wait on each other. Locks are ``flock`` based:
the kernel drops them when the holding process dies, and acquisition polls
with ``LOCK_NB`` so a contended lock fails with ``LockTimeout`` instead of
blocking forever.
"""

from __future__ import annotations

import fcntl
import logging
import os
import time
from pathlib import Path
from typing import Optional

from pallet.errors import LockTimeout, PathUnwritable

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


class PackageLock:
    """Exclusive lock on one Index File, used as a context manager."""

    def __init__(self, lock_path: Path, timeout: float = 10.0, name: Optional[str] = None) -> None:
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self.name = name
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise PathUnwritable(
                f"cannot create lock file: {e}", name=self.name, path=self.lock_path, step="lock"
            ) from e

        deadline = time.monotonic() + self.timeout
        waited = False
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockTimeout(
                        f"timed out after {self.timeout:g}s waiting for the index lock",
                        name=self.name,
                        path=self.lock_path,
                        step="lock",
                    )
                if not waited:
                    logger.debug("Waiting for lock %s", self.lock_path)
                    waited = True
                time.sleep(POLL_INTERVAL)

        self._fd = fd
        logger.debug("Acquired lock %s", self.lock_path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("Released lock %s", self.lock_path)

    def __enter__(self) -> PackageLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
