"""
Process Lock
============

One crawler service per source: the service holds an exclusive ``flock`` on
``<lock_dir>/<name>.lock`` for its whole lifetime. The lock file records the
holder's PID and start time so a refused start can say who is running.

The kernel drops the lock when the holder dies, so a stale file left by a
crashed process never blocks the next start.
"""

import fcntl
import json
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .logging import get_logger_for_component

logger = get_logger_for_component("process_lock")


class ProcessLock:
    """Non-blocking exclusive file lock."""

    def __init__(self, lock_name: str, lock_dir: Optional[str] = None):
        """
        Args:
            lock_name: Lock file name without extension
            lock_dir: Directory of the lock file (system temp dir by default)
        """
        self.lock_file = Path(lock_dir or tempfile.gettempdir()) / f"{lock_name}.lock"
        self._fd: Optional[int] = None

    @property
    def acquired(self) -> bool:
        return self._fd is not None

    def acquire(self) -> bool:
        """Take the lock; False if another process holds it."""
        if self.acquired:
            return True

        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_file, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            holder = self.holder()
            logger.warning(
                f"Lock {self.lock_file} is held by PID {holder.get('pid') if holder else 'unknown'}"
            )
            return False

        record = {"pid": os.getpid(), "started_at": datetime.now(timezone.utc).isoformat()}
        os.ftruncate(fd, 0)
        os.write(fd, json.dumps(record).encode("utf-8"))
        os.fsync(fd)

        self._fd = fd
        logger.info(f"Acquired lock {self.lock_file}")
        return True

    def release(self) -> None:
        if not self.acquired:
            return
        fd, self._fd = self._fd, None
        try:
            self.lock_file.unlink(missing_ok=True)
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.info(f"Released lock {self.lock_file}")

    def holder(self) -> Optional[Dict[str, Any]]:
        """PID and start time written by the current holder, if readable."""
        try:
            return json.loads(self.lock_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    def __enter__(self) -> "ProcessLock":
        if not self.acquire():
            raise RuntimeError(f"Could not acquire process lock: {self.lock_file}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def ensure_single_instance(service_name: str, lock_dir: Optional[str] = None) -> ProcessLock:
    """Acquire ``newsmirror-<service_name>`` or exit with status 1.

    Args:
        service_name: Service name, e.g. ``crawler-khabaronline``
        lock_dir: Directory of the lock file

    Returns:
        The held lock; release it on shutdown
    """
    lock = ProcessLock(f"newsmirror-{service_name}", lock_dir=lock_dir)
    if lock.acquire():
        return lock

    holder = lock.holder() or {}
    print(f"❌ Another {service_name} instance is already running", end="")
    if holder.get("pid"):
        print(f" (PID {holder['pid']}, since {holder.get('started_at', 'unknown')})")
        print(f"   To stop it: kill {holder['pid']}")
    else:
        print()
    sys.exit(1)
