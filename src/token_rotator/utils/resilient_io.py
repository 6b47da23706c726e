# src/token_rotator/utils/resilient_io.py
"""
Resilient I/O utilities for state files.

ResilientStateWriter keeps the latest state in memory and writes it to disk
atomically (tempfile + move). When the disk write fails the state is retained,
later writes retry after `retry_interval`, and a final flush is attempted at
interpreter exit.
"""

import atexit
import json
import logging
import os
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union


def atomic_write_text(path: Path, content: str) -> None:
    """
    Write `content` to `path` through a temporary file in the same directory.

    Raises OSError on failure; the temporary file is always cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd = None
    tmp_path = None
    try:
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=path.parent, prefix=".tmp_", suffix=".json", text=True
        )
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            f.write(content)
            tmp_fd = None  # fdopen closes the fd
        shutil.move(tmp_path, path)
        tmp_path = None
    finally:
        if tmp_fd is not None:
            try:
                os.close(tmp_fd)
            except OSError:
                pass
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                pass


class ResilientStateWriter:
    """
    Manages resilient writes for a single stateful JSON file.

    - write() always updates the in-memory state
    - the disk write is attempted immediately
    - while the disk is unhealthy, attempts are spaced by retry_interval
    - pending state is flushed once more on interpreter exit

    Thread-safe; safe to call from async code doing sync file I/O.

    Usage:
        writer = ResilientStateWriter("token_status.json", logger)
        writer.write({"hf_token_status": {...}})
        if not writer.is_healthy:
            logger.warning("Disk writes failing, data in memory only")
    """

    def __init__(
        self,
        path: Union[str, Path],
        logger: logging.Logger,
        retry_interval: float = 30.0,
    ):
        self.path = Path(path)
        self.logger = logger
        self.retry_interval = retry_interval

        self._current_state: Optional[Any] = None
        self._disk_healthy = True
        self._pending = False
        self._last_attempt: float = 0
        self._last_success: Optional[float] = None
        self._failure_count = 0
        self._lock = threading.Lock()

        atexit.register(self._flush_on_exit)

    def write(self, data: Any) -> bool:
        """
        Update state and attempt a disk write.

        Returns:
            True if the disk write succeeded, False if it failed or was
            deferred (data is still held in memory)
        """
        with self._lock:
            self._current_state = data
            self._pending = True

            if not self._disk_healthy:
                if time.time() - self._last_attempt < self.retry_interval:
                    return False

            return self._try_disk_write()

    def _try_disk_write(self) -> bool:
        if self._current_state is None:
            return True

        self._last_attempt = time.time()
        try:
            atomic_write_text(self.path, json.dumps(self._current_state, indent=2))
        except (OSError, TypeError, ValueError) as e:
            self._disk_healthy = False
            self._failure_count += 1
            # Rate-limited to avoid flooding the log
            if self._failure_count == 1 or self._failure_count % 10 == 0:
                self.logger.warning(
                    f"Failed to write {self.path.name}: {e}. "
                    f"Data retained in memory (failure #{self._failure_count})."
                )
            return False

        self._disk_healthy = True
        self._pending = False
        self._last_success = time.time()
        self._failure_count = 0
        return True

    def _flush_on_exit(self) -> None:
        with self._lock:
            if not self._pending:
                return
            if self._try_disk_write():
                self.logger.info(f"Flushed pending state to {self.path.name} on exit")
            else:
                self.logger.warning(f"Could not save {self.path.name} on exit")

    @property
    def is_healthy(self) -> bool:
        """Check if disk writes are currently working."""
        return self._disk_healthy

    @property
    def current_state(self) -> Optional[Any]:
        return self._current_state

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "healthy": self._disk_healthy,
            "failure_count": self._failure_count,
            "last_success": self._last_success,
            "last_attempt": self._last_attempt,
            "path": str(self.path),
        }
