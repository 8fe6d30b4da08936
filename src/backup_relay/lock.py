"""Run-level lock file so that two backups never share a staging directory."""
from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOCK_NAME = ".backup.lock"


class RunLock:
    """Exclusive ``flock`` on a pid file in the staging directory.

    The kernel drops the lock when its holder exits, so a file left behind by
    a crashed run is reclaimed by the next one.
    """

    def __init__(self, directory: Path, name: str = LOCK_NAME) -> None:
        self.path = Path(directory) / name
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> bool:
        if self._fd is not None:
            return True
        for _ in range(3):
            fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                logger.warning("Backup lock %s is held by pid %s", self.path, self.owner())
                return False
            except OSError:
                os.close(fd)
                raise
            if not self._is_current(fd):
                # the previous holder unlinked this inode while we waited on it
                os.close(fd)
                continue
            self._claim(fd)
            return True
        return False

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to remove backup lock %s: %s", self.path, exc)
        finally:
            os.close(self._fd)
            self._fd = None

    def owner(self) -> Optional[int]:
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def _is_current(self, fd: int) -> bool:
        try:
            return os.stat(self.path).st_ino == os.fstat(fd).st_ino
        except FileNotFoundError:
            return False

    def _claim(self, fd: int) -> None:
        previous = os.read(fd, 64).decode("utf-8", errors="replace").strip()
        if previous:
            logger.warning("Reclaiming stale backup lock %s (pid %s)", self.path, previous)
        os.ftruncate(fd, 0)
        os.lseek(fd, 0, os.SEEK_SET)
        os.write(fd, str(os.getpid()).encode("utf-8"))
        self._fd = fd
