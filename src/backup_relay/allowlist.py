from __future__ import annotations

import logging
from pathlib import Path
from typing import FrozenSet


LOGGER = logging.getLogger(__name__)


class AllowListStore:
    """Chat ids permitted to trigger backups, read from a plain-text file.

    One id per line; blank lines and ``#`` comments are skipped. Lines that are
    not integers are ignored with a warning rather than read as zero. The file
    is re-read on every lookup so edits apply without a restart.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> FrozenSet[int]:
        """Return the allowed ids; raises ``OSError`` when the file cannot be read."""
        allowed = set()
        for number, raw in enumerate(self.path.read_text(encoding="utf-8").splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            try:
                allowed.add(int(line))
            except ValueError:
                LOGGER.warning("Ignoring non-numeric entry on line %d of %s", number, self.path)
        return frozenset(allowed)

    def is_allowed(self, chat_id: int) -> bool:
        try:
            allowed = self.load()
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.error("Authorization check failed: allowed chats file %s is not readable: %s", self.path, exc)
            return False
        return chat_id in allowed
