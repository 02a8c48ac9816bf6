from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Sequence

from .models import CacheEntry

logger = logging.getLogger(__name__)


class FileTokenStore:
    """Token store backed by a JSON file readable only by its owner."""

    is_secure_cache = False

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load_entries(self) -> list[CacheEntry]:
        """Read entries from disk; a missing file is an empty cache."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        if not content.strip():
            return []
        return [CacheEntry.from_dict(item) for item in json.loads(content)]

    def add_entries(
        self,
        new_entries: Sequence[CacheEntry],
        existing_entries: Sequence[CacheEntry],
    ) -> None:
        self._save([*existing_entries, *new_entries])

    def remove_entries(
        self,
        entries_to_remove: Sequence[CacheEntry],
        entries_to_keep: Sequence[CacheEntry],
    ) -> None:
        self._save(entries_to_keep)

    def clear(self) -> None:
        self._save([])

    def _save(self, entries: Sequence[CacheEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([e.to_dict() for e in entries])
        # 0600: owner read/write only.
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.chmod(self.path, 0o600)
        logger.debug("Wrote %d token entries to %s", len(entries), self.path)
