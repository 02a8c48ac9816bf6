from __future__ import annotations

from typing import Protocol, Sequence

from .models import CacheEntry


class TokenStore(Protocol):
    """Protocol for durable token persistence.

    Implementations may write to a file, an OS keychain or any other medium.
    Every entry field, including opaque provider fields, must survive a
    save and load unchanged.
    """

    @property
    def is_secure_cache(self) -> bool:
        """True if the medium protects secrets at the OS level."""
        raise NotImplementedError

    def load_entries(self) -> list[CacheEntry]:
        """Return every persisted entry."""
        raise NotImplementedError

    def add_entries(
        self,
        new_entries: Sequence[CacheEntry],
        existing_entries: Sequence[CacheEntry],
    ) -> None:
        """Persist ``new_entries`` next to the already stored ``existing_entries``."""
        raise NotImplementedError

    def remove_entries(
        self,
        entries_to_remove: Sequence[CacheEntry],
        entries_to_keep: Sequence[CacheEntry],
    ) -> None:
        """Delete ``entries_to_remove``; ``entries_to_keep`` is what remains."""
        raise NotImplementedError

    def clear(self) -> None:
        """Delete every persisted entry."""
        raise NotImplementedError
