from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

from azaccount.auth.scopes import retarget_authority

from .interfaces import TokenStore
from .models import CacheEntry

logger = logging.getLogger(__name__)

KEYCHAIN_LOCKED_SIGNATURE = "Could not add password to keychain"
KEYCHAIN_UNLOCK_COMMAND = (
    'security -v unlock-keychain -p "$password" '
    '"/Users/$username/Library/Keychains/login.keychain"'
)


class TokenCache:
    """Deduplicating in-memory view over a :class:`TokenStore`.

    Entries are loaded from the store once, on first use, and the in-memory
    list is the source of truth afterwards. User ids are always compared and
    stored lower-cased. Mutations are serialized with a lock because
    duplicate detection reads and rewrites the whole list.
    """

    def __init__(self, token_store: TokenStore, *, common_tenant: str = "common") -> None:
        """Initialize the cache.

        Args:
            token_store: Durable storage backing the cache.
            common_tenant: Tenant segment rewritten for device-code logins.
        """
        self._store = token_store
        self._common_tenant = common_tenant
        self._entries: list[CacheEntry] | None = None
        self._lock = threading.RLock()

    @property
    def is_loaded(self) -> bool:
        return self._entries is not None

    def ensure_loaded(self) -> list[CacheEntry]:
        """Load entries from the store unless that already happened.

        Raises:
            Whatever the store raises; nothing is cached in that case.
        """
        with self._lock:
            if self._entries is None:
                entries = [e.normalized() for e in self._store.load_entries()]
                logger.debug("Loaded %d token cache entries", len(entries))
                self._entries = entries
            return self._entries

    def is_secure_cache(self) -> bool:
        return bool(self._store.is_secure_cache)

    def for_device_flow(self, user_id: str) -> "DeviceFlowTokenCache":
        """Return a view that applies the device-code user override."""
        return DeviceFlowTokenCache(self, user_id)

    def find(
        self,
        query: Mapping[str, Any],
        *,
        device_flow_user_id: str | None = None,
    ) -> list[CacheEntry]:
        """Return every entry whose fields include all of ``query``.

        Args:
            query: Attribute names mapped to the values they must equal.
            device_flow_user_id: Forces the ``user_id`` looked up while a
                device-code login has not resolved the identity yet.

        Returns:
            Matching entries; an empty list if there are none.
        """
        query = dict(query)
        if device_flow_user_id:
            query["user_id"] = device_flow_user_id.lower()
        elif query.get("user_id"):
            query["user_id"] = query["user_id"].lower()

        with self._lock:
            return [e for e in self.ensure_loaded() if e.matches(query)]

    def add(
        self,
        entries: Sequence[CacheEntry],
        *,
        device_flow_user_id: str | None = None,
    ) -> list[CacheEntry]:
        """Add entries, dropping duplicates and replacing refreshed tokens.

        An incoming entry equal to a cached one apart from ``expires_on`` is
        dropped. Any other incoming entry replaces cached entries with the
        same authority, client id, user id and resource.

        Args:
            entries: Entries to add.
            device_flow_user_id: User of an in-progress device-code login;
                entry authorities are moved off the common tenant.

        Returns:
            The incoming entries as normalized for storage.

        Raises:
            Whatever the store raises. The error is logged first.
        """
        incoming = [self._prepare(e, device_flow_user_id) for e in entries]

        with self._lock:
            existing = self.ensure_loaded()

            new_entries: list[CacheEntry] = []
            for entry in incoming:
                if any(entry.same_as(e) for e in existing) or any(
                    entry.same_as(e) for e in new_entries
                ):
                    continue
                new_entries = [e for e in new_entries if e.identity() != entry.identity()]
                new_entries.append(entry)

            if not new_entries:
                logger.debug("All %d token cache entries already cached", len(incoming))
                return incoming

            new_identities = {e.identity() for e in new_entries}
            superseded = [e for e in existing if e.identity() in new_identities]
            to_keep = [e for e in existing if e.identity() not in new_identities]

            try:
                if superseded:
                    self._store.remove_entries(superseded, to_keep)
                    self._entries = to_keep
                self._store.add_entries(new_entries, to_keep)
            except Exception as err:
                logger.error("Failed to save tokens: %s", err)
                if KEYCHAIN_LOCKED_SIGNATURE in str(err):
                    logger.warning(
                        "It seems that the key chain is locked. Please unlock "
                        "the key chain by executing this command: %s",
                        KEYCHAIN_UNLOCK_COMMAND,
                    )
                raise

            logger.debug(
                "Cached %d token entries, replaced %d",
                len(new_entries),
                len(superseded),
            )
            self._entries = to_keep + new_entries
            return incoming

    def remove(self, entries: Sequence[CacheEntry]) -> None:
        """Remove cached entries equal to any of ``entries`` apart from ``expires_on``."""
        requested = [e.normalized() for e in entries]

        with self._lock:
            to_remove: list[CacheEntry] = []
            to_keep: list[CacheEntry] = []
            for entry in self.ensure_loaded():
                if any(entry.same_as(r) for r in requested):
                    to_remove.append(entry)
                else:
                    to_keep.append(entry)

            self._store.remove_entries(to_remove, to_keep)
            self._entries = to_keep

    def clear(self) -> None:
        """Delete every entry from the store and from memory."""
        with self._lock:
            self._store.clear()
            self._entries = []

    def _prepare(self, entry: CacheEntry, device_flow_user_id: str | None) -> CacheEntry:
        entry = entry.normalized()
        if not device_flow_user_id:
            return entry
        updates: dict[str, Any] = {}
        if entry.authority:
            updates["authority"] = retarget_authority(
                entry.authority, entry.tenant_id, self._common_tenant
            )
        if not entry.user_id:
            updates["user_id"] = device_flow_user_id.lower()
        return replace(entry, **updates)


@dataclass(frozen=True)
class DeviceFlowTokenCache:
    """A :class:`TokenCache` bound to the user of one device-code login."""

    cache: TokenCache
    user_id: str

    def is_secure_cache(self) -> bool:
        return self.cache.is_secure_cache()

    def find(self, query: Mapping[str, Any]) -> list[CacheEntry]:
        return self.cache.find(query, device_flow_user_id=self.user_id)

    def add(self, entries: Sequence[CacheEntry]) -> list[CacheEntry]:
        return self.cache.add(entries, device_flow_user_id=self.user_id)
