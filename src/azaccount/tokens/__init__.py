"""Persistent, deduplicated token cache.

Public API:
- CacheEntry (cached token record)
- TokenStore (persistence protocol), FileTokenStore
- TokenCache, DeviceFlowTokenCache
"""

from .cache import DeviceFlowTokenCache, TokenCache
from .file_store import FileTokenStore
from .interfaces import TokenStore
from .models import CacheEntry

__all__ = [
    "CacheEntry",
    "DeviceFlowTokenCache",
    "FileTokenStore",
    "TokenCache",
    "TokenStore",
]
