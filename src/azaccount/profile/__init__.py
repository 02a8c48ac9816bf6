"""Subscription discovery for a logged in identity.

Public API:
- get_account() → Account wired to msal and Azure Resource Manager
- Account (login and subscription resolution)
- ArmDirectoryClient (tenant and subscription listing)
- LoadResult, SubscriptionRecord, TenantInfo (models)
"""

from .account import Account
from .directory import ArmDirectoryClient
from .factory import get_account
from .models import LoadResult, SubscriptionRecord, TenantInfo

__all__ = [
    "Account",
    "ArmDirectoryClient",
    "get_account",
    "LoadResult",
    "SubscriptionRecord",
    "TenantInfo",
]
