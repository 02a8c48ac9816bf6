from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from azure.core.credentials import TokenCredential


@dataclass
class TenantInfo:
    """A directory tenant and the credential valid for querying it."""

    tenant_id: str
    credential: "TokenCredential"


@dataclass
class SubscriptionRecord:
    """Represents a subscription visible to the logged in identity."""

    subscription_id: str
    display_name: str | None = None
    tenant_id: str | None = None
    username: str | None = None
    user_type: str | None = None
    state: str | None = None
    extra: Mapping[str, Any] | None = None


@dataclass
class LoadResult:
    """Subscriptions found by a login and the tenants that were considered."""

    subscriptions: list[SubscriptionRecord] = field(default_factory=list)
    tenant_ids: list[str] = field(default_factory=list)
