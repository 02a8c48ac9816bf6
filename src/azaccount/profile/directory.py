from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any, Iterator

import requests

from azaccount.auth.errors import DirectoryError
from azaccount.auth.scopes import ARM_DEFAULT_SCOPE, authority_from_url

from .models import SubscriptionRecord

if TYPE_CHECKING:
    from azure.core.credentials import TokenCredential

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = {429, 503, 504}
MAX_RETRIES = 5
BASE_DELAY = 1.0


class ArmDirectoryClient:
    """Lists tenants and subscriptions through the Resource Manager API."""

    api_version: str = "2022-12-01"

    def __init__(
        self,
        resource_manager_url: str,
        *,
        scope: str = ARM_DEFAULT_SCOPE,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the directory client.

        Args:
            resource_manager_url: Resource Manager endpoint of the cloud.
            scope: Scope requested from credentials.
            timeout: Per-request timeout in seconds.
            session: Optional session to reuse connections.
        """
        authority_from_url(resource_manager_url)
        self._base_url = resource_manager_url.rstrip("/")
        self._scope = scope
        self._timeout = timeout
        self._session = session or requests.Session()

    def _headers(self, credential: "TokenCredential") -> dict[str, str]:
        token = credential.get_token(self._scope)
        return {"Authorization": f"Bearer {token.token}"}

    def _fetch_with_retry(self, url: str, headers: dict[str, str]) -> dict[str, Any]:
        for attempt in range(1, MAX_RETRIES + 1):
            response = self._session.get(url, headers=headers, timeout=self._timeout)
            if response.status_code < 400:
                return response.json()
            if response.status_code not in RETRY_STATUS_CODES or attempt == MAX_RETRIES:
                response.raise_for_status()

            retry_after = response.headers.get("Retry-After")
            if retry_after:
                delay = float(retry_after)
            else:
                delay = BASE_DELAY * (2 ** (attempt - 1))
                delay += random.uniform(0, 0.5)  # jitter
            logger.warning(
                "Resource Manager %s error. Retrying in %.1f seconds (attempt %d/%d)",
                response.status_code,
                delay,
                attempt,
                MAX_RETRIES,
            )
            time.sleep(delay)
        raise RuntimeError("Unreachable")

    def _paged_fetch(self, path: str, credential: "TokenCredential") -> Iterator[dict[str, Any]]:
        headers = self._headers(credential)
        url: str | None = f"{self._base_url}/{path}?api-version={self.api_version}"
        page_number = 0
        while url:
            page = self._fetch_with_retry(url, headers)
            page_number += 1
            logger.debug("Fetched %s page %d", path, page_number)
            yield from page.get("value", [])
            url = page.get("nextLink")

    def list_tenants(self, credential: "TokenCredential") -> list[str]:
        tenant_ids = []
        for item in self._paged_fetch("tenants", credential):
            tenant_id = item.get("tenantId")
            if not tenant_id:
                raise DirectoryError(f"Tenant listing returned an item without tenantId: {item!r}")
            tenant_ids.append(tenant_id)
        return tenant_ids

    def list_subscriptions(self, credential: "TokenCredential") -> list[SubscriptionRecord]:
        subscriptions = []
        for item in self._paged_fetch("subscriptions", credential):
            if not item.get("subscriptionId"):
                raise DirectoryError(
                    f"Subscription listing returned an item without subscriptionId: {item!r}"
                )
            subscriptions.append(
                SubscriptionRecord(
                    subscription_id=item["subscriptionId"],
                    display_name=item.get("displayName"),
                    tenant_id=item.get("tenantId"),
                    state=item.get("state"),
                    extra=item,
                )
            )
        return subscriptions
