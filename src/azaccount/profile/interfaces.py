from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from azaccount.auth.models import UserCodeResponse
from azaccount.tokens.models import CacheEntry

from .models import SubscriptionRecord

if TYPE_CHECKING:
    from azure.core.credentials import TokenCredential

    from azaccount.auth.certificate import CertificateCredential


class AuthenticationContext(Protocol):
    """Protocol for the token handshake against one authority.

    Every successful call returns the cached token record and, as a side
    effect, writes it to the token cache. Failures raise
    :class:`~azaccount.auth.errors.AuthenticationError`.
    """

    def acquire_token(self, resource: str, user_id: str | None, client_id: str) -> CacheEntry:
        """Return a token from the cache, refreshing it if needed."""
        raise NotImplementedError

    def acquire_token_with_username_password(
        self, resource: str, username: str, password: str, client_id: str
    ) -> CacheEntry:
        """Authenticate a user with a password."""
        raise NotImplementedError

    def acquire_user_code(self, resource: str, client_id: str) -> UserCodeResponse:
        """Start a device-code login."""
        raise NotImplementedError

    def acquire_token_with_device_code(
        self,
        resource: str,
        client_id: str,
        user_code_response: UserCodeResponse,
        user_id: str | None = None,
    ) -> CacheEntry:
        """Wait for the user to complete a device-code login."""
        raise NotImplementedError

    def acquire_token_with_client_credentials(
        self,
        resource: str,
        client_id: str,
        secret: "str | CertificateCredential",
    ) -> CacheEntry:
        """Authenticate a service principal with a secret or certificate."""
        raise NotImplementedError


class DirectoryClient(Protocol):
    """Protocol for listing tenants and subscriptions of an identity."""

    def list_tenants(self, credential: "TokenCredential") -> list[str]:
        """Return the ids of every tenant the identity belongs to."""
        raise NotImplementedError

    def list_subscriptions(self, credential: "TokenCredential") -> list[SubscriptionRecord]:
        """Return the subscriptions visible with ``credential``."""
        raise NotImplementedError
