from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from azure.core.credentials import AccessToken

from .errors import AuthenticationError
from .scopes import scope_for_resource

if TYPE_CHECKING:
    from azaccount.profile.interfaces import AuthenticationContext
    from azaccount.tokens.models import CacheEntry

    from .certificate import CertificateCredential

logger = logging.getLogger(__name__)


class CachedTokenCredential:
    """azure-core ``TokenCredential`` serving tokens from the token cache.

    The credential is bound to one authority (through its authentication
    context), one resource and one identity. Service principals may pass
    their secret so an expired token is re-acquired instead of refreshed.
    """

    def __init__(
        self,
        context: "AuthenticationContext",
        resource: str,
        client_id: str,
        user_id: str | None = None,
        *,
        secret: "str | CertificateCredential | None" = None,
    ) -> None:
        self._context = context
        self._resource = resource
        self._client_id = client_id
        self._user_id = user_id
        self._secret = secret

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def get_token(
        self,
        *scopes: str,
        claims: str | None = None,
        tenant_id: str | None = None,
        **kwargs: Any,
    ) -> AccessToken:
        """Return a bearer token for the bound resource.

        Raises:
            ValueError: If a scope for another resource is requested.
            AuthenticationError: If no valid token can be produced.
        """
        expected = scope_for_resource(self._resource)
        for scope in scopes:
            if scope != expected:
                raise ValueError(f"Credential is bound to {expected!r}, not {scope!r}")

        entry = self._acquire()
        return AccessToken(entry.access_token, int(entry.expires_on.timestamp()))

    def _acquire(self) -> "CacheEntry":
        try:
            return self._context.acquire_token(self._resource, self._user_id, self._client_id)
        except AuthenticationError:
            if self._secret is None:
                raise
            logger.debug("Re-acquiring service principal token for %s", self._client_id)
            return self._context.acquire_token_with_client_credentials(
                self._resource, self._client_id, self._secret
            )
