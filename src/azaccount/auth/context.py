"""Authentication context backed by msal.

msal performs the OAuth handshakes; this module turns its results into
:class:`CacheEntry` records and keeps them in the shared token cache.
"""

from __future__ import annotations

import base64
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Mapping

import msal

from azaccount.tokens.models import CacheEntry

from .certificate import CertificateCredential, load_client_certificate
from .config import TenantAuthConfig
from .errors import AuthenticationError
from .models import UserCodeResponse
from .scopes import scope_for_resource

if TYPE_CHECKING:
    from azaccount.tokens.cache import TokenCache

logger = logging.getLogger(__name__)

EXPIRED_CREDENTIALS_MESSAGE = "Credentials have expired, please reauthenticate"

_USER_ID_CLAIMS = ("preferred_username", "upn", "unique_name", "email")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def decode_jwt_claims(token: str) -> dict[str, Any]:
    """Return the payload of a JWT without verifying its signature."""
    try:
        payload = token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        return json.loads(base64.urlsafe_b64decode(payload))
    except (IndexError, ValueError):
        return {}


def _raise_for_result(result: Mapping[str, Any] | None, action: str) -> Mapping[str, Any]:
    if not result:
        raise AuthenticationError(f"{action} returned no result")
    if "error" in result or "access_token" not in result:
        raise AuthenticationError(
            result.get("error_description") or result.get("error") or f"{action} failed",
            error_codes=result.get("error_codes") or (),
            error=result.get("error"),
        )
    return result


class MsalAuthenticationContext:
    """Acquire tokens for one authority and keep them in a :class:`TokenCache`."""

    def __init__(self, tenant_config: TenantAuthConfig, token_cache: "TokenCache") -> None:
        """Initialize the context.

        Args:
            tenant_config: Authority host and tenant to authenticate against.
            token_cache: Cache that receives every acquired token.
        """
        self._config = tenant_config
        self._cache = token_cache
        self._public_apps: dict[str, msal.PublicClientApplication] = {}

    @property
    def authority(self) -> str:
        return self._config.authority

    def _public_app(self, client_id: str) -> msal.PublicClientApplication:
        app = self._public_apps.get(client_id)
        if app is None:
            app = msal.PublicClientApplication(
                client_id,
                authority=self.authority,
                validate_authority=self._config.validate_authority,
            )
            self._public_apps[client_id] = app
        return app

    def _entry_from_result(
        self,
        result: Mapping[str, Any],
        resource: str,
        client_id: str,
        fallback: CacheEntry | None = None,
    ) -> CacheEntry:
        claims = dict(result.get("id_token_claims") or {})
        if not claims:
            claims = decode_jwt_claims(result["access_token"])

        user_id = next((claims[c] for c in _USER_ID_CLAIMS if claims.get(c)), None)
        tenant_id = claims.get("tid")
        if fallback is not None:
            user_id = user_id or fallback.user_id
            tenant_id = tenant_id or fallback.tenant_id

        expires_in = int(result.get("expires_in") or 0)
        extra = {
            "tokenType": result.get("token_type", "Bearer"),
            "expiresIn": expires_in,
            "oid": claims.get("oid"),
            "givenName": claims.get("given_name"),
            "familyName": claims.get("family_name"),
        }
        return CacheEntry(
            authority=self.authority,
            client_id=client_id,
            user_id=user_id,
            tenant_id=tenant_id,
            resource=resource,
            access_token=result["access_token"],
            refresh_token=result.get("refresh_token"),
            expires_on=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            extra={k: v for k, v in extra.items() if v is not None},
        )

    def _store(self, entry: CacheEntry) -> CacheEntry:
        return self._cache.add([entry])[0]

    def acquire_token(self, resource: str, user_id: str | None, client_id: str) -> CacheEntry:
        """Return the newest valid cached token, redeeming a refresh token if needed.

        Raises:
            AuthenticationError: If nothing usable is cached or the refresh
                token was rejected.
        """
        query: dict[str, Any] = {
            "authority": self.authority,
            "client_id": client_id,
            "resource": resource,
        }
        if user_id:
            query["user_id"] = user_id

        candidates = sorted(
            self._cache.find(query),
            key=lambda e: e.expires_on or _EPOCH,
            reverse=True,
        )
        if candidates and not candidates[0].is_expired():
            return candidates[0]

        refreshable = next((e for e in candidates if e.refresh_token), None)
        if refreshable is None:
            raise AuthenticationError(EXPIRED_CREDENTIALS_MESSAGE)

        logger.debug("Refreshing token for %s at %s", refreshable.user_id, self.authority)
        result = self._public_app(client_id).acquire_token_by_refresh_token(
            refreshable.refresh_token, scopes=[scope_for_resource(resource)]
        )
        try:
            _raise_for_result(result, "Token refresh")
        except AuthenticationError as err:
            raise AuthenticationError(
                f"{EXPIRED_CREDENTIALS_MESSAGE}. Detailed error: {err}",
                error_codes=err.error_codes,
                error=err.error,
            ) from err
        return self._store(self._entry_from_result(result, resource, client_id, refreshable))

    def acquire_token_with_username_password(
        self, resource: str, username: str, password: str, client_id: str
    ) -> CacheEntry:
        result = self._public_app(client_id).acquire_token_by_username_password(
            username, password, scopes=[scope_for_resource(resource)]
        )
        _raise_for_result(result, "Username/password authentication")
        return self._store(self._entry_from_result(result, resource, client_id))

    def acquire_user_code(self, resource: str, client_id: str) -> UserCodeResponse:
        flow = self._public_app(client_id).initiate_device_flow(
            scopes=[scope_for_resource(resource)]
        )
        if "user_code" not in flow:
            raise AuthenticationError(
                flow.get("error_description") or "Failed to start the device code login",
                error_codes=flow.get("error_codes") or (),
                error=flow.get("error"),
            )
        return UserCodeResponse(
            message=flow.get("message", ""),
            user_code=flow["user_code"],
            device_code=flow.get("device_code"),
            verification_uri=flow.get("verification_uri"),
            expires_in=flow.get("expires_in"),
            extra=flow,
        )

    def acquire_token_with_device_code(
        self,
        resource: str,
        client_id: str,
        user_code_response: UserCodeResponse,
        user_id: str | None = None,
    ) -> CacheEntry:
        """Block until the device-code login completes.

        The token is issued by the user's home tenant even though the login
        started on the common tenant, so the cached authority is moved there.
        """
        result = self._public_app(client_id).acquire_token_by_device_flow(
            dict(user_code_response.extra)
        )
        _raise_for_result(result, "Device code authentication")
        entry = self._entry_from_result(result, resource, client_id)
        cache = self._cache.for_device_flow(user_id or entry.user_id or "")
        return cache.add([entry])[0]

    def acquire_token_with_client_credentials(
        self,
        resource: str,
        client_id: str,
        secret: str | CertificateCredential,
    ) -> CacheEntry:
        if isinstance(secret, CertificateCredential):
            client_credential: str | dict[str, str] = load_client_certificate(secret)
        else:
            client_credential = secret

        app = msal.ConfidentialClientApplication(
            client_id,
            client_credential=client_credential,
            authority=self.authority,
            validate_authority=self._config.validate_authority,
        )
        result = app.acquire_token_for_client(scopes=[scope_for_resource(resource)])
        _raise_for_result(result, "Service principal authentication")
        return self._store(self._entry_from_result(result, resource, client_id))
