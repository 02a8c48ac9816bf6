"""Resolve a login into the subscriptions it can access.

A user logging in without a tenant authenticates against the common tenant
first. That token can list the user's tenants but cannot list their
subscriptions, so the user authenticates once more against every tenant.
Tenants the user cannot enter with a password (external directories,
MFA-enforcing directories) are skipped; any other failure aborts the login.

Tenants are processed strictly one after another, in the order the
directory returns them, and subscriptions keep that order.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Callable

from azaccount.auth.config import AuthConfig, LoginKind, TenantAuthConfig
from azaccount.auth.credentials import CachedTokenCredential
from azaccount.auth.errors import (
    AuthenticationError,
    IdentityMismatchError,
    is_mfa_required_error,
    is_tenant_membership_error,
    is_unsupported_account_type_error,
    to_mfa_enabled_error,
    to_unsupported_account_type_error,
)
from azaccount.auth.scopes import normalize_username

from .interfaces import AuthenticationContext, DirectoryClient
from .models import LoadResult, SubscriptionRecord, TenantInfo

if TYPE_CHECKING:
    from azaccount.auth.certificate import CertificateCredential
    from azaccount.auth.models import UserCodeResponse
    from azaccount.tokens.cache import TokenCache

logger = logging.getLogger(__name__)

ContextFactory = Callable[[TenantAuthConfig], AuthenticationContext]


def _log_user_code(user_code: "UserCodeResponse") -> None:
    logger.warning(user_code.message)


def cross_check_username(username: str, token_user_id: str | None) -> str:
    """Return the token's user id if it matches ``username`` ignoring case.

    The token's spelling is kept so profile and token cache agree on casing.

    Raises:
        IdentityMismatchError: If the token was issued to someone else.
    """
    if token_user_id and username.lower() == token_user_id.lower():
        return token_user_id
    raise IdentityMismatchError(username, token_user_id)


class Account:
    """Logs an identity in and collects the subscriptions it can use."""

    def __init__(
        self,
        config: AuthConfig,
        context_factory: ContextFactory,
        directory_client: DirectoryClient,
        token_cache: "TokenCache | None" = None,
        *,
        on_user_code: Callable[["UserCodeResponse"], None] = _log_user_code,
    ) -> None:
        """Initialize the account resolver.

        Args:
            config: Cloud endpoints and client id.
            context_factory: Builds the authentication context for a tenant.
            directory_client: Lists tenants and subscriptions.
            token_cache: Cache the contexts write to; needed for :meth:`logout`.
            on_user_code: Shows device-code instructions to the user.
        """
        self._config = config
        self._context_factory = context_factory
        self._directory = directory_client
        self._token_cache = token_cache
        self._on_user_code = on_user_code

    def load(
        self,
        username: str | None,
        secret: "str | CertificateCredential | None",
        tenant: str | None = None,
        login_kind: LoginKind = LoginKind.USER,
    ) -> LoadResult:
        """Log in and return every subscription the identity can access.

        Args:
            username: User principal name, or the application id of a
                service principal. Optional for device-code logins.
            secret: Password, client secret or certificate. Unused for
                device-code logins.
            tenant: Tenant to log in to. Defaults to the common tenant.
            login_kind: Which login flow to use.

        Returns:
            The subscriptions found and the tenant ids considered.

        Raises:
            MFAEnabledError: The user must log in with ``LoginKind.MFA_USER``.
            UnsupportedAccountTypeError: The account cannot use a password login.
            IdentityMismatchError: A token was issued to a different user.
            AuthenticationError: Any other authentication failure.
        """
        tenant = tenant or self._config.common_tenant
        login_kind = LoginKind(login_kind)

        if login_kind is LoginKind.SERVICE_PRINCIPAL:
            if not username or secret is None:
                raise ValueError("A service principal login requires an application id and a secret.")
            tenants = self._service_principal_tenants(username, secret, tenant)
            tenant_ids = [tenant]
            user_type = "servicePrincipal"
        elif login_kind is LoginKind.MFA_USER:
            if username:
                username = normalize_username(username)
            username, tenants, tenant_ids = self._device_code_tenants(username, tenant)
            user_type = "user"
        else:
            if not username or secret is None:
                raise ValueError("A user login requires a username and a password.")
            username = normalize_username(username)
            username, tenants, tenant_ids = self._password_tenants(username, secret, tenant)
            user_type = "user"

        subscriptions = self._get_subscriptions_from_tenants(username, user_type, tenants)
        return LoadResult(subscriptions=subscriptions, tenant_ids=tenant_ids)

    def logout(self, username: str) -> int:
        """Remove every cached token of ``username``.

        Returns:
            The number of cache entries removed.
        """
        if self._token_cache is None:
            raise ValueError("logout requires a token cache.")
        entries = self._token_cache.find({"user_id": username})
        self._token_cache.remove(entries)
        logger.info("Removed %d cached tokens for %s", len(entries), username)
        return len(entries)

    def _credential(
        self,
        context: AuthenticationContext,
        tenant_config: TenantAuthConfig,
        user_id: str | None,
        secret: "str | CertificateCredential | None" = None,
    ) -> CachedTokenCredential:
        return CachedTokenCredential(
            context,
            tenant_config.resource_id,
            tenant_config.client_id,
            user_id,
            secret=secret,
        )

    def _service_principal_tenants(
        self,
        client_id: str,
        secret: "str | CertificateCredential",
        tenant: str,
    ) -> list[TenantInfo]:
        tenant_config = self._config.for_tenant(tenant)
        context = self._context_factory(tenant_config)
        context.acquire_token_with_client_credentials(tenant_config.resource_id, client_id, secret)

        credential = CachedTokenCredential(
            context, tenant_config.resource_id, client_id, secret=secret
        )
        return [TenantInfo(tenant_id=tenant, credential=credential)]

    def _device_code_tenants(
        self, username: str | None, tenant: str
    ) -> tuple[str, list[TenantInfo], list[str]]:
        tenant_config = self._config.for_tenant(tenant)
        context = self._context_factory(tenant_config)

        user_code = context.acquire_user_code(tenant_config.resource_id, tenant_config.client_id)
        self._on_user_code(user_code)
        entry = context.acquire_token_with_device_code(
            tenant_config.resource_id,
            tenant_config.client_id,
            user_code,
            user_id=username,
        )
        user_id = cross_check_username(username, entry.user_id) if username else entry.user_id
        if not user_id:
            raise AuthenticationError("Device code login returned a token without a user id")

        # A login on the common tenant is issued by the user's home tenant,
        # and that is the only tenant this login is valid for.
        home_tenant = entry.tenant_id or tenant
        if tenant == self._config.common_tenant:
            tenant_config = self._config.for_tenant(home_tenant)
            context = self._context_factory(tenant_config)
        credential = self._credential(context, tenant_config, user_id)

        all_tenant_ids = self._directory.list_tenants(credential)
        logger.info("User %s has access to %d tenants", user_id, len(all_tenant_ids))
        return user_id, [TenantInfo(tenant_id=home_tenant, credential=credential)], all_tenant_ids

    def _password_tenants(
        self, username: str, password: str, tenant: str
    ) -> tuple[str, list[TenantInfo], list[str]]:
        tenant_config = self._config.for_tenant(tenant)
        context = self._context_factory(tenant_config)
        try:
            entry = context.acquire_token_with_username_password(
                tenant_config.resource_id, username, password, tenant_config.client_id
            )
        except AuthenticationError as err:
            if is_mfa_required_error(err):
                logger.info("Looks like you have multi-factor authentication enabled.")
                raise to_mfa_enabled_error(err) from err
            if is_unsupported_account_type_error(err):
                raise to_unsupported_account_type_error(err) from err
            raise
        username = cross_check_username(username, entry.user_id)
        credential = self._credential(context, tenant_config, username)

        if tenant != self._config.common_tenant:
            return username, [TenantInfo(tenant_id=tenant, credential=credential)], [tenant]

        tenant_ids = self._directory.list_tenants(credential)
        logger.info("Found %d tenants for %s", len(tenant_ids), username)
        tenants = self._build_tenant_list(username, password, tenant_ids)
        return username, tenants, tenant_ids

    def _build_tenant_list(
        self, username: str, password: str, tenant_ids: list[str]
    ) -> list[TenantInfo]:
        tenants: list[TenantInfo] = []
        for tenant_id in tenant_ids:
            tenant_config = self._config.for_tenant(tenant_id)
            context = self._context_factory(tenant_config)
            try:
                entry = context.acquire_token_with_username_password(
                    tenant_config.resource_id, username, password, tenant_config.client_id
                )
            except AuthenticationError as err:
                if is_tenant_membership_error(err):
                    logger.warning(
                        "Due to current limitation, we will skip retrieving "
                        "subscriptions from the external tenant '%s'",
                        tenant_id,
                    )
                    continue
                if is_mfa_required_error(err):
                    logger.warning(
                        "Tenant '%s' requires multi-factor authentication and was "
                        "skipped. Log in again with '--tenant %s' to access its "
                        "subscriptions.",
                        tenant_id,
                        tenant_id,
                    )
                    continue
                raise
            user_id = cross_check_username(username, entry.user_id)
            tenants.append(
                TenantInfo(
                    tenant_id=tenant_id,
                    credential=self._credential(context, tenant_config, user_id),
                )
            )
        return tenants

    def _get_subscriptions_from_tenants(
        self, username: str, user_type: str, tenants: list[TenantInfo]
    ) -> list[SubscriptionRecord]:
        subscriptions: list[SubscriptionRecord] = []
        for tenant in tenants:
            found = self._directory.list_subscriptions(tenant.credential)
            logger.info("Found %d subscriptions in tenant '%s'", len(found), tenant.tenant_id)
            subscriptions.extend(
                replace(s, tenant_id=tenant.tenant_id, username=username, user_type=user_type)
                for s in found
            )
        return subscriptions
