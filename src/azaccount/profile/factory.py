from __future__ import annotations

from azaccount.auth.config import AuthConfig, TenantAuthConfig
from azaccount.auth.context import MsalAuthenticationContext
from azaccount.auth.scopes import scope_for_resource
from azaccount.tokens.cache import TokenCache
from azaccount.tokens.file_store import FileTokenStore
from azaccount.tokens.interfaces import TokenStore

from .account import Account
from .directory import ArmDirectoryClient


def get_account(
    config: AuthConfig | None = None,
    *,
    token_store: TokenStore | None = None,
) -> Account:
    """Construct an :class:`Account` wired to msal and Azure Resource Manager.

    Args:
        config: Auth configuration. If ``None``, settings are read from the
            environment.
        token_store: Token storage. Defaults to a :class:`FileTokenStore`
            at ``config.token_cache_path``.

    Returns:
        An :class:`Account` whose tokens are kept in one shared cache.
    """
    cfg = config or AuthConfig()
    store = token_store or FileTokenStore(cfg.token_cache_path)
    cache = TokenCache(store, common_tenant=cfg.common_tenant)

    def context_factory(tenant_config: TenantAuthConfig) -> MsalAuthenticationContext:
        return MsalAuthenticationContext(tenant_config, cache)

    directory = ArmDirectoryClient(
        cfg.resource_manager_url,
        scope=scope_for_resource(cfg.resource_id),
    )
    return Account(cfg, context_factory, directory, cache)
