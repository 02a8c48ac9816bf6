"""Authentication helpers for Azure Active Directory logins.

Public API:
- MsalAuthenticationContext (token acquisition backed by msal)
- CachedTokenCredential (azure-core credential served from the token cache)
- AuthConfig, TenantAuthConfig, LoginKind (settings)
- CertificateCredential (service principal certificate)
- ARM_DEFAULT_SCOPE, authority_from_url(), scope_for_resource() (scope helpers)
"""

from .certificate import CertificateCredential
from .config import AuthConfig, LoginKind, TenantAuthConfig
from .context import MsalAuthenticationContext
from .credentials import CachedTokenCredential
from .scopes import ARM_DEFAULT_SCOPE, authority_from_url, scope_for_resource

__all__ = [
    "AuthConfig",
    "TenantAuthConfig",
    "LoginKind",
    "CertificateCredential",
    "MsalAuthenticationContext",
    "CachedTokenCredential",
    "ARM_DEFAULT_SCOPE",
    "authority_from_url",
    "scope_for_resource",
]
