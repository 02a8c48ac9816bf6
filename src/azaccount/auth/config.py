from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .scopes import authority_from_url, build_authority_url

XPLAT_CLI_CLIENT_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"

# Authority validation is switched off for these hosts.
KNOWN_TEST_ENDPOINTS = (
    "https://login.windows-ppe.net",
    "https://sts.login.windows-int.net",
)


class LoginKind(str, Enum):
    """Supported login flows."""

    USER = "user"
    SERVICE_PRINCIPAL = "servicePrincipal"
    MFA_USER = "mfaUser"


@dataclass(frozen=True)
class TenantAuthConfig:
    """Connection details for authenticating against one tenant."""

    authority_host: str
    tenant_id: str
    resource_id: str
    client_id: str
    validate_authority: bool = True

    @property
    def authority(self) -> str:
        return build_authority_url(self.authority_host, self.tenant_id)


class AuthConfig(BaseSettings):
    """Cloud environment endpoints used when logging in.

    Values are read from the environment automatically. Every field accepts
    its own name plus the environment variable names noted below.

    Environment variables:
        - AZURE_ACTIVEDIRECTORY_ENDPOINT_URL (alias: AZURE_AUTHORITY_HOST)
        - AZURE_ACTIVEDIRECTORY_COMMON_TENANT_NAME
        - AZURE_ACTIVEDIRECTORY_RESOURCE_ID
        - AZURE_RESOURCEMANAGERENDPOINT_URL
        - AZURE_CLIENT_ID
        - AZURE_ACCESS_TOKEN_FILE
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        validation_alias=AliasChoices(
            "authority_host",
            "AZURE_ACTIVEDIRECTORY_ENDPOINT_URL",
            "AZURE_AUTHORITY_HOST",
        ),
    )
    common_tenant: str = Field(
        default="common",
        validation_alias=AliasChoices(
            "common_tenant", "AZURE_ACTIVEDIRECTORY_COMMON_TENANT_NAME"
        ),
    )
    resource_id: str = Field(
        default="https://management.core.windows.net/",
        validation_alias=AliasChoices(
            "resource_id", "AZURE_ACTIVEDIRECTORY_RESOURCE_ID"
        ),
    )
    resource_manager_url: str = Field(
        default="https://management.azure.com/",
        validation_alias=AliasChoices(
            "resource_manager_url", "AZURE_RESOURCEMANAGERENDPOINT_URL"
        ),
    )
    client_id: str = Field(
        default=XPLAT_CLI_CLIENT_ID,
        validation_alias=AliasChoices("client_id", "AZURE_CLIENT_ID"),
    )
    token_cache_path: Path = Field(
        default_factory=lambda: Path.home() / ".azure" / "accessTokens.json",
        validation_alias=AliasChoices("token_cache_path", "AZURE_ACCESS_TOKEN_FILE"),
    )

    @field_validator("authority_host")
    @classmethod
    def _normalize_authority_host(cls, v: str) -> str:
        """Require an absolute URL and drop any trailing slash."""
        authority_from_url(v)
        return v.rstrip("/")

    @field_validator("resource_manager_url")
    @classmethod
    def _ensure_absolute_url(cls, v: str) -> str:
        authority_from_url(v)
        return v

    @property
    def validate_authority(self) -> bool:
        """Whether msal should validate the authority host."""
        host = self.authority_host.lower()
        return not any(host == endpoint.lower() for endpoint in KNOWN_TEST_ENDPOINTS)

    def for_tenant(self, tenant_id: str | None = None) -> TenantAuthConfig:
        """Return the connection details for ``tenant_id`` (common if omitted)."""
        return TenantAuthConfig(
            authority_host=self.authority_host,
            tenant_id=tenant_id or self.common_tenant,
            resource_id=self.resource_id,
            client_id=self.client_id,
            validate_authority=self.validate_authority,
        )
