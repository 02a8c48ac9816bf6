from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Sequence

import pytest

from azaccount.auth.config import AuthConfig, TenantAuthConfig
from azaccount.auth.errors import AuthenticationError
from azaccount.auth.models import UserCodeResponse
from azaccount.auth.scopes import scope_for_resource
from azaccount.profile.models import SubscriptionRecord
from azaccount.tokens.models import CacheEntry


@pytest.fixture(autouse=True)
def clear_azure_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove AZURE_* vars to prevent cross-test leakage.

    Yields:
        Iterator[None]: Context manager semantics for pytest.
    """
    to_clear = [k for k in os.environ.keys() if k.upper().startswith("AZURE_")]
    for k in to_clear:
        monkeypatch.delenv(k, raising=False)
    yield


class InMemoryTokenStore:
    """Token store recording every call, optionally failing on writes."""

    def __init__(self, entries: Sequence[CacheEntry] = (), *, secure: bool = False) -> None:
        self.entries = list(entries)
        self.is_secure_cache = secure
        self.calls: list[tuple[str, Any, Any]] = []
        self.load_count = 0
        self.fail_with: Exception | None = None

    def load_entries(self) -> list[CacheEntry]:
        self.load_count += 1
        return list(self.entries)

    def add_entries(self, new_entries, existing_entries) -> None:
        self.calls.append(("add", list(new_entries), list(existing_entries)))
        if self.fail_with is not None:
            raise self.fail_with
        self.entries = [*existing_entries, *new_entries]

    def remove_entries(self, entries_to_remove, entries_to_keep) -> None:
        self.calls.append(("remove", list(entries_to_remove), list(entries_to_keep)))
        if self.fail_with is not None:
            raise self.fail_with
        self.entries = list(entries_to_keep)

    def clear(self) -> None:
        self.calls.append(("clear", None, None))
        self.entries = []


@pytest.fixture()
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture()
def token_store_factory() -> type[InMemoryTokenStore]:
    """Store class for tests that need a fresh store per example."""
    return InMemoryTokenStore


@pytest.fixture()
def make_entry() -> Callable[..., CacheEntry]:
    """Factory for cache entries valid for one hour."""

    def _make(**overrides: Any) -> CacheEntry:
        values: dict[str, Any] = {
            "authority": "https://login.microsoftonline.com/common",
            "client_id": "cid",
            "user_id": "user@contoso.com",
            "tenant_id": "t1",
            "resource": "https://management.core.windows.net/",
            "access_token": "at",
            "refresh_token": "rt",
            "expires_on": datetime.now(timezone.utc) + timedelta(hours=1),
        }
        values.update(overrides)
        return CacheEntry(**values)

    return _make


@dataclass
class TenantScript:
    """How a fake tenant responds to logins.

    ``user_id`` is the identity in issued tokens; ``error`` is raised instead
    when set.
    """

    user_id: str | None = "user@contoso.com"
    error: Exception | None = None
    home_tenant: str | None = None


@dataclass
class FakeAuthWorld:
    """Scripted tenants shared by every fake context of one test."""

    tenants: dict[str, TenantScript] = field(default_factory=dict)
    calls: list[tuple[str, str, Any]] = field(default_factory=list)

    def script(self, tenant_id: str) -> TenantScript:
        return self.tenants.setdefault(tenant_id, TenantScript())


class FakeAuthContext:
    """Authentication context answering from a :class:`FakeAuthWorld`."""

    def __init__(self, tenant_config: TenantAuthConfig, world: FakeAuthWorld) -> None:
        self.tenant_config = tenant_config
        self.world = world

    @property
    def tenant_id(self) -> str:
        return self.tenant_config.tenant_id

    def _entry(self, client_id: str, user_id: str | None) -> CacheEntry:
        script = self.world.script(self.tenant_id)
        return CacheEntry(
            authority=self.tenant_config.authority,
            client_id=client_id,
            user_id=user_id,
            tenant_id=script.home_tenant or self.tenant_id,
            resource=self.tenant_config.resource_id,
            access_token=f"token-{self.tenant_id}",
            expires_on=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    def _login(self, kind: str, detail: Any) -> TenantScript:
        self.world.calls.append((kind, self.tenant_id, detail))
        script = self.world.script(self.tenant_id)
        if script.error is not None:
            raise script.error
        return script

    def acquire_token(self, resource, user_id, client_id) -> CacheEntry:
        return self._entry(client_id, user_id)

    def acquire_token_with_username_password(self, resource, username, password, client_id):
        script = self._login("password", username)
        return self._entry(client_id, script.user_id)

    def acquire_user_code(self, resource, client_id) -> UserCodeResponse:
        self.world.calls.append(("user_code", self.tenant_id, client_id))
        return UserCodeResponse(message="Open the page and enter ABC123", user_code="ABC123")

    def acquire_token_with_device_code(self, resource, client_id, user_code_response, user_id=None):
        script = self._login("device_code", user_id)
        return self._entry(client_id, script.user_id)

    def acquire_token_with_client_credentials(self, resource, client_id, secret):
        self._login("client_credentials", client_id)
        return self._entry(client_id, None)


@pytest.fixture()
def auth_world() -> FakeAuthWorld:
    return FakeAuthWorld()


@pytest.fixture()
def context_factory(auth_world: FakeAuthWorld) -> Callable[[TenantAuthConfig], FakeAuthContext]:
    return lambda tenant_config: FakeAuthContext(tenant_config, auth_world)


class FakeDirectoryClient:
    """Directory answering by the tenant encoded in the presented token."""

    def __init__(self) -> None:
        self.tenant_ids: list[str] = []
        self.subscriptions: dict[str, list[SubscriptionRecord]] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    @staticmethod
    def _tenant_of(credential) -> str:
        token = credential.get_token(scope_for_resource("https://management.core.windows.net/"))
        return token.token.removeprefix("token-")

    def list_tenants(self, credential) -> list[str]:
        self.calls.append(("tenants", self._tenant_of(credential)))
        return list(self.tenant_ids)

    def list_subscriptions(self, credential) -> list[SubscriptionRecord]:
        tenant_id = self._tenant_of(credential)
        self.calls.append(("subscriptions", tenant_id))
        if tenant_id in self.failures:
            raise self.failures[tenant_id]
        return list(self.subscriptions.get(tenant_id, []))


@pytest.fixture()
def directory() -> FakeDirectoryClient:
    return FakeDirectoryClient()


@pytest.fixture()
def auth_config() -> AuthConfig:
    return AuthConfig()


@pytest.fixture()
def aad_error() -> Callable[..., AuthenticationError]:
    def _make(code: int, message: str = "login failed") -> AuthenticationError:
        return AuthenticationError(f"AADSTS{code}: {message}", error_codes=[code])

    return _make
