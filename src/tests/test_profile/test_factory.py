from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import msal
import pytest
import requests

from azaccount.auth.config import AuthConfig
from azaccount.profile import get_account


class FakePublicApp:
    def __init__(self, client_id: str, **kwargs: Any) -> None:
        self.authority = kwargs["authority"]

    def acquire_token_by_username_password(self, username, password, scopes):
        return {
            "access_token": f"arm-token-for-{self.authority.rsplit('/', 1)[-1]}",
            "refresh_token": "rt",
            "expires_in": 3600,
            "id_token_claims": {"preferred_username": username, "tid": "t1"},
        }


@pytest.fixture()
def arm_requests(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, str]]:
    seen: list[tuple[str, str]] = []

    def fake_get(self, url: str, headers: dict[str, str], timeout: float) -> requests.Response:
        seen.append((url, headers["Authorization"]))
        response = requests.Response()
        response.status_code = 200
        response._content = json.dumps(
            {"value": [{"subscriptionId": "s1", "displayName": "Prod", "state": "Enabled"}]}
        ).encode()
        return response

    monkeypatch.setattr(requests.Session, "get", fake_get)
    monkeypatch.setattr(msal, "PublicClientApplication", FakePublicApp)
    return seen


def test_get_account__end_to_end_with_file_cache(tmp_path: Path, arm_requests) -> None:
    cache_file = tmp_path / "accessTokens.json"
    account = get_account(AuthConfig(token_cache_path=cache_file))

    result = account.load("user@contoso.com", "pw", tenant="t1")

    assert [(s.subscription_id, s.tenant_id) for s in result.subscriptions] == [("s1", "t1")]
    assert arm_requests == [
        (
            "https://management.azure.com/subscriptions?api-version=2022-12-01",
            "Bearer arm-token-for-t1",
        )
    ]
    (stored,) = json.loads(cache_file.read_text())
    assert stored["_authority"] == "https://login.microsoftonline.com/t1"
    assert stored["userId"] == "user@contoso.com"
    assert stored["accessToken"] == "arm-token-for-t1"


def test_get_account__logout_clears_user(tmp_path: Path, arm_requests) -> None:
    cache_file = tmp_path / "accessTokens.json"
    account = get_account(AuthConfig(token_cache_path=cache_file))
    account.load("user@contoso.com", "pw", tenant="t1")

    assert account.logout("USER@contoso.com") == 1
    assert json.loads(cache_file.read_text()) == []


def test_get_account__reads_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, arm_requests
) -> None:
    cache_file = tmp_path / "env-tokens.json"
    monkeypatch.setenv("AZURE_ACCESS_TOKEN_FILE", str(cache_file))

    get_account().load("user@contoso.com", "pw", tenant="t1")

    assert cache_file.exists()
