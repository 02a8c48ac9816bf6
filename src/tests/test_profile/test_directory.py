from __future__ import annotations

import json
from typing import Any

import pytest
import requests
from azure.core.credentials import AccessToken

from azaccount.auth.errors import DirectoryError
from azaccount.profile import directory as directory_module
from azaccount.profile.directory import ArmDirectoryClient

BASE = "https://management.azure.com"


def _response(status: int, body: Any = None, headers: dict[str, str] | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body or {}).encode()
    response.headers.update(headers or {})
    response.url = BASE
    return response


class FakeSession:
    def __init__(self, responses: list[requests.Response]) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, dict[str, str], float]] = []

    def get(self, url: str, headers: dict[str, str], timeout: float) -> requests.Response:
        self.requests.append((url, headers, timeout))
        return self.responses.pop(0)


class StaticCredential:
    def __init__(self) -> None:
        self.scopes: list[tuple[str, ...]] = []

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        self.scopes.append(scopes)
        return AccessToken("arm-token", 0)


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(directory_module.time, "sleep", recorded.append)
    return recorded


def test_list_tenants__follows_next_link() -> None:
    session = FakeSession(
        [
            _response(200, {"value": [{"tenantId": "t1"}], "nextLink": f"{BASE}/tenants?page=2"}),
            _response(200, {"value": [{"tenantId": "t2"}, {"tenantId": "t3"}]}),
        ]
    )
    credential = StaticCredential()
    client = ArmDirectoryClient(f"{BASE}/", session=session, timeout=5)

    assert client.list_tenants(credential) == ["t1", "t2", "t3"]

    assert session.requests[0] == (
        f"{BASE}/tenants?api-version=2022-12-01",
        {"Authorization": "Bearer arm-token"},
        5,
    )
    assert session.requests[1][0] == f"{BASE}/tenants?page=2"
    assert credential.scopes == [("https://management.core.windows.net/.default",)]


def test_list_subscriptions__maps_records() -> None:
    item = {
        "subscriptionId": "s1",
        "displayName": "Prod",
        "tenantId": "t1",
        "state": "Enabled",
    }
    client = ArmDirectoryClient(BASE, session=FakeSession([_response(200, {"value": [item]})]))

    (record,) = client.list_subscriptions(StaticCredential())

    assert record.subscription_id == "s1"
    assert record.display_name == "Prod"
    assert record.tenant_id == "t1"
    assert record.state == "Enabled"
    assert record.extra == item


def test_list_subscriptions__missing_id_raises() -> None:
    client = ArmDirectoryClient(BASE, session=FakeSession([_response(200, {"value": [{"displayName": "x"}]})]))

    with pytest.raises(DirectoryError, match="without subscriptionId"):
        client.list_subscriptions(StaticCredential())


def test_list_tenants__missing_id_raises() -> None:
    client = ArmDirectoryClient(BASE, session=FakeSession([_response(200, {"value": [{}]})]))

    with pytest.raises(DirectoryError, match="without tenantId"):
        client.list_tenants(StaticCredential())


def test_fetch__retries_throttling(sleeps: list[float]) -> None:
    session = FakeSession(
        [
            _response(429, headers={"Retry-After": "2"}),
            _response(503),
            _response(200, {"value": [{"tenantId": "t1"}]}),
        ]
    )
    client = ArmDirectoryClient(BASE, session=session)

    assert client.list_tenants(StaticCredential()) == ["t1"]

    assert len(session.requests) == 3
    assert sleeps[0] == 2.0
    assert 2.0 <= sleeps[1] <= 2.5


def test_fetch__gives_up_after_max_retries(sleeps: list[float]) -> None:
    session = FakeSession([_response(504) for _ in range(directory_module.MAX_RETRIES)])
    client = ArmDirectoryClient(BASE, session=session)

    with pytest.raises(requests.HTTPError):
        client.list_tenants(StaticCredential())

    assert len(sleeps) == directory_module.MAX_RETRIES - 1


def test_fetch__client_errors_are_not_retried(sleeps: list[float]) -> None:
    session = FakeSession([_response(401)])
    client = ArmDirectoryClient(BASE, session=session)

    with pytest.raises(requests.HTTPError):
        client.list_subscriptions(StaticCredential())

    assert sleeps == []


def test_init__requires_absolute_url() -> None:
    with pytest.raises(ValueError, match="absolute URL"):
        ArmDirectoryClient("management.azure.com")
