from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Mapping

# Python attribute -> on-disk field name.
WIRE_FIELD_NAMES: dict[str, str] = {
    "authority": "_authority",
    "client_id": "_clientId",
    "user_id": "userId",
    "tenant_id": "tenantId",
    "resource": "resource",
    "access_token": "accessToken",
    "refresh_token": "refreshToken",
    "expires_on": "expiresOn",
}

IDENTITY_FIELDS = ("authority", "client_id", "user_id", "resource")


def _parse_expires_on(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_expires_on(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CacheEntry:
    """A cached token issued by an authority for one user and resource."""

    authority: str | None = None
    client_id: str | None = None
    user_id: str | None = None
    tenant_id: str | None = None
    resource: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    expires_on: datetime | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def normalized(self) -> "CacheEntry":
        """Return a copy with ``user_id`` lower-cased."""
        if self.user_id and self.user_id != self.user_id.lower():
            return replace(self, user_id=self.user_id.lower())
        return self

    def comparable(self) -> tuple[Any, ...]:
        """Every field except ``expires_on``, for duplicate detection."""
        return (
            self.authority,
            self.client_id,
            self.user_id,
            self.tenant_id,
            self.resource,
            self.access_token,
            self.refresh_token,
            dict(self.extra),
        )

    def same_as(self, other: "CacheEntry") -> bool:
        """True if both entries are equal apart from ``expires_on``."""
        return self.comparable() == other.comparable()

    def identity(self) -> tuple[Any, ...]:
        return tuple(getattr(self, name) for name in IDENTITY_FIELDS)

    def matches(self, query: Mapping[str, Any]) -> bool:
        """True if every field in ``query`` equals the entry's value.

        Keys are attribute names; unknown keys are looked up in ``extra``.
        """
        for key, expected in query.items():
            if key in WIRE_FIELD_NAMES:
                actual = getattr(self, key)
            elif key in self.extra:
                actual = self.extra[key]
            else:
                return False
            if key == "expires_on":
                expected = _parse_expires_on(expected)
            if actual != expected:
                return False
        return True

    def is_expired(self, now: datetime | None = None, skew_seconds: int = 300) -> bool:
        if self.expires_on is None:
            return True
        now = now or datetime.now(timezone.utc)
        return (self.expires_on - now).total_seconds() <= skew_seconds

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk representation, opaque fields included."""
        data: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == "expires_on":
                value = _format_expires_on(value)
            data[WIRE_FIELD_NAMES[f.name]] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        by_wire = {wire: name for name, wire in WIRE_FIELD_NAMES.items()}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            name = by_wire.get(key)
            if name is None:
                extra[key] = value
            else:
                kwargs[name] = value
        kwargs["expires_on"] = _parse_expires_on(kwargs.get("expires_on"))
        return cls(**kwargs, extra=extra)
