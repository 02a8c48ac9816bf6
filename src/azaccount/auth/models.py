from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class UserCodeResponse:
    """Device-code instructions returned when starting an interactive login."""

    message: str
    user_code: str | None = None
    device_code: str | None = None
    verification_uri: str | None = None
    expires_in: int | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)
