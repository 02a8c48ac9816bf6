"""Error types raised while logging in, and AAD error-code classification.

Azure AD reports failures as ``AADSTSnnnnn`` markers inside the error
description and, depending on the endpoint, as a JSON ``error_codes`` list.
The helpers here pull those codes out of any exception so the login flow
can decide whether to skip a tenant, ask for MFA, or give up.
"""

from __future__ import annotations

import re
from typing import Iterable

MFA_ENABLED_FIELD = "mfa_enabled"

# User is not a member of the directory, or the directory is unavailable.
TENANT_MEMBERSHIP_ERROR_CODES = frozenset({50034, 50000})

MFA_REQUIRED_ERROR_CODES = frozenset({50072, 50074, 50076, 50077, 50078, 50079})

UNSUPPORTED_ACCOUNT_TYPE_PATTERNS = (
    re.compile(r"Server returned an unknown AccountType", re.IGNORECASE),
    re.compile(
        r"Server returned error in RSTR - ErrorCode: NONE : FaultMessage: NONE",
        re.IGNORECASE,
    ),
)

_AADSTS_CODE = re.compile(r"AADSTS(\d+)")
_JSON_ERROR_CODES = re.compile(r'"error_codes"\s*:\s*\[([\d,\s]*)\]')


class AccountError(Exception):
    """Base class for login and token cache errors."""


class AuthenticationError(AccountError):
    """Authentication against a tenant failed.

    Attributes:
        message: Error description reported by the identity provider.
        error_codes: AAD error codes attached to the failure, if any.
        error: Short provider error name (e.g. ``invalid_grant``).
    """

    mfa_enabled: bool = False

    def __init__(
        self,
        message: str,
        *,
        error_codes: Iterable[int] = (),
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_codes = tuple(error_codes)
        self.error = error


class MFAEnabledError(AuthenticationError):
    """The account needs multi-factor authentication.

    Retry the login with :attr:`LoginKind.MFA_USER`.
    """

    mfa_enabled = True


class UnsupportedAccountTypeError(AuthenticationError):
    """The account type cannot log in with a username and password."""

    mfa_enabled = True


class IdentityMismatchError(AccountError):
    """The token was issued to a different user than the one requested."""

    def __init__(self, requested_username: str, token_user_id: str | None) -> None:
        super().__init__(
            f"The userId of '{token_user_id}' in access token doesn't match "
            f"the command line username of '{requested_username}'"
        )
        self.requested_username = requested_username
        self.token_user_id = token_user_id


class DirectoryError(AccountError):
    """The directory service returned a response that could not be used."""


def aad_error_codes(error: BaseException) -> frozenset[int]:
    """Collect every AAD error code carried by ``error``."""
    codes = set(getattr(error, "error_codes", None) or ())
    message = str(error)
    codes.update(int(c) for c in _AADSTS_CODE.findall(message))
    for group in _JSON_ERROR_CODES.findall(message):
        codes.update(int(c) for c in re.findall(r"\d+", group))
    return frozenset(codes)


def is_tenant_membership_error(error: BaseException) -> bool:
    return bool(aad_error_codes(error) & TENANT_MEMBERSHIP_ERROR_CODES)


def is_mfa_required_error(error: BaseException) -> bool:
    return bool(aad_error_codes(error) & MFA_REQUIRED_ERROR_CODES)


def is_unsupported_account_type_error(error: BaseException) -> bool:
    message = str(error)
    return any(p.search(message) for p in UNSUPPORTED_ACCOUNT_TYPE_PATTERNS)


def to_mfa_enabled_error(error: BaseException) -> MFAEnabledError:
    return MFAEnabledError(
        str(error),
        error_codes=sorted(aad_error_codes(error)),
        error=getattr(error, "error", None),
    )


def to_unsupported_account_type_error(
    error: BaseException,
) -> UnsupportedAccountTypeError:
    return UnsupportedAccountTypeError(
        "This account type cannot log in with a username and password. "
        "Use an organizational (work or school) account, log in with "
        "multi-factor authentication, or create a service principal and "
        "log in with it instead. "
        f"Original error: {error}",
        error_codes=sorted(aad_error_codes(error)),
        error=getattr(error, "error", None),
    )
