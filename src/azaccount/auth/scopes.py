import re
from typing import Final
from urllib.parse import urlparse, urlunparse

ARM_DEFAULT_SCOPE: Final[str] = "https://management.core.windows.net/.default"

_SINGLE_LABEL_USER = re.compile(r"^([^@]+@)([^.]+)$")


def authority_from_url(url: str) -> str:
    """Return the URL authority (scheme + host).

    Args:
        url: Absolute URL (e.g., "https://login.microsoftonline.com/common").

    Returns:
        The "<scheme>://<host>" portion of the URL.

    Raises:
        ValueError: If ``url`` is not absolute or lacks a host.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("url must be an absolute URL")
    return f"{parsed.scheme}://{parsed.netloc}"


def build_authority_url(authority_host: str, tenant_id: str) -> str:
    return f"{authority_host.rstrip('/')}/{tenant_id}"


def scope_for_resource(resource: str) -> str:
    """Translate a v1 resource id into a v2 ``/.default`` scope."""
    return f"{resource.rstrip('/')}/.default"


def retarget_authority(authority: str, tenant_id: str | None, common_tenant: str = "common") -> str:
    """Replace a ``/common`` tenant segment with ``/<tenant_id>``.

    Device-code logins start against the common tenant and only learn the
    real tenant from the token, so cached entries must point at it.
    Authorities that are not on the common tenant are returned unchanged.
    """
    if not tenant_id:
        return authority
    parsed = urlparse(authority)
    segments = parsed.path.split("/")
    if common_tenant not in segments:
        return authority
    segments = [tenant_id if s == common_tenant else s for s in segments]
    return urlunparse(parsed._replace(path="/".join(segments)))


def normalize_username(username: str) -> str:
    """Add the ``.onmicrosoft.com`` suffix to single label domains.

    ``bob@contoso`` becomes ``bob@contoso.onmicrosoft.com``; anything else is
    returned as given.
    """
    match = _SINGLE_LABEL_USER.match(username)
    if match:
        return f"{match.group(1)}{match.group(2)}.onmicrosoft.com"
    return username


def tenant_id_for_user(username: str) -> str:
    """Derive the tenant domain from a user principal name.

    Raises:
        ValueError: If ``username`` has no domain part.
    """
    _, sep, domain = username.rpartition("@")
    if not sep or not domain:
        raise ValueError(f"No tenant found in username {username}")
    if "." not in domain:
        domain = f"{domain}.onmicrosoft.com"
    return domain
