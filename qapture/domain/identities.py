from __future__ import annotations

from ..infrastructure.config import get_settings


def is_anonymized(identity: str | None, domain: str | None = None) -> bool:
    """
    Whether an identity is an anonymized placeholder.

    Regular identities look like ``first.last@<domain>``; anonymized and test
    identities use a local part without a dot (e.g. ``123456@<domain>``). Only
    addresses under the configured domain are considered.

    Example:
        >>> is_anonymized("123456@verbaneum.de", "verbaneum.de")
        True
        >>> is_anonymized("jane.doe@verbaneum.de", "verbaneum.de")
        False
        >>> is_anonymized("123456@other.tld", "verbaneum.de")
        False
    """
    if not identity or not isinstance(identity, str):
        return False
    domain = (domain or get_settings().reporting.anonymized_domain).lower()

    local, sep, host = identity.strip().rpartition("@")
    if not sep or not local:
        return False
    return host.lower() == domain and "." not in local
