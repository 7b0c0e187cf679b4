"""Helpers turning oVirt resource hrefs into stable reference keys."""

import re
from typing import Any, Optional


# Older engines served the API under "/api"; stored reference keys keep that
# form, so the "/ovirt-engine" prefix newer engines add is stripped.
_LEGACY_PREFIX = re.compile(r"^/ovirt-engine/")


def to_reference_key(href: Any) -> Optional[str]:
    """Return the reference key for an API href, or None for empty input."""

    if not isinstance(href, str) or not href:
        return None
    return _LEGACY_PREFIX.sub("/", href, count=1)


def id_suffix(href: Any) -> Optional[str]:
    """Return the trailing path segment of an API href."""

    if not isinstance(href, str) or not href:
        return None
    segments = [segment for segment in href.split("/") if segment]
    if not segments:
        return None
    return segments[-1]


__all__ = ["to_reference_key", "id_suffix"]
