"""
Device / browser descriptor for verification records.

Uses ``ua_parser`` the same way click tracking does: family plus major
version for both the operating system and the browser.
"""

from __future__ import annotations

from typing import Any, Optional

from ua_parser import parse

UNKNOWN_DEVICE = "Unknown"


def _family_with_version(part: Optional[Any]) -> Optional[str]:
    if part is None or not part.family:
        return None
    if part.major:
        return f"{part.family} {part.major}"
    return part.family


def describe_device(user_agent: Optional[str]) -> str:
    """Return an ``"<os> <browser>"`` descriptor, e.g. ``"Windows 10 Chrome 120"``.

    Returns ``"Unknown"`` when the header is missing or nothing useful can
    be parsed out of it.
    """
    if not user_agent:
        return UNKNOWN_DEVICE

    ua = parse(user_agent)
    if ua is None:
        return UNKNOWN_DEVICE

    parts = [
        p
        for p in (_family_with_version(ua.os), _family_with_version(ua.user_agent))
        if p
    ]
    return " ".join(parts) if parts else UNKNOWN_DEVICE
