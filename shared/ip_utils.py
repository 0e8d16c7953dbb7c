"""
Client origin resolution for FastAPI requests.

The resolved origin is used twice during verification: as input to the
origin classifier and as the dedup key of the verification record. An
origin that cannot be determined resolves to ``""``, which the classifier
treats as suspicious.
"""

from __future__ import annotations

import ipaddress
from typing import Iterable, Optional

from fastapi import Request

PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Client-IP",
)


ANY_PROXY = "*"


def peer_is_trusted(peer: str, trusted_proxies: Iterable[str]) -> bool:
    """True when *peer* is a proxy whose forwarding headers may be believed."""
    trusted = [entry.strip() for entry in trusted_proxies if entry.strip()]
    if ANY_PROXY in trusted:
        return True
    try:
        address = ipaddress.ip_address(peer)
    except ValueError:
        return False
    for entry in trusted:
        network = ipaddress.ip_network(entry, strict=False)
        if address.version == network.version and address in network:
            return True
    return False


def get_client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    Proxy headers are only read when the direct peer is listed in
    *trusted_proxies*; any client can set them, so an untrusted peer
    always resolves to its own socket address. From a trusted peer the
    headers are checked in priority order:

    1. ``CF-Connecting-IP`` — Cloudflare
    2. ``True-Client-IP`` — Akamai and others
    3. ``X-Forwarded-For`` — standard proxy header (first IP in list)
    4. ``X-Real-IP`` — nginx / other reverse proxies
    5. ``X-Client-IP`` — less common

    Args:
        request: The current FastAPI ``Request`` object.
        trusted_proxies: CIDR blocks of reverse proxies, or ``"*"`` for any peer.

    Returns:
        The resolved client IP string, or ``""`` if none can be found.
    """
    peer = normalize_ip(request.client.host) if request.client else ""
    if not peer_is_trusted(peer, trusted_proxies):
        return peer

    for header in PROXY_HEADERS:
        ip_value: Optional[str] = request.headers.get(header)
        if ip_value:
            client_ip = ip_value.split(",")[0].strip()
            if client_ip:
                return normalize_ip(client_ip)

    return peer


def normalize_ip(value: str) -> str:
    """Canonical text form of an address.

    IPv4-mapped IPv6 addresses (``::ffff:1.2.3.4``) collapse to their IPv4
    form so the same client always yields the same dedup key. Values that
    are not IP addresses are returned stripped but otherwise unchanged.
    """
    raw = value.strip()
    try:
        address = ipaddress.ip_address(raw)
    except ValueError:
        return raw
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return str(address.ipv4_mapped)
    return str(address)
