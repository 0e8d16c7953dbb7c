"""
Network-origin classification — pure, side-effect-free.

An origin is *suspicious* when it falls inside a known hosting-provider or
VPN range, or when it cannot be determined at all. The ranges themselves
are data (``OriginRuleset``) loaded from settings, so swapping the ruleset
never touches the verification flow.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from shared.ip_utils import normalize_ip

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

_UNDETERMINED = {"", "unknown"}


class OriginVerdict(str, Enum):
    SUSPICIOUS = "suspicious"
    TRUSTED = "trusted"


@dataclass(frozen=True)
class OriginRuleset:
    """Textual prefixes and CIDR blocks that mark an origin as suspicious."""

    prefixes: tuple[str, ...] = ()
    networks: tuple[IPNetwork, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(
        cls, prefixes: Iterable[str], networks: Iterable[str] = ()
    ) -> "OriginRuleset":
        """Build a ruleset from settings values.

        Raises:
            ValueError: if a network entry is not valid CIDR notation.
        """
        return cls(
            prefixes=tuple(p.strip() for p in prefixes if p.strip()),
            networks=tuple(
                ipaddress.ip_network(n.strip(), strict=False)
                for n in networks
                if n.strip()
            ),
        )


class OriginClassifier:
    """Classify a request origin against an ``OriginRuleset``.

    Fails closed: empty, missing, ``"unknown"`` and unparseable origins are
    all suspicious.
    """

    def __init__(self, ruleset: OriginRuleset) -> None:
        self._ruleset = ruleset

    def classify(self, origin: Optional[str]) -> OriginVerdict:
        if origin is None or origin.strip().lower() in _UNDETERMINED:
            return OriginVerdict.SUSPICIOUS

        canonical = normalize_ip(origin)
        try:
            address = ipaddress.ip_address(canonical)
        except ValueError:
            return OriginVerdict.SUSPICIOUS

        if any(canonical.startswith(prefix) for prefix in self._ruleset.prefixes):
            return OriginVerdict.SUSPICIOUS
        if any(
            address.version == network.version and address in network
            for network in self._ruleset.networks
        ):
            return OriginVerdict.SUSPICIOUS
        return OriginVerdict.TRUSTED

    def is_suspicious(self, origin: Optional[str]) -> bool:
        return self.classify(origin) is OriginVerdict.SUSPICIOUS
