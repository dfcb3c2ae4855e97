"""Source address allow-list."""

import ipaddress
import logging
from typing import FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)


def normalize_ip(value: Optional[str]) -> Optional[str]:
    """Return the canonical text form of an IP address, or None if it isn't one.

    IPv4-mapped IPv6 addresses collapse to their IPv4 form, so a dual-stack
    listener reports "::ffff:10.0.0.1" as "10.0.0.1".
    """
    if not isinstance(value, str):
        return None
    try:
        addr = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped:
        addr = addr.ipv4_mapped
    return str(addr)


class AccessControl:
    """Immutable set of source IPs permitted to open a relay session."""

    def __init__(self, allowed_ips: Iterable[str]):
        normalized = set()
        for entry in allowed_ips:
            ip = normalize_ip(entry)
            if ip is None:
                raise ValueError(f"Invalid IP address in allow-list: {entry!r}")
            normalized.add(ip)
        self._allowed: FrozenSet[str] = frozenset(normalized)
        logger.debug(f"Allow-list loaded with {len(self._allowed)} addresses")

    @property
    def allowed_ips(self) -> FrozenSet[str]:
        return self._allowed

    def __len__(self) -> int:
        return len(self._allowed)

    def is_allowed(self, ip: Optional[str]) -> bool:
        """Check whether an IP may open a session. Never raises."""
        normalized = normalize_ip(ip)
        if normalized is None:
            return False
        return normalized in self._allowed
