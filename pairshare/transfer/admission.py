"""
Admission Filter

The sender only talks to the address it was told to expect. Matching is
done on the peer's IP alone; the source port is ignored. There is no
authentication beyond this, so a spoofed source address is admitted.
"""

import ipaddress
import logging
from typing import Tuple

logger = logging.getLogger(__name__)


def peer_host(peername: Tuple) -> str:
    """Host portion of a socket peer name, port stripped."""
    if not peername:
        return ''
    return str(peername[0])


def _parse(address: str):
    """Parse an IP, unwrapping IPv4-mapped IPv6 addresses. None if not an IP."""
    try:
        ip = ipaddress.ip_address(address.split('%', 1)[0])
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


class AdmissionFilter:
    """Accepts connections whose remote IP equals the expected address."""

    def __init__(self, expected_address: str):
        self.expected_address = expected_address.strip()
        self._expected_ip = _parse(self.expected_address)

    def matches(self, host: str) -> bool:
        """Compare a bare host string with the expected address."""
        if self._expected_ip is not None:
            ip = _parse(host)
            if ip is not None:
                return ip == self._expected_ip
        return host == self.expected_address

    def admits(self, peername: Tuple) -> bool:
        """Decide on a socket peer name such as ('10.0.0.5', 51234)."""
        host = peer_host(peername)
        admitted = self.matches(host)
        logger.debug(f"Admission check: {host} vs {self.expected_address} -> {admitted}")
        return admitted
