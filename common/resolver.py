"""Address resolution for ping-testkit."""

import ipaddress
import logging
import socket

from common.protocol import IPAddress, PingError

logger = logging.getLogger(__name__)

# Network selectors accepted by resolve()
NETWORKS = {
    "ip": socket.AF_UNSPEC,
    "ip4": socket.AF_INET,
    "ip6": socket.AF_INET6,
}


class ResolutionError(PingError):
    """Raised when a host name or address cannot be resolved."""

    pass


def resolve(name: str, network: str = "ip") -> IPAddress:
    """Resolve a host name or literal address.

    network selects the family: "ip4", "ip6", or "ip" for either, in which
    case an IPv4 result is preferred.

    Raises:
        ResolutionError: If name is empty, network is unknown, or the lookup fails.
    """
    if not name:
        raise ResolutionError("addr cannot be empty")
    if network not in NETWORKS:
        raise ResolutionError(f"Unknown network {network!r}, expected one of {sorted(NETWORKS)}")

    try:
        infos = socket.getaddrinfo(name, None, NETWORKS[network], socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"Cannot resolve {name}: {e}") from e

    # Strip any IPv6 zone suffix
    addrs = [ipaddress.ip_address(info[4][0].split("%")[0]) for info in infos]
    if not addrs:
        raise ResolutionError(f"No addresses found for {name}")

    addr = next((a for a in addrs if a.version == 4), addrs[0])
    logger.debug(f"Resolved {name} to {addr}")
    return addr
