"""ICMP socket transport for ping-testkit.

Contains:
- open_transport: Open a raw (privileged) or datagram (unprivileged) ICMP socket
- IcmpTransport: Byte-in/byte-out channel with deadline-based receive
- delivers_ip_header: Whether received IPv4 datagrams carry the IP header
- OpenError, SendError, SendBufferFull, ReceiveError
"""

import errno
import logging
import socket
import sys

from common.packet import MalformedPacketError, strip_ipv4_header
from common.protocol import RECV_BUFFER_SIZE, Family, IPAddress, PingError

logger = logging.getLogger(__name__)

# Hop-count arrives as one native int in a control message
_HOPS_SIZE = 4


class OpenError(PingError):
    """Raised when the ICMP socket cannot be opened or configured."""

    pass


class SendError(PingError):
    """Raised when a datagram cannot be sent."""

    pass


class SendBufferFull(SendError):
    """Raised when the kernel send buffer is exhausted (ENOBUFS)."""

    pass


class ReceiveError(PingError):
    """Raised on a non-timeout receive failure (socket closed, etc.)."""

    pass


def delivers_ip_header(family: Family, privileged: bool, platform: str = sys.platform) -> bool:
    """Return True if received IPv4 datagrams start with the IP header.

    Raw sockets always include it. macOS also includes it on unprivileged
    datagram sockets, while Linux strips it.
    """
    if family is not Family.V4:
        return False
    return privileged or platform == "darwin"


def _enable_hop_count(sock: socket.socket, family: Family, privileged: bool) -> None:
    """Ask the kernel to report TTL/hop-limit with each received packet."""
    if family is Family.V6:
        opt = getattr(socket, "IPV6_RECVHOPLIMIT", None)
        if opt is not None:
            sock.setsockopt(socket.IPPROTO_IPV6, opt, 1)
        return

    # The IP header, when delivered, carries the TTL
    if delivers_ip_header(family, privileged):
        return
    opt = getattr(socket, "IP_RECVTTL", None)
    if opt is not None:
        sock.setsockopt(socket.IPPROTO_IP, opt, 1)
    else:
        logger.debug("IP_RECVTTL not available, TTL will not be reported")


def _hop_count(ancdata: list[tuple[int, int, bytes]]) -> int | None:
    """Extract TTL/hop-limit from recvmsg() ancillary data."""
    for level, cmsg_type, data in ancdata:
        is_ttl = level == socket.IPPROTO_IP and cmsg_type == socket.IP_TTL
        is_hoplimit = level == socket.IPPROTO_IPV6 and cmsg_type == getattr(
            socket, "IPV6_HOPLIMIT", -1
        )
        if (is_ttl or is_hoplimit) and len(data) >= _HOPS_SIZE:
            return int.from_bytes(data[:_HOPS_SIZE], sys.byteorder)
    return None


class IcmpTransport:
    """ICMP socket owned by one ping session.

    Raw IPv4 sockets (and, on macOS, datagram IPv4 sockets too) receive the
    IP header in front of the ICMP message; it is removed here so callers
    always see bare ICMP bytes.

    Args:
        sock: Open ICMP socket, owned by the transport from here on.
        family: Address family of sock.
        privileged: True for a raw socket.
        strip_ip_header: Override header detection; None picks it from
            family, privileged and the platform.
    """

    def __init__(
        self,
        sock: socket.socket,
        family: Family,
        privileged: bool,
        strip_ip_header: bool | None = None,
    ) -> None:
        self._sock = sock
        self._family = family
        if strip_ip_header is None:
            strip_ip_header = delivers_ip_header(family, privileged)
        self._strip_header = strip_ip_header
        self._closed = False

    @property
    def family(self) -> Family:
        return self._family

    def send(self, data: bytes, address: IPAddress, /) -> int:
        """Send one ICMP message. Returns bytes written.

        Raises:
            SendBufferFull: If the kernel has no buffer space (retryable).
            SendError: On any other send failure.
        """
        try:
            return self._sock.sendto(data, (str(address), 0))
        except OSError as e:
            if e.errno == errno.ENOBUFS:
                raise SendBufferFull(f"Send buffer full: {e}") from e
            raise SendError(f"Failed to send to {address}: {e}") from e

    def receive(self, deadline_s: float, /) -> tuple[bytes, int | None] | None:
        """Receive one ICMP message, waiting at most deadline_s.

        Returns (icmp_bytes, hop_count) or None on timeout. hop_count is None
        when the platform does not report it.

        Raises:
            ReceiveError: On any non-timeout failure.
        """
        try:
            self._sock.settimeout(deadline_s)
            data, ancdata, _flags, _addr = self._sock.recvmsg(
                RECV_BUFFER_SIZE, socket.CMSG_SPACE(_HOPS_SIZE)
            )
        except TimeoutError:
            return None
        except OSError as e:
            raise ReceiveError(f"Receive failed: {e}") from e

        hops = _hop_count(ancdata)
        if self._strip_header:
            try:
                data, hops = strip_ipv4_header(data)
            except MalformedPacketError as e:
                logger.debug(f"Dropping datagram: {e}")
                return None
        return data, hops

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        logger.debug("Closed ICMP socket")


def open_transport(
    family: Family,
    privileged: bool,
    source: str | None = None,
) -> IcmpTransport:
    """Open and configure an ICMP socket.

    privileged=True opens a raw socket (needs root or CAP_NET_RAW);
    privileged=False opens an ICMP datagram socket, which on Linux requires
    the group to be in net.ipv4.ping_group_range.

    Raises:
        OpenError: If the socket cannot be opened, bound or configured.
    """
    sock_type = socket.SOCK_RAW if privileged else socket.SOCK_DGRAM
    mode = "raw" if privileged else "datagram"
    try:
        sock = socket.socket(family.af, sock_type, family.proto)
    except OSError as e:
        raise OpenError(f"Cannot open {mode} ICMP socket: {e}") from e

    try:
        if source:
            sock.bind((source, 0))
        _enable_hop_count(sock, family, privileged)
    except OSError as e:
        sock.close()
        raise OpenError(f"Cannot configure {mode} ICMP socket: {e}") from e

    logger.debug(f"Opened {mode} ICMP socket (family=IPv{family.value}, source={source})")
    return IcmpTransport(sock, family, privileged)
