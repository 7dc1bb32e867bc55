"""Protocol definitions for ping-testkit.

Contains:
- IcmpType enum for the echo message types of ICMP and ICMPv6
- Family enum for the address family of a session
- Transport Protocol for type checking
- Wire sizes and timing constants
- Logging configuration
"""

import ipaddress
import logging
import os
import socket
from enum import Enum, IntEnum
from typing import Protocol

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Progress logging interval (configurable via envvar)
LOG_PROGRESS_INTERVAL = int(os.environ.get("PING_LOG_INTERVAL", "100"))

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class PingError(Exception):
    """Base class for all ping-testkit errors."""

    pass


class IcmpType(IntEnum):
    """ICMP and ICMPv6 message types used by the echo exchange."""

    ECHO_REPLY = 0
    ECHO_REQUEST = 8
    ECHO_REQUEST_V6 = 128
    ECHO_REPLY_V6 = 129


class Family(Enum):
    """Address family of a ping session."""

    V4 = 4
    V6 = 6

    @classmethod
    def of(cls, addr: IPAddress) -> "Family":
        """Return the family of an IP address."""
        return cls.V4 if addr.version == 4 else cls.V6

    @property
    def af(self) -> socket.AddressFamily:
        return socket.AF_INET if self is Family.V4 else socket.AF_INET6

    @property
    def proto(self) -> int:
        """IP protocol number carried by sockets of this family."""
        return IPPROTO_ICMP if self is Family.V4 else IPPROTO_ICMPV6

    @property
    def echo_request(self) -> IcmpType:
        return IcmpType.ECHO_REQUEST if self is Family.V4 else IcmpType.ECHO_REQUEST_V6

    @property
    def echo_reply(self) -> IcmpType:
        return IcmpType.ECHO_REPLY if self is Family.V4 else IcmpType.ECHO_REPLY_V6


class Transport(Protocol):
    """Protocol for the datagram endpoint used by a ping session."""

    def send(self, data: bytes, address: IPAddress, /) -> int: ...
    def receive(self, deadline_s: float, /) -> tuple[bytes, int | None] | None: ...
    def close(self) -> None: ...


IPPROTO_ICMP = 1
IPPROTO_ICMPV6 = 58

# Echo header: type(1) code(1) checksum(2) identifier(2) sequence(2)
ICMP_HEADER_SIZE = 4
ECHO_HEADER_SIZE = 8

# Payload prefix: send timestamp (8) + session tracker (8)
TIMESTAMP_SIZE = 8
TRACKER_SIZE = 8
MIN_PAYLOAD_SIZE = TIMESTAMP_SIZE + TRACKER_SIZE
MAX_PAYLOAD_SIZE = 65507 - ECHO_HEADER_SIZE

# Filler byte used to pad the payload past the prefix
PAYLOAD_FILLER = 0x01

# Sequence numbers are 16 bits on the wire
SEQUENCE_MODULO = 1 << 16

# Receive buffer size (large enough for an IPv4 header and a default payload)
RECV_BUFFER_SIZE = 1500

# Default timing constants
DEFAULT_INTERVAL_S = 1.0  # Wait between sends
DEFAULT_TIMEOUT_S = 5.0  # Overall run duration
RECV_DEADLINE_S = 0.1  # Receiver read deadline, bounds cancellation latency
RECV_QUEUE_SIZE = 5  # Receiver -> scheduler hand-off capacity
