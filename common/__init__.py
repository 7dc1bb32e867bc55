"""Common modules for ping-testkit.

This package contains the ICMP building blocks used by the session engine:
- protocol: IcmpType and Family enums, wire sizes, timing constants, Transport Protocol
- connection: SessionState enum, Session dataclass
- packet: Echo message encoding/decoding
- tracker: Session tracker/identifier generation and reply matching
- transport: ICMP socket transport
- resolver: Host name resolution
- config: PingConfig, environment overrides, YAML loading
- report: Reporting abstractions
"""

from common.config import ConfigError, PingConfig
from common.connection import Session, SessionState
from common.packet import EchoMessage, MalformedPacketError
from common.protocol import (
    DEFAULT_INTERVAL_S,
    DEFAULT_TIMEOUT_S,
    MIN_PAYLOAD_SIZE,
    RECV_DEADLINE_S,
    Family,
    IcmpType,
    PingError,
    Transport,
)
from common.resolver import ResolutionError
from common.tracker import MatchResult
from common.transport import OpenError, ReceiveError, SendBufferFull, SendError

__all__ = [
    # Protocol
    "Family",
    "IcmpType",
    "Transport",
    "MIN_PAYLOAD_SIZE",
    "DEFAULT_INTERVAL_S",
    "DEFAULT_TIMEOUT_S",
    "RECV_DEADLINE_S",
    # Session
    "Session",
    "SessionState",
    "EchoMessage",
    "MatchResult",
    "PingConfig",
    # Exceptions
    "PingError",
    "ConfigError",
    "MalformedPacketError",
    "OpenError",
    "ReceiveError",
    "ResolutionError",
    "SendBufferFull",
    "SendError",
]
