"""ICMP echo message encoding/decoding.

Echo messages follow RFC 792 (ICMP) and RFC 4443 (ICMPv6):
  [1-byte type][1-byte code][2-byte checksum][2-byte identifier][2-byte sequence][payload]

Request payloads start with a fixed 16-byte prefix, followed by filler:
  [8-byte send timestamp (ns)][8-byte session tracker][0x01 ...]

All integers are big-endian (network byte order). The IPv4 checksum is the
RFC 1071 internet checksum over the whole message. The ICMPv6 checksum
covers a pseudo-header the sender cannot see, so it is left zero and filled
in by the kernel.
"""

from dataclasses import dataclass
from typing import Literal

from common.connection import Session
from common.protocol import (
    ECHO_HEADER_SIZE,
    ICMP_HEADER_SIZE,
    MIN_PAYLOAD_SIZE,
    PAYLOAD_FILLER,
    SEQUENCE_MODULO,
    TIMESTAMP_SIZE,
    TRACKER_SIZE,
    Family,
    PingError,
)

BYTE_ORDER: Literal["little", "big"] = "big"

# Minimum IPv4 header length (IHL=5)
IPV4_MIN_HEADER_SIZE = 20
IPV4_TTL_OFFSET = 8


class MalformedPacketError(PingError):
    """Raised when received bytes cannot be parsed as an ICMP message."""

    pass


@dataclass
class EchoMessage:
    """A decoded ICMP echo message."""

    msg_type: int
    code: int
    identifier: int
    sequence: int
    payload: bytes


def uint16_to_bytes(value: int) -> bytes:
    """Encode unsigned 16-bit int as big-endian bytes."""
    return value.to_bytes(2, BYTE_ORDER, signed=False)


def uint16_from_bytes(data: bytes) -> int:
    """Decode big-endian bytes to unsigned 16-bit int."""
    return int.from_bytes(data, BYTE_ORDER, signed=False)


def uint64_to_bytes(value: int) -> bytes:
    """Encode unsigned 64-bit int as big-endian bytes."""
    return value.to_bytes(8, BYTE_ORDER, signed=False)


def uint64_from_bytes(data: bytes) -> int:
    """Decode big-endian bytes to unsigned 64-bit int."""
    return int.from_bytes(data, BYTE_ORDER, signed=False)


def pack_payload(now_ns: int, tracker: int, size: int) -> bytes:
    """Build a request payload: timestamp, tracker, then filler up to size."""
    prefix = uint64_to_bytes(now_ns) + uint64_to_bytes(tracker)
    return prefix + bytes([PAYLOAD_FILLER]) * max(0, size - MIN_PAYLOAD_SIZE)


def unpack_payload(payload: bytes) -> tuple[int, int] | None:
    """Extract (timestamp_ns, tracker) from a payload, or None if too short."""
    if len(payload) < MIN_PAYLOAD_SIZE:
        return None
    timestamp_ns = uint64_from_bytes(payload[:TIMESTAMP_SIZE])
    tracker = uint64_from_bytes(payload[TIMESTAMP_SIZE : TIMESTAMP_SIZE + TRACKER_SIZE])
    return timestamp_ns, tracker


def internet_checksum(data: bytes) -> int:
    """Compute the RFC 1071 ones' complement checksum of data."""
    if len(data) % 2:
        data += b"\x00"
    total = 0
    for i in range(0, len(data), 2):
        total += (data[i] << 8) | data[i + 1]
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def encode_echo(
    msg_type: int,
    identifier: int,
    sequence: int,
    payload: bytes,
    checksum: bool = True,
) -> bytes:
    """Encode an echo message of the given type, optionally checksummed."""
    msg = (
        bytes([msg_type, 0])
        + b"\x00\x00"
        + uint16_to_bytes(identifier & 0xFFFF)
        + uint16_to_bytes(sequence % SEQUENCE_MODULO)
        + payload
    )
    if not checksum:
        return msg
    return msg[:2] + uint16_to_bytes(internet_checksum(msg)) + msg[4:]


def encode_echo_request(session: Session, sequence: int, size: int, now_ns: int) -> bytes:
    """Encode an echo request for a session.

    Args:
        session: Supplies family, identifier and tracker.
        sequence: Session sequence counter, truncated to 16 bits on the wire.
        size: Total payload size; padded with filler past the 16-byte prefix.
            Callers validate size >= 16 (see PingConfig.validate).
        now_ns: Send timestamp in nanoseconds.

    Returns:
        The encoded ICMP message, without any IP header.
    """
    payload = pack_payload(now_ns, session.tracker, size)
    return encode_echo(
        session.family.echo_request,
        session.identifier,
        sequence,
        payload,
        checksum=session.family is Family.V4,
    )


def strip_ipv4_header(data: bytes) -> tuple[bytes, int]:
    """Remove the IPv4 header that raw sockets deliver with each datagram.

    Returns (icmp_bytes, ttl).

    Raises:
        MalformedPacketError: If the datagram is shorter than its header.
    """
    if len(data) < IPV4_MIN_HEADER_SIZE:
        raise MalformedPacketError(f"IPv4 datagram too short: {len(data)} bytes")
    header_len = (data[0] & 0x0F) * 4
    if header_len < IPV4_MIN_HEADER_SIZE or len(data) < header_len:
        raise MalformedPacketError(f"Invalid IPv4 header length: {header_len}")
    return data[header_len:], data[IPV4_TTL_OFFSET]


def decode(data: bytes, family: Family) -> EchoMessage | None:
    """Decode an ICMP message received on a socket of the given family.

    Returns the EchoMessage for echo replies of the family, or None for any
    other well-formed ICMP message (destination unreachable, our own echo
    requests looped back, etc.), which the caller should ignore.

    Raises:
        MalformedPacketError: If data is too short for an ICMP header, or an
            echo reply is too short for its identifier and sequence.
    """
    if len(data) < ICMP_HEADER_SIZE:
        raise MalformedPacketError(
            f"ICMP message too short: {len(data)} bytes, need at least {ICMP_HEADER_SIZE}"
        )

    msg_type, code = data[0], data[1]
    if msg_type != family.echo_reply:
        return None

    if len(data) < ECHO_HEADER_SIZE:
        raise MalformedPacketError(
            f"Echo reply too short: {len(data)} bytes, need at least {ECHO_HEADER_SIZE}"
        )

    return EchoMessage(
        msg_type=msg_type,
        code=code,
        identifier=uint16_from_bytes(data[4:6]),
        sequence=uint16_from_bytes(data[6:8]),
        payload=data[ECHO_HEADER_SIZE:],
    )
