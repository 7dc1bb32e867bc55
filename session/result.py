"""Session result types for ping-testkit.

Contains:
- SessionError: Raised when a session is misused (e.g. run twice)
- Packet: One sent or received echo, as reported to observers
- Statistics: Point-in-time summary of a session
"""

from dataclasses import dataclass, field

from common.protocol import IPAddress, PingError


class SessionError(PingError):
    """Raised when a session cannot be run in its current state."""

    pass


@dataclass
class Packet:
    """A sent or received echo packet.

    Attributes:
        ip_addr: Resolved address of the host being pinged.
        addr: Address string the session was created with.
        nbytes: Bytes in the ICMP message.
        seq: ICMP sequence number as carried on the wire.
        rtt: Round-trip time in seconds (received packets only).
        ttl: Remaining TTL/hop-limit, if the platform reports it
            (received packets only).
    """

    ip_addr: IPAddress
    addr: str
    nbytes: int
    seq: int
    rtt: float | None = None
    ttl: int | None = None


@dataclass
class Statistics:
    """Statistics of a running or finished session.

    Attributes:
        packets_sent: Echo requests sent.
        packets_recv: Accepted echo replies.
        packet_loss: Percentage of sent packets without a reply (0 if none sent).
        ip_addr: Resolved address of the host being pinged.
        addr: Address string the session was created with.
        rtts: Recorded round-trip times in seconds (empty if recording is off).
        min_rtt: Smallest recorded RTT, in seconds.
        max_rtt: Largest recorded RTT, in seconds.
        avg_rtt: Mean recorded RTT, in seconds.
        stddev_rtt: Population standard deviation of recorded RTTs, in seconds.
    """

    packets_sent: int
    packets_recv: int
    packet_loss: float
    ip_addr: IPAddress | None = None
    addr: str = ""
    rtts: list[float] = field(default_factory=list)
    min_rtt: float = 0.0
    max_rtt: float = 0.0
    avg_rtt: float = 0.0
    stddev_rtt: float = 0.0
