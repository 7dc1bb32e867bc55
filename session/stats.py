"""Running statistics for a ping session."""

import math

from common.protocol import IPAddress
from session.result import Statistics


def compute_statistics(
    sent: int,
    received: int,
    rtts: list[float],
    ip_addr: IPAddress | None = None,
    addr: str = "",
) -> Statistics:
    """Compute a Statistics snapshot from counters and RTT samples (in seconds).

    Loss is 0 when nothing has been sent. RTT figures are 0 when no samples
    are recorded; the standard deviation uses the population formula.
    """
    # Work on a copy; the scheduler may append while a snapshot is taken
    rtts = list(rtts)
    loss = (sent - received) / sent * 100 if sent else 0.0

    stats = Statistics(
        packets_sent=sent,
        packets_recv=received,
        packet_loss=loss,
        ip_addr=ip_addr,
        addr=addr,
        rtts=rtts,
    )
    if not rtts:
        return stats

    lo = hi = rtts[0]
    total = 0.0
    for rtt in rtts:
        if rtt < lo:
            lo = rtt
        if rtt > hi:
            hi = rtt
        total += rtt

    avg = total / len(rtts)
    variance = sum((rtt - avg) ** 2 for rtt in rtts) / len(rtts)

    stats.min_rtt = lo
    stats.max_rtt = hi
    stats.avg_rtt = avg
    stats.stddev_rtt = math.sqrt(variance)
    return stats


class StatsAggregator:
    """Sent/received counters and RTT samples for one session.

    Written only from the engine's scheduler thread. record_rtts=False keeps
    counting but drops samples, bounding memory on long runs.
    """

    def __init__(self, record_rtts: bool = True) -> None:
        self.record_rtts = record_rtts
        self.sent = 0
        self.received = 0
        self._rtts: list[float] = []

    def record_sent(self) -> None:
        self.sent += 1

    def record_received(self, rtt: float) -> None:
        self.received += 1
        if self.record_rtts:
            self._rtts.append(rtt)

    @property
    def rtts(self) -> list[float]:
        return list(self._rtts)

    def snapshot(self, ip_addr: IPAddress | None = None, addr: str = "") -> Statistics:
        """Return the current statistics."""
        return compute_statistics(self.sent, self.received, self._rtts, ip_addr, addr)
