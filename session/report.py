"""Session reporting for ping-testkit.

Contains:
- ConsoleObserver: Prints one line per reply, UNIX ping style
- StatisticsReport: Summary printed when a session finishes
"""

from dataclasses import dataclass

from common.report import Report, format_ms
from session.observer import Observer
from session.result import Packet, Statistics


def format_reply(packet: Packet) -> str:
    """Format a received packet as a ping reply line."""
    line = f"{packet.nbytes} bytes from {packet.ip_addr}: icmp_seq={packet.seq}"
    if packet.rtt is not None:
        line += f" time={format_ms(packet.rtt)} ms"
    if packet.ttl is not None:
        line += f" ttl={packet.ttl}"
    return line


@dataclass
class StatisticsReport(Report):
    """Summary of a finished session."""

    stats: Statistics

    def print(self) -> None:
        """Print the statistics summary."""
        s = self.stats
        ip = f" ({s.ip_addr})" if s.ip_addr is not None and str(s.ip_addr) != s.addr else ""
        print(f"\n--- {s.addr}{ip} ping statistics ---")
        print(
            f"{s.packets_sent} packets transmitted, {s.packets_recv} packets received, "
            f"{s.packet_loss:.1f}% packet loss"
        )

        # RTT line only if samples were recorded
        if s.rtts:
            print(
                f"round-trip min/avg/max/stddev = {format_ms(s.min_rtt)}/{format_ms(s.avg_rtt)}/"
                f"{format_ms(s.max_rtt)}/{format_ms(s.stddev_rtt)} ms"
            )

    def success(self) -> bool:
        """Return True if at least one reply was received."""
        return self.stats.packets_recv > 0


class ConsoleObserver(Observer):
    """Observer that prints replies and the final summary to stdout."""

    def __init__(self) -> None:
        self.stats: Statistics | None = None

    def on_receive(self, packet: Packet) -> None:
        print(format_reply(packet), flush=True)

    def on_finish(self, stats: Statistics) -> None:
        self.stats = stats
        StatisticsReport(stats).print()
