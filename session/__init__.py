"""Session package for ping-testkit.

This package runs an echo session against one host:
- Periodic echo request scheduling with timeout and count limits
- Concurrent reply reception and correlation
- RTT (round-trip time) statistics
- Observer callbacks and console reporting
"""

from session.engine import Pinger
from session.observer import Observer
from session.report import ConsoleObserver, StatisticsReport
from session.result import Packet, SessionError, Statistics
from session.stats import StatsAggregator, compute_statistics

__all__ = [
    "ConsoleObserver",
    "Observer",
    "Packet",
    "Pinger",
    "SessionError",
    "Statistics",
    "StatisticsReport",
    "StatsAggregator",
    "compute_statistics",
]
