"""Session state dataclasses for ping-testkit.

Contains:
- SessionState: Enum for the engine lifecycle
- Session: Identity and send-side counters of one ping run
"""

from dataclasses import dataclass
from enum import Enum

from common.protocol import Family, IPAddress


class SessionState(Enum):
    """Lifecycle of a ping session. Transitions only move forward."""

    IDLE = "idle"
    RESOLVING = "resolving"
    RUNNING = "running"
    DRAINING = "draining"
    FINISHED = "finished"


@dataclass
class Session:
    """Identity of a ping run.

    tracker and identifier are fixed for the lifetime of the session; the
    sequence counter is advanced only by the engine's send path.
    """

    address: IPAddress
    family: Family
    privileged: bool
    tracker: int  # 63-bit random value embedded in every payload
    identifier: int  # 16-bit ICMP identifier
    sequence: int = 0
