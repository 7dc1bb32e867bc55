"""Request/reply correlation for ping-testkit.

The tracker is a per-session random value embedded in every request
payload. Unprivileged ICMP sockets may rewrite the identifier and can
deliver replies meant for other processes, so the tracker is what ties a
reply to this session.
"""

import logging
import random
from enum import Enum, auto

from common.connection import Session
from common.packet import EchoMessage, unpack_payload

logger = logging.getLogger(__name__)

MAX_TRACKER = (1 << 63) - 1
MAX_IDENTIFIER = 1 << 16


class MatchResult(Enum):
    """Result of correlating a decoded echo reply with a session."""

    ACCEPT = auto()  # Reply to one of our requests
    REJECT = auto()  # Foreign, truncated or mismatched reply


def new_tracker(rng: random.Random) -> int:
    """Choose a session tracker uniformly from the 63-bit space."""
    return rng.randrange(MAX_TRACKER)


def new_identifier(rng: random.Random) -> int:
    """Choose a 16-bit ICMP identifier."""
    return rng.randrange(MAX_IDENTIFIER)


def match(msg: EchoMessage, session: Session) -> MatchResult:
    """Decide whether a decoded echo reply belongs to the session.

    A reply is accepted only if its type is the echo reply of the session's
    family, its identifier matches (privileged sessions only), its payload
    holds the 16-byte prefix, and the embedded tracker is ours.

    Duplicate wire sequence numbers (after wraparound) need no tie-break:
    the RTT comes from the timestamp inside the reply itself.
    """
    if msg.msg_type != session.family.echo_reply:
        logger.debug(f"Rejecting ICMP type {msg.msg_type}")
        return MatchResult.REJECT

    # Datagram sockets let the kernel pick the identifier
    if session.privileged and msg.identifier != session.identifier:
        logger.debug(f"Rejecting reply with identifier {msg.identifier:#06x}")
        return MatchResult.REJECT

    prefix = unpack_payload(msg.payload)
    if prefix is None:
        logger.debug(f"Rejecting reply with {len(msg.payload)}-byte payload")
        return MatchResult.REJECT

    _, tracker = prefix
    if tracker != session.tracker:
        logger.debug(f"Rejecting reply with foreign tracker {tracker:016x}")
        return MatchResult.REJECT

    return MatchResult.ACCEPT
