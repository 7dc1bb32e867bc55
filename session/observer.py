"""Observer interface for ping sessions.

Observers are called synchronously on the engine's scheduler thread, so a
slow callback delays the next send. Override only the events of interest.
"""

from session.result import Packet, Statistics


class Observer:
    """Receives session events. All methods default to no-ops."""

    def on_send(self, packet: Packet) -> None:
        """Called after each echo request is sent."""
        pass

    def on_receive(self, packet: Packet) -> None:
        """Called for each accepted echo reply."""
        pass

    def on_finish(self, stats: Statistics) -> None:
        """Called exactly once, with the final statistics."""
        pass

    def on_error(self, error: Exception) -> None:
        """Called for non-fatal per-packet errors (send failures, malformed replies)."""
        pass
