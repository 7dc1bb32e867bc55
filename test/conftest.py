"""pytest configuration and fixtures for ping-testkit tests.

Provides:
- LoopbackTransport: In-memory transport that answers echo requests like a host
- echo_reply: Turn an encoded echo request into the matching reply
- Fixtures for loopback addresses, transports and recording observers
- Markers for unit vs integration tests
"""

import ipaddress
import queue
import threading
import time
from collections.abc import Callable

import pytest

from common.packet import encode_echo, uint16_from_bytes
from common.protocol import ECHO_HEADER_SIZE, Family, IPAddress
from common.transport import ReceiveError, SendBufferFull, SendError
from session.engine import _Received
from session.observer import Observer
from session.result import Packet, Statistics

LOOPBACK_V4 = ipaddress.ip_address("127.0.0.1")
LOOPBACK_V6 = ipaddress.ip_address("::1")


def echo_reply(
    request: bytes,
    family: Family = Family.V4,
    identifier: int | None = None,
    payload: bytes | None = None,
) -> bytes:
    """Build the echo reply a host would send for request.

    identifier and payload override the echoed fields, to simulate a kernel
    that rewrites identifiers or a foreign process's traffic.
    """
    req_id = uint16_from_bytes(request[4:6])
    seq = uint16_from_bytes(request[6:8])
    return encode_echo(
        family.echo_reply,
        req_id if identifier is None else identifier,
        seq,
        request[ECHO_HEADER_SIZE:] if payload is None else payload,
        checksum=family is Family.V4,
    )


class LoopbackTransport:
    """In-memory Transport that answers each request like a remote host.

    Replies are queued by send() and handed out by receive(), which honors
    the deadline like a socket read timeout.

    Args:
        family: Address family of replies.
        reply: If False, never answer (100% loss).
        ttl: Hop count reported with each reply.
        responder: Optional function mapping a request to a list of reply
            datagrams, replacing the default single echo reply.
    """

    def __init__(
        self,
        family: Family = Family.V4,
        reply: bool = True,
        ttl: int | None = 64,
        responder: Callable[[bytes], list[bytes]] | None = None,
    ) -> None:
        self.family = family
        self.reply = reply
        self.ttl = ttl
        self.responder = responder
        self.sent: list[bytes] = []
        self.close_count = 0
        self._inbox: queue.Queue[tuple[bytes, int | None]] = queue.Queue()
        self._lock = threading.Lock()

    def send(self, data: bytes, address: IPAddress, /) -> int:
        with self._lock:
            self.sent.append(data)
        if self.reply:
            replies = self.responder(data) if self.responder else [echo_reply(data, self.family)]
            for r in replies:
                self._inbox.put((r, self.ttl))
        return len(data)

    def receive(self, deadline_s: float, /) -> tuple[bytes, int | None] | None:
        try:
            return self._inbox.get(timeout=deadline_s)
        except queue.Empty:
            return None

    def inject(self, data: bytes, ttl: int | None = None) -> None:
        """Inject a datagram as if received from the network."""
        self._inbox.put((data, ttl))

    def close(self) -> None:
        self.close_count += 1


class FlakySendTransport(LoopbackTransport):
    """LoopbackTransport whose first sends fail with the given errors."""

    def __init__(self, errors: list[SendError], **kwargs) -> None:
        super().__init__(**kwargs)
        self._errors = list(errors)
        self.attempts = 0

    def send(self, data: bytes, address: IPAddress, /) -> int:
        self.attempts += 1
        if self._errors:
            raise self._errors.pop(0)
        return super().send(data, address)


class BrokenReceiveTransport(LoopbackTransport):
    """LoopbackTransport whose receive fails after a short delay."""

    def __init__(self, after_s: float = 0.05, **kwargs) -> None:
        super().__init__(reply=False, **kwargs)
        self._event = threading.Event()
        self._after_s = after_s

    def receive(self, deadline_s: float, /) -> tuple[bytes, int | None] | None:
        self._event.wait(self._after_s)
        raise ReceiveError("Receive failed: [Errno 9] Bad file descriptor")


class AlwaysFullTransport(LoopbackTransport):
    """LoopbackTransport whose send buffer never drains."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.attempts = 0

    def send(self, data: bytes, address: IPAddress, /) -> int:
        self.attempts += 1
        raise SendBufferFull("Send buffer full: [Errno 105] No buffer space available")


class StopOnReplyTransport(LoopbackTransport):
    """LoopbackTransport that stops the session as each reply arrives.

    The reply is received after stop(), so it reaches the engine while the
    run is draining. With hand_off=True it is placed straight on the
    engine's hand-off queue, as a receiver racing the stop would.
    """

    def __init__(self, hand_off: bool = False, **kwargs) -> None:
        super().__init__(reply=False, **kwargs)
        self.hand_off = hand_off
        self.pinger = None
        self._requested = threading.Event()

    def send(self, data: bytes, address: IPAddress, /) -> int:
        n = super().send(data, address)
        self._requested.set()
        return n

    def receive(self, deadline_s: float, /) -> tuple[bytes, int | None] | None:
        if not self._requested.wait(deadline_s):
            return None
        reply = echo_reply(self.sent[-1], self.family)
        self.pinger.stop()
        if not self.hand_off:
            return reply, self.ttl
        self.pinger._queue.put(_Received(data=reply, ttl=self.ttl, received_ns=time.monotonic_ns()))
        return None


class RecordingObserver(Observer):
    """Observer that records every event for assertions."""

    def __init__(self) -> None:
        self.sent: list[Packet] = []
        self.received: list[Packet] = []
        self.finished: list[Statistics] = []
        self.errors: list[Exception] = []

    def on_send(self, packet: Packet) -> None:
        self.sent.append(packet)

    def on_receive(self, packet: Packet) -> None:
        self.received.append(packet)

    def on_finish(self, stats: Statistics) -> None:
        self.finished.append(stats)

    def on_error(self, error: Exception) -> None:
        self.errors.append(error)


def factory_for(transport: LoopbackTransport) -> Callable[[Family, bool, str | None], LoopbackTransport]:
    """Return a transport factory that always hands out transport."""

    def factory(_family: Family, _privileged: bool, _source: str | None) -> LoopbackTransport:
        return transport

    return factory


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (opens ICMP sockets)")


@pytest.fixture
def loopback() -> LoopbackTransport:
    """IPv4 loopback transport that answers every request."""
    return LoopbackTransport()


@pytest.fixture
def silent() -> LoopbackTransport:
    """IPv4 loopback transport that never answers."""
    return LoopbackTransport(reply=False)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
