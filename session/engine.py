"""Echo session engine for ping-testkit.

Contains:
- Pinger: Sends echo requests on a fixed interval, correlates replies and
  keeps running statistics until stopped, timed out, or count is reached

Two threads share a session:
- the scheduler (the thread calling run()) sends requests, enforces the
  timeout and count, and does all decoding, matching and statistics updates
- the receiver blocks on the transport with a short deadline and hands raw
  bytes to the scheduler over a bounded queue

A single threading.Event is the done signal for both. The scheduler joins
the receiver before taking the final snapshot, so no reply can be counted
after on_finish.
"""

import logging
import queue
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from common.config import PingConfig
from common.connection import Session, SessionState
from common.packet import MalformedPacketError, decode, encode_echo_request, unpack_payload
from common.protocol import (
    LOG_PROGRESS_INTERVAL,
    RECV_DEADLINE_S,
    RECV_QUEUE_SIZE,
    SEQUENCE_MODULO,
    TRACE,
    Family,
    IPAddress,
    PingError,
    Transport,
)
from common.resolver import resolve
from common.tracker import MatchResult, match, new_identifier, new_tracker
from common.transport import ReceiveError, SendBufferFull, SendError, open_transport
from session.observer import Observer
from session.result import Packet, SessionError, Statistics
from session.stats import StatsAggregator

logger = logging.getLogger(__name__)

Resolver = Callable[[str, str], IPAddress]
TransportFactory = Callable[[Family, bool, str | None], Transport]


@dataclass
class _Received:
    """Raw bytes handed from the receiver to the scheduler."""

    data: bytes
    ttl: int | None
    received_ns: int


class Pinger:
    """ICMP echo session against one host.

    A Pinger runs once: create a new one for each run.

    Args:
        addr: Host name or literal address.
        config: Run parameters (validated on construction).
        observer: Event callbacks; defaults to a no-op Observer.
        ip_addr: Pre-resolved address; skips resolution when given.
        seed: Seed for this session's random generator (tracker and
            identifier). None seeds from system entropy.
        resolver: Name resolution function.
        transport_factory: Opens the transport for (family, privileged, source).
        clock: Nanosecond clock used for send timestamps and RTT.
    """

    def __init__(
        self,
        addr: str,
        config: PingConfig | None = None,
        observer: Observer | None = None,
        ip_addr: IPAddress | None = None,
        seed: int | None = None,
        resolver: Resolver = resolve,
        transport_factory: TransportFactory = open_transport,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.addr = addr if addr else (str(ip_addr) if ip_addr else "")
        self.config = (config if config is not None else PingConfig()).validate()
        self.observer = observer if observer is not None else Observer()
        self._ip_addr = ip_addr
        self._resolver = resolver
        self._transport_factory = transport_factory
        self._clock = clock

        rng = random.Random(seed)
        self.tracker = new_tracker(rng)
        self.identifier = new_identifier(rng)

        self._state = SessionState.IDLE
        self._done = threading.Event()
        self._stats = StatsAggregator(record_rtts=self.config.record_rtts)
        self._queue: queue.Queue[_Received] = queue.Queue(maxsize=RECV_QUEUE_SIZE)
        self._session: Session | None = None
        self._transport: Transport | None = None
        self._recv_error: ReceiveError | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ip_addr(self) -> IPAddress | None:
        """Resolved address, or None before resolution."""
        return self._ip_addr

    @property
    def session(self) -> Session | None:
        """Session identity, available once the run has started."""
        return self._session

    def _set_state(self, state: SessionState) -> None:
        logger.debug(f"Session {self.addr}: {self._state.value} -> {state.value}")
        self._state = state

    def resolve(self) -> IPAddress:
        """Resolve the host address if not already known.

        Raises:
            ResolutionError: If the lookup fails.
        """
        if self._ip_addr is None:
            self._ip_addr = self._resolver(self.addr, self.config.network)
        return self._ip_addr

    def statistics(self) -> Statistics:
        """Return a statistics snapshot. Safe to call during or after a run."""
        return self._stats.snapshot(self._ip_addr, self.addr)

    def stop(self) -> None:
        """Ask the run to finish. Idempotent, callable from any thread."""
        if not self._done.is_set():
            logger.debug(f"Session {self.addr}: stop requested")
        self._done.set()

    def run(self) -> Statistics:
        """Run the session until stopped, timed out, or count replies arrive.

        Blocks until finished. A run with no replies still completes
        normally with 100% loss.

        Returns:
            The final statistics (also passed to Observer.on_finish).

        Raises:
            SessionError: If this Pinger has already run.
            ResolutionError: If the host cannot be resolved.
            OpenError: If the transport cannot be opened.
            ReceiveError: If the transport failed while receiving; raised
                after on_finish has been called.
        """
        if self._state is not SessionState.IDLE:
            raise SessionError(f"Session is {self._state.value}, create a new Pinger to run again")

        self._set_state(SessionState.RESOLVING)
        try:
            ip_addr = self.resolve()
            family = Family.of(ip_addr)
            transport = self._transport_factory(family, self.config.privileged, self.config.source)
        except PingError:
            self._done.set()
            self._set_state(SessionState.FINISHED)
            raise

        self._transport = transport
        self._session = Session(
            address=ip_addr,
            family=family,
            privileged=self.config.privileged,
            tracker=self.tracker,
            identifier=self.identifier,
        )

        try:
            stats = self._run_session()
        finally:
            transport.close()
            self._set_state(SessionState.FINISHED)

        if self._recv_error is not None:
            raise self._recv_error
        return stats

    def _run_session(self) -> Statistics:
        logger.info(
            f"Pinging {self.addr} ({self._ip_addr}) "
            f"(count={self.config.count}, interval={self.config.interval_s}s, "
            f"timeout={self.config.timeout_s}s, privileged={self.config.privileged})"
        )
        self._set_state(SessionState.RUNNING)
        receiver = threading.Thread(
            target=self._receive_loop, name=f"ping-recv-{self.addr}", daemon=True
        )
        receiver.start()
        try:
            self._schedule()
        finally:
            self._done.set()
            self._set_state(SessionState.DRAINING)
            receiver.join()

        stats = self.statistics()
        logger.info(
            f"Session {self.addr} complete ({stats.packets_sent} sent, "
            f"{stats.packets_recv} received, {stats.packet_loss:.1f}% loss)"
        )
        self.observer.on_finish(stats)
        return stats

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def _can_send(self) -> bool:
        return self.config.count == 0 or self._stats.sent < self.config.count

    def _count_reached(self) -> bool:
        return self.config.count > 0 and self._stats.received >= self.config.count

    def _schedule(self) -> None:
        """Send on the interval and process replies until done."""
        interval = self.config.interval_s
        start = time.monotonic()
        deadline = None if self.config.timeout_s is None else start + self.config.timeout_s
        next_send = start

        while not self._done.is_set():
            now = time.monotonic()
            if deadline is not None and now >= deadline:
                logger.debug(f"Session {self.addr}: timeout after {self.config.timeout_s}s")
                return

            if self._can_send() and now >= next_send:
                self._send(deadline)
                # Late ticks are dropped rather than sent in a burst
                next_send = max(next_send + interval, now)

            wait = RECV_DEADLINE_S
            if deadline is not None:
                wait = min(wait, deadline - now)
            if self._can_send():
                wait = min(wait, next_send - now)

            try:
                received = self._queue.get(timeout=max(wait, 0.0))
            except queue.Empty:
                continue

            self._handle_packet(received)
            if self._count_reached():
                logger.debug(f"Session {self.addr}: received {self.config.count} replies")
                return

    def _send(self, deadline: float | None = None) -> None:
        """Send one echo request. Send failures are reported, not raised.

        A full send buffer is retried until it drains, the session is
        stopped, or the deadline (monotonic seconds) passes.
        """
        assert self._session is not None and self._transport is not None
        session = self._session
        data = encode_echo_request(session, session.sequence, self.config.size, self._clock())
        seq = session.sequence % SEQUENCE_MODULO

        while True:
            if self._done.is_set() or (deadline is not None and time.monotonic() >= deadline):
                logger.debug(f"Send buffer still full, abandoning icmp_seq={seq}")
                return
            try:
                self._transport.send(data, session.address)
            except SendBufferFull:
                logger.log(TRACE, f"Send buffer full, retrying icmp_seq={seq}")
                continue
            except SendError as e:
                logger.warning(f"Send failed (icmp_seq={seq}): {e}")
                self.observer.on_error(e)
                return
            break

        self._stats.record_sent()
        session.sequence += 1
        logger.log(TRACE, f"Sent icmp_seq={seq} to {session.address} ({len(data)} bytes)")
        if self._stats.sent % LOG_PROGRESS_INTERVAL == 0:
            logger.debug(f"Session {self.addr}: progress {self._stats.sent} sent")

        self.observer.on_send(
            Packet(ip_addr=session.address, addr=self.addr, nbytes=len(data), seq=seq)
        )

    def _handle_packet(self, received: _Received) -> None:
        """Decode, correlate and record one received datagram."""
        assert self._session is not None
        session = self._session

        # No state changes once done is raised
        if self._done.is_set():
            return

        try:
            msg = decode(received.data, session.family)
        except MalformedPacketError as e:
            logger.warning(f"Discarding malformed packet: {e}")
            self.observer.on_error(e)
            return

        if msg is None:
            logger.log(TRACE, f"Ignoring non-reply ICMP type {received.data[0]}")
            return

        if match(msg, session) is not MatchResult.ACCEPT:
            return

        prefix = unpack_payload(msg.payload)
        assert prefix is not None
        sent_ns, _ = prefix
        rtt = (received.received_ns - sent_ns) / 1e9

        self._stats.record_received(rtt)
        logger.log(TRACE, f"Received icmp_seq={msg.sequence} (RTT={rtt * 1000:.3f}ms)")

        self.observer.on_receive(
            Packet(
                ip_addr=session.address,
                addr=self.addr,
                nbytes=len(received.data),
                seq=msg.sequence,
                rtt=rtt,
                ttl=received.ttl,
            )
        )

    # -------------------------------------------------------------------------
    # Receiver
    # -------------------------------------------------------------------------

    def _receive_loop(self) -> None:
        """Read from the transport until done. Runs on the receiver thread."""
        assert self._transport is not None
        transport = self._transport

        while not self._done.is_set():
            try:
                result = transport.receive(RECV_DEADLINE_S)
            except ReceiveError as e:
                logger.error(f"Session {self.addr}: {e}")
                self._recv_error = e
                self._done.set()
                return

            if result is None:
                continue

            data, ttl = result
            received = _Received(data=data, ttl=ttl, received_ns=self._clock())
            while not self._done.is_set():
                try:
                    self._queue.put(received, timeout=RECV_DEADLINE_S)
                    break
                except queue.Full:
                    continue

        logger.debug(f"Session {self.addr}: receiver stopped")
