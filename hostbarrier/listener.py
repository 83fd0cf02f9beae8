"""Receive loop that accumulates readiness announcements into a quorum."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from hostbarrier.config import BarrierConfig
from hostbarrier.errors import ReceiveError
from hostbarrier.messages import ReadinessMessage
from hostbarrier.metrics import BarrierMetrics
from hostbarrier.quorum import QuorumSet
from hostbarrier.transport import DatagramTransport, UDPTransport

# Back-off after a failed receive so a broken socket does not spin the loop
RECEIVE_ERROR_BACKOFF = 0.1


class Listener:
    """Bind the barrier port and collect distinct ready peers.

    The receive endpoint is bound synchronously by :meth:`bind` so that a bind
    failure surfaces on the caller's thread; the loop itself usually runs on a
    worker thread started with :meth:`start`.
    """

    def __init__(
        self,
        quorum: QuorumSet,
        config: BarrierConfig,
        transport: Optional[DatagramTransport] = None,
        metrics: Optional[BarrierMetrics] = None,
        name: str = "local",
    ) -> None:
        self.quorum = quorum
        self.config = config
        self.transport = transport or UDPTransport(f"{name}-recv")
        self.metrics = metrics or BarrierMetrics()
        self.logger = logging.getLogger(f"Listener-{name}")
        self.bound_port: Optional[int] = None
        self.satisfied = False
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def bind(self) -> int:
        """Bind the receive endpoint; :class:`SocketError` is fatal."""
        if self.bound_port is None:
            self.bound_port = self.transport.bind(self.config.bind_address, self.config.port)
            self.logger.info(
                "Listening on %s:%d for %d peers",
                self.config.bind_address, self.bound_port, self.quorum.expected_size,
            )
        return self.bound_port

    def start(self, cancel: Optional[threading.Event] = None) -> threading.Thread:
        """Bind if needed and run :meth:`listen` on a daemon thread.

        An exception escaping the loop is stored in :attr:`error`.
        """
        self.bind()
        self._thread = threading.Thread(
            target=self._run, args=(cancel,), name=self.logger.name, daemon=True
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the listening thread; returns whether it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def close(self) -> None:
        self.transport.close()

    def _run(self, cancel: Optional[threading.Event]) -> None:
        try:
            self.listen(cancel)
        except Exception as exc:  # re-raised by the owner after join()
            self.error = exc
            self.logger.exception("Listener stopped unexpectedly: %s", exc)

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    def listen(self, cancel: Optional[threading.Event] = None) -> bool:
        """Receive until every expected peer is ready.

        Without *cancel* the loop waits forever for missing peers.  With it,
        receives are sliced by ``receive_poll_interval_ms`` and the loop exits
        once the event is set.

        Returns:
            True when the quorum was reached, False when cancelled.
        """
        self.bind()
        timeout = self.config.receive_poll_interval if cancel is not None else None
        try:
            while not self.quorum.is_satisfied:
                if cancel is not None and cancel.is_set():
                    self.logger.info("Listening cancelled with %r", self.quorum)
                    return False
                try:
                    received = self.transport.receive(self.config.buffer_size, timeout)
                except ReceiveError as exc:
                    self.metrics.record_receive_error()
                    self.logger.error("Failed to receive message: %s", exc)
                    if cancel is not None:
                        cancel.wait(RECEIVE_ERROR_BACKOFF)
                    else:
                        time.sleep(RECEIVE_ERROR_BACKOFF)
                    continue
                if received is None:
                    continue
                payload, sender_addr = received
                self._handle_datagram(payload, sender_addr)
        finally:
            self.close()
        self.satisfied = True
        self.metrics.record_quorum()
        self.logger.info("All %d peers ready", self.quorum.expected_size)
        return True

    def _handle_datagram(self, payload: bytes, sender_addr) -> None:
        self.metrics.record_datagram()
        message = ReadinessMessage.decode(payload)
        if message is None:
            self.metrics.record_malformed()
            self.logger.debug("Discarding malformed datagram from %s:%d: %r", sender_addr[0], sender_addr[1], payload[:64])
            return
        if not self.quorum.is_known(message.sender):
            self.metrics.record_unknown_sender()
            self.logger.debug("Ignoring READY from unlisted host %r (%s)", message.sender, sender_addr[0])
            return
        if self.quorum.add(message.sender):
            self.logger.info(
                "%s ready (%d/%d) from %s", message.sender, len(self.quorum),
                self.quorum.expected_size, sender_addr[0],
            )
        else:
            self.metrics.record_duplicate()
            self.logger.debug("Duplicate READY from %s", message.sender)


def listen_for_quorum(
    quorum: QuorumSet,
    config: BarrierConfig,
    transport: Optional[DatagramTransport] = None,
) -> None:
    """Block until ``len(quorum) == quorum.expected_size``."""
    Listener(quorum, config, transport=transport).listen()


__all__ = ["Listener", "listen_for_quorum"]
