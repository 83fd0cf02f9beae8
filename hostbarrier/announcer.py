"""Flood-and-retry broadcaster of readiness datagrams."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from hostbarrier.config import BarrierConfig
from hostbarrier.errors import ResolutionError, SendError
from hostbarrier.messages import ReadinessMessage
from hostbarrier.metrics import BarrierMetrics
from hostbarrier.quorum import QuorumSet
from hostbarrier.transport import DatagramTransport, UDPTransport
from hostbarrier.types import PeerId


class Announcer:
    """Send ``<self_id> READY`` to every peer for a fixed number of rounds.

    Peers whose names do not resolve yet are skipped for the current round
    only; send failures are logged and the round carries on.  The announcer
    keeps sending after the local quorum is reached so that peers which start
    listening late still hear from this host, unless ``config.early_stop`` is
    set.
    """

    def __init__(
        self,
        peers: Iterable[PeerId],
        self_id: PeerId,
        config: BarrierConfig,
        transport: Optional[DatagramTransport] = None,
        metrics: Optional[BarrierMetrics] = None,
    ) -> None:
        self.peers = sorted(peers)
        self.self_id = self_id
        self.config = config
        self.transport = transport or UDPTransport(f"{self_id}-send")
        self.metrics = metrics or BarrierMetrics()
        self.logger = logging.getLogger(f"Announcer-{self_id}")
        self._payload = ReadinessMessage(self_id).encode()

    def open(self) -> None:
        """Create the sending channel; :class:`SocketError` is fatal."""
        self.transport.open()

    def run(
        self,
        cancel: Optional[threading.Event] = None,
        quorum: Optional[QuorumSet] = None,
    ) -> int:
        """Run the announce rounds and return how many completed.

        Args:
            cancel: Stops the loop at the next round boundary or during the
                inter-round wait when set.
            quorum: Consulted between rounds only when ``config.early_stop``
                is enabled.
        """
        cancel = cancel or threading.Event()
        self.open()
        rounds = 0
        try:
            for attempt in range(1, self.config.max_attempts + 1):
                if cancel.is_set():
                    self.logger.info("Announce cancelled before round %d", attempt)
                    break
                self._announce_round(attempt)
                rounds += 1
                self.metrics.record_round()
                if attempt == self.config.max_attempts:
                    break
                if self.config.early_stop and quorum is not None and quorum.is_satisfied:
                    self.logger.info("Quorum reached locally; stopping after round %d", attempt)
                    break
                # Wait before retrying to give peers time to start
                if cancel.wait(self.config.retry_interval):
                    self.logger.info("Announce cancelled after round %d", attempt)
                    break
        finally:
            self.transport.close()
        self.logger.debug("Announcer finished %d/%d rounds", rounds, self.config.max_attempts)
        return rounds

    def _announce_round(self, attempt: int) -> None:
        for peer in self.peers:
            try:
                address = self.transport.resolve(peer)
            except ResolutionError as exc:
                self.metrics.record_resolution_error()
                self.logger.warning("Round %d: %s; skipping", attempt, exc)
                continue
            try:
                self.transport.send_to(self._payload, (address, self.config.port))
            except SendError as exc:
                self.metrics.record_send(ok=False)
                self.logger.warning("Round %d: %s", attempt, exc)
                continue
            self.metrics.record_send()
            self.logger.debug("Round %d: sent READY to %s (%s:%d)", attempt, peer, address, self.config.port)


def announce(
    peers: Iterable[PeerId],
    self_id: PeerId,
    config: BarrierConfig,
    transport: Optional[DatagramTransport] = None,
) -> None:
    """Run every announce round to completion over a fresh UDP channel."""
    Announcer(peers, self_id, config, transport=transport).run()


__all__ = ["Announcer", "announce"]
