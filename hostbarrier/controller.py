"""Barrier controller composing resolver, listener and announcer.

State machine::

    INIT -> RESOLVING -> WAITING -> SATISFIED -> DONE
    INIT | RESOLVING | WAITING -> FAILED

The controller owns the :class:`QuorumSet`.  The listener runs on a worker
thread and is the only writer; the announcer runs on the calling thread.
Success is decided by the listener alone: the controller joins it after the
announcer has finished its rounds.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from hostbarrier.announcer import Announcer
from hostbarrier.config import BarrierConfig
from hostbarrier.errors import BarrierError, BarrierTimeoutError, ConfigError, SocketError
from hostbarrier.listener import Listener
from hostbarrier.metrics import BarrierMetrics
from hostbarrier.quorum import QuorumSet
from hostbarrier.resolver import MembershipSource, resolve_peers
from hostbarrier.transport import DatagramTransport, UDPTransport
from hostbarrier.types import BarrierResult, BarrierState, PeerId, PeerSet

TransportFactory = Callable[[str], DatagramTransport]

# Upper bound on waiting for the listener thread after an aborted run
LISTENER_JOIN_TIMEOUT = 5.0


class BarrierController:
    """Run one startup barrier for the local host."""

    def __init__(
        self,
        membership: MembershipSource,
        self_id: PeerId,
        config: Optional[BarrierConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        metrics: Optional[BarrierMetrics] = None,
    ) -> None:
        """Create the controller.

        Args:
            membership: Path of the hostfile, or its entries.
            self_id: Local identity, normally the system hostname.
            config: Barrier settings; defaults are read from the environment.
            transport_factory: Builds one transport per endpoint given a name.
                Defaults to :class:`UDPTransport`.
            metrics: Shared counters; a fresh collector is used when omitted.
        """
        self.membership = membership
        self.self_id = self_id
        self.config = config or BarrierConfig()
        self.transport_factory: TransportFactory = transport_factory or UDPTransport
        self.metrics = metrics or BarrierMetrics()
        self.logger = logging.getLogger(f"BarrierController-{self_id}")

        self.state = BarrierState.INIT
        self.peers: PeerSet = frozenset()
        self.quorum: Optional[QuorumSet] = None
        self._cancel = threading.Event()
        self._timed_out = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> BarrierResult:
        """Block until every peer has announced readiness.

        Raises:
            ConfigError: Membership source unreadable or invalid.
            EmptyPeerSetError: Nobody to rendezvous with.
            SocketError: The channel could not be created or bound.
            BarrierTimeoutError: ``overall_timeout_ms`` expired first.
            BarrierError: The run was cancelled with :meth:`cancel`.

        An unexpected exception that stopped the listener thread is re-raised
        here once the announcer has finished.
        """
        if self.state is not BarrierState.INIT:
            raise BarrierError("a barrier controller can only run once")
        started = time.monotonic()
        self.metrics.start()

        self._transition(BarrierState.RESOLVING)
        try:
            self.peers = resolve_peers(
                self.membership, self.self_id, strict=self.config.strict_membership
            )
        except ConfigError as exc:
            self._fail(exc)
            raise
        self.logger.info("Rendezvous with %d peers: %s", len(self.peers), ", ".join(sorted(self.peers)))

        quorum = QuorumSet(self.peers)
        self.quorum = quorum
        listener = Listener(
            quorum,
            self.config,
            transport=self.transport_factory(f"{self.self_id}-recv"),
            metrics=self.metrics,
            name=self.self_id,
        )
        announcer = Announcer(
            self.peers,
            self.self_id,
            self.config,
            transport=self.transport_factory(f"{self.self_id}-send"),
            metrics=self.metrics,
        )
        try:
            listener.bind()
            announcer.open()
        except SocketError as exc:
            listener.close()
            announcer.transport.close()
            self._fail(exc)
            raise

        self._transition(BarrierState.WAITING)
        timer = self._start_deadline()
        try:
            listener.start(self._cancel)
            announcer.run(self._cancel, quorum)
            listener.join()
        except BaseException as exc:
            self._cancel.set()
            if not listener.join(LISTENER_JOIN_TIMEOUT):
                self.logger.warning("Listener thread still running after %.1fs", LISTENER_JOIN_TIMEOUT)
            listener.close()
            announcer.transport.close()
            self._fail(exc)
            raise
        finally:
            if timer is not None:
                timer.cancel()

        if listener.error is not None:
            self._fail(listener.error)
            raise listener.error
        if not listener.satisfied:
            error: BarrierError
            if self._timed_out:
                error = BarrierTimeoutError(self.config.overall_timeout or 0.0, quorum.missing())
            else:
                error = BarrierError("barrier cancelled before all peers were ready")
            self._fail(error)
            raise error

        self._transition(BarrierState.SATISFIED)
        stats = self.metrics.get_stats()
        result = BarrierResult(
            state=BarrierState.DONE,
            self_id=self.self_id,
            peers=self.peers,
            ready=quorum.snapshot(),
            elapsed=time.monotonic() - started,
            stats=stats,
        )
        self._transition(BarrierState.DONE)
        self.logger.info("%s", result)
        self.logger.debug("Run stats: %s", stats)
        return result

    def cancel(self) -> None:
        """Stop a running barrier from another thread."""
        self._cancel.set()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _start_deadline(self) -> Optional[threading.Timer]:
        timeout = self.config.overall_timeout
        if timeout is None:
            return None
        timer = threading.Timer(timeout, self._expire)
        timer.daemon = True
        timer.start()
        return timer

    def _expire(self) -> None:
        self._timed_out = True
        self.logger.error("Deadline of %.3fs expired", self.config.overall_timeout)
        self._cancel.set()

    def _transition(self, state: BarrierState) -> None:
        self.logger.debug("%s -> %s", self.state.name, state.name)
        self.state = state

    def _fail(self, exc: BaseException) -> None:
        self.logger.error("Barrier failed in %s: %s", self.state.name, exc)
        self.state = BarrierState.FAILED


def run_barrier(
    membership: MembershipSource,
    self_id: PeerId,
    config: Optional[BarrierConfig] = None,
) -> BarrierResult:
    """Resolve, announce and wait with the default UDP transport."""
    return BarrierController(membership, self_id, config).run()


__all__ = ["BarrierController", "TransportFactory", "run_barrier"]
