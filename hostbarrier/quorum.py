"""Quorum tracking for the barrier.

:class:`QuorumSet` is the only state shared between the listening thread and
the controller.  Insertion and the size check happen under one condition
variable so that waiters wake exactly once the last expected peer arrives.
"""

from __future__ import annotations

import threading
from typing import Iterable, Optional, Set

from hostbarrier.types import PeerId, PeerSet


class QuorumSet:
    """Monotonically growing set of peers that announced readiness.

    Only members of the expected peer set are admitted, so the size never
    exceeds :attr:`expected_size`.
    """

    def __init__(self, expected: Iterable[PeerId]) -> None:
        """Create an empty quorum set.

        Args:
            expected: Peers that must all be observed for the barrier to open.
        """
        self.expected: PeerSet = frozenset(expected)
        self._ready: Set[PeerId] = set()
        self._cond = threading.Condition()

    @property
    def expected_size(self) -> int:
        return len(self.expected)

    def add(self, peer: PeerId) -> bool:
        """Record *peer* as ready.

        Returns:
            True if *peer* was newly added, False for duplicates and for peers
            outside the expected set.
        """
        if peer not in self.expected:
            return False
        with self._cond:
            if peer in self._ready:
                return False
            self._ready.add(peer)
            if len(self._ready) == len(self.expected):
                self._cond.notify_all()
            return True

    def is_known(self, peer: PeerId) -> bool:
        return peer in self.expected

    @property
    def is_satisfied(self) -> bool:
        with self._cond:
            return len(self._ready) == len(self.expected)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every expected peer is ready or *timeout* elapses.

        Returns:
            Whether the quorum is satisfied.
        """
        with self._cond:
            return self._cond.wait_for(
                lambda: len(self._ready) == len(self.expected), timeout=timeout
            )

    def snapshot(self) -> PeerSet:
        with self._cond:
            return frozenset(self._ready)

    def missing(self) -> PeerSet:
        """Expected peers not yet observed."""
        with self._cond:
            return self.expected - self._ready

    def __len__(self) -> int:
        with self._cond:
            return len(self._ready)

    def __contains__(self, peer: object) -> bool:
        with self._cond:
            return peer in self._ready

    def __repr__(self) -> str:
        return f"QuorumSet({len(self)}/{self.expected_size})"


__all__ = ["QuorumSet"]
