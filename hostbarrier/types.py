"""Base types and data structures for the hostbarrier rendezvous."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Tuple

PeerId = str
PeerSet = FrozenSet[PeerId]
SocketAddress = Tuple[str, int]


class BarrierState(Enum):
    """Lifecycle of a :class:`hostbarrier.controller.BarrierController`."""

    INIT = "init"
    RESOLVING = "resolving"
    WAITING = "waiting"
    SATISFIED = "satisfied"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class BarrierResult:
    """Outcome of a successful barrier run."""

    state: BarrierState
    self_id: PeerId
    peers: PeerSet
    ready: PeerSet
    elapsed: float
    stats: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Return a one-line summary of the run."""
        return (
            f"{self.self_id}: {self.state.value} with {len(self.ready)}/{len(self.peers)} "
            f"peers in {self.elapsed:.3f}s"
        )
