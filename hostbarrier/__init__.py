"""hostbarrier: one-shot UDP startup barrier for a fixed set of hosts.

Every host listed in a shared hostfile announces ``<hostname> READY`` to all
the others and waits until it has heard from each of them.

  - :mod:`hostbarrier.resolver`   membership list -> peer set
  - :mod:`hostbarrier.announcer`  bounded flood-and-retry of readiness datagrams
  - :mod:`hostbarrier.listener`   receive loop feeding the quorum set
  - :mod:`hostbarrier.controller` state machine tying them together
"""

from __future__ import annotations

# Domain types
from .types import BarrierResult, BarrierState, PeerId, PeerSet  # noqa: F401
from .errors import (  # noqa: F401
    BarrierError,
    BarrierTimeoutError,
    ConfigError,
    EmptyPeerSetError,
    ReceiveError,
    ResolutionError,
    SendError,
    SocketError,
)
from .config import BarrierConfig, get_config  # noqa: F401
from .messages import ReadinessMessage  # noqa: F401
from .quorum import QuorumSet  # noqa: F401
from .metrics import BarrierMetrics  # noqa: F401

# Transport and protocol
from .transport import DatagramTransport, UDPTransport  # noqa: F401
from .resolver import read_membership, resolve_peers  # noqa: F401
from .announcer import Announcer, announce  # noqa: F401
from .listener import Listener, listen_for_quorum  # noqa: F401
from .controller import BarrierController, run_barrier  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    # core
    "PeerId",
    "PeerSet",
    "BarrierState",
    "BarrierResult",
    "BarrierConfig",
    "get_config",
    "ReadinessMessage",
    "QuorumSet",
    "BarrierMetrics",
    # errors
    "BarrierError",
    "ConfigError",
    "EmptyPeerSetError",
    "ResolutionError",
    "SocketError",
    "SendError",
    "ReceiveError",
    "BarrierTimeoutError",
    # infra
    "DatagramTransport",
    "UDPTransport",
    # protocol
    "read_membership",
    "resolve_peers",
    "Announcer",
    "announce",
    "Listener",
    "listen_for_quorum",
    "BarrierController",
    "run_barrier",
]
