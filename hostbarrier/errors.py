"""Error taxonomy for the startup barrier.

Only configuration, setup and deadline errors are fatal.  Per-peer and
per-datagram errors (:class:`ResolutionError`, :class:`SendError`,
:class:`ReceiveError`) are logged and absorbed by the component that hit them.
"""

from __future__ import annotations

from typing import Iterable


class BarrierError(Exception):
    """Base class for every error raised by :mod:`hostbarrier`."""


class ConfigError(BarrierError):
    """Membership source unreadable, invalid settings or malformed arguments."""


class EmptyPeerSetError(ConfigError):
    """The membership list contains nobody but the local host."""


class ResolutionError(BarrierError):
    """A peer hostname could not be resolved to an address in this round."""

    def __init__(self, peer: str, reason: str) -> None:
        super().__init__(f"cannot resolve {peer!r}: {reason}")
        self.peer = peer
        self.reason = reason


class SocketError(BarrierError):
    """The datagram channel could not be created or bound."""


class SendError(BarrierError):
    """A readiness datagram could not be handed to the network stack."""


class ReceiveError(BarrierError):
    """A receive call on the listening endpoint failed."""


class BarrierTimeoutError(BarrierError, TimeoutError):
    """The overall deadline expired before every peer announced readiness."""

    def __init__(self, timeout: float, missing: Iterable[str]) -> None:
        self.timeout = timeout
        self.missing = frozenset(missing)
        names = ", ".join(sorted(self.missing)) or "-"
        super().__init__(f"barrier not reached after {timeout:.3f}s; missing peers: {names}")


__all__ = [
    "BarrierError",
    "ConfigError",
    "EmptyPeerSetError",
    "ResolutionError",
    "SocketError",
    "SendError",
    "ReceiveError",
    "BarrierTimeoutError",
]
