"""UDP transport for the barrier.

Thin wrapper around a connection-less socket so that the announcer and the
listener share one seam that tests can replace with an in-memory network.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional, Protocol, Tuple

from hostbarrier.errors import ReceiveError, ResolutionError, SendError, SocketError
from hostbarrier.types import SocketAddress


class DatagramTransport(Protocol):
    """Protocol that any concrete transport must implement."""

    def open(self) -> None:  # pragma: no cover
        """Create the underlying channel; raise :class:`SocketError` on failure."""

    def bind(self, host: str, port: int) -> int:  # pragma: no cover
        """Bind the channel for receiving and return the bound port.

        Raises :class:`SocketError` when the address is unavailable.  There is
        no fallback port.
        """

    def resolve(self, hostname: str) -> str:  # pragma: no cover
        """Return the IPv4 address of *hostname* or raise :class:`ResolutionError`."""

    def send_to(self, payload: bytes, address: SocketAddress) -> None:  # pragma: no cover
        """Hand *payload* to the network stack.

        Implementations must not infer delivery; a return without
        :class:`SendError` only means no local error occurred.
        """

    def receive(
        self, bufsize: int, timeout: Optional[float] = None
    ) -> Optional[Tuple[bytes, SocketAddress]]:  # pragma: no cover
        """Blocking receive of one datagram.

        Returns ``None`` when *timeout* seconds pass without traffic and raises
        :class:`ReceiveError` for transient failures.  ``timeout=None`` waits
        forever.
        """

    def close(self) -> None:  # pragma: no cover
        """Release the channel.  Safe to call twice."""


class UDPTransport:
    """IPv4 datagram channel backed by a real socket."""

    def __init__(self, name: str = "udp") -> None:
        self.name = name
        self.logger = logging.getLogger(f"UDPTransport-{name}")
        self._sock: Optional[socket.socket] = None

    # ------------------------------------------------------------------
    # DatagramTransport API
    # ------------------------------------------------------------------

    def open(self) -> None:
        if self._sock is not None:
            return
        try:
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise SocketError(f"socket creation failed: {exc}") from exc

    def bind(self, host: str, port: int) -> int:
        self.open()
        if self._sock is None:
            raise SocketError(f"bind to {host}:{port} failed: transport is not open")
        # No SO_REUSEADDR: on Linux it lets a second UDP socket share the port
        try:
            self._sock.bind((host, port))
        except OSError as exc:
            self.close()
            raise SocketError(f"bind to {host}:{port} failed: {exc}") from exc
        bound_port = self._sock.getsockname()[1]
        self.logger.debug("Bound UDP socket on %s:%d", host, bound_port)
        return bound_port

    def resolve(self, hostname: str) -> str:
        try:
            infos = socket.getaddrinfo(hostname, None, socket.AF_INET, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as exc:
            raise ResolutionError(hostname, str(exc)) from exc
        if not infos:
            raise ResolutionError(hostname, "no addresses found")
        return infos[0][4][0]

    def send_to(self, payload: bytes, address: SocketAddress) -> None:
        if self._sock is None:
            raise SendError("transport is not open")
        try:
            sent = self._sock.sendto(payload, address)
        except OSError as exc:
            raise SendError(f"sendto {address[0]}:{address[1]} failed: {exc}") from exc
        if sent != len(payload):
            raise SendError(f"sendto {address[0]}:{address[1]} sent {sent}/{len(payload)} bytes")

    def receive(
        self, bufsize: int, timeout: Optional[float] = None
    ) -> Optional[Tuple[bytes, SocketAddress]]:
        if self._sock is None:
            raise ReceiveError("transport is not open")
        try:
            self._sock.settimeout(timeout)
            data, sender = self._sock.recvfrom(bufsize)
        except socket.timeout:
            return None
        except OSError as exc:
            raise ReceiveError(f"recvfrom failed: {exc}") from exc
        return data, (sender[0], sender[1])

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        finally:
            self._sock = None


__all__ = ["DatagramTransport", "UDPTransport"]
