"""Shared fixtures: an in-memory datagram network standing in for UDP."""

from __future__ import annotations

import threading
from queue import Empty, Queue
from typing import Dict, List, Optional, Set, Tuple

import pytest

from hostbarrier.config import BarrierConfig
from hostbarrier.errors import ReceiveError, ResolutionError, SendError, SocketError

Endpoint = Tuple[str, int]


class MemoryNetwork:
    """Loss-free datagram fabric keyed by (address, port)."""

    def __init__(self, addresses: Optional[Dict[str, str]] = None) -> None:
        self.addresses: Dict[str, str] = dict(addresses or {})
        self.unresolvable: Set[str] = set()
        self.sent: List[Tuple[bytes, Endpoint, Endpoint]] = []
        self._endpoints: Dict[Endpoint, "Queue[Tuple[bytes, Endpoint]]"] = {}
        self._lock = threading.Lock()

    def add_host(self, hostname: str, address: Optional[str] = None) -> str:
        self.addresses[hostname] = address or hostname
        return self.addresses[hostname]

    def transport(self, hostname: str) -> "MemoryTransport":
        return MemoryTransport(self, self.addresses.get(hostname, hostname))

    def register(self, endpoint: Endpoint) -> "Queue[Tuple[bytes, Endpoint]]":
        with self._lock:
            if endpoint in self._endpoints:
                raise SocketError(f"bind to {endpoint[0]}:{endpoint[1]} failed: address in use")
            queue: "Queue[Tuple[bytes, Endpoint]]" = Queue()
            self._endpoints[endpoint] = queue
            return queue

    def unregister(self, endpoint: Endpoint) -> None:
        with self._lock:
            self._endpoints.pop(endpoint, None)

    def deliver(self, payload: bytes, source: Endpoint, target: Endpoint) -> None:
        with self._lock:
            self.sent.append((payload, source, target))
            queue = self._endpoints.get(target)
        # Nobody bound yet: the datagram is lost, as with UDP
        if queue is not None:
            queue.put((payload, source))


class MemoryTransport:
    """:class:`hostbarrier.transport.DatagramTransport` over a :class:`MemoryNetwork`."""

    def __init__(self, network: MemoryNetwork, address: str) -> None:
        self.network = network
        self.address = address
        self.opened = False
        self.closed = False
        self._endpoint: Optional[Endpoint] = None
        self._queue: Optional["Queue[Tuple[bytes, Endpoint]]"] = None

    def open(self) -> None:
        self.opened = True

    def bind(self, host: str, port: int) -> int:
        self.open()
        endpoint = (self.address, port)
        self._queue = self.network.register(endpoint)
        self._endpoint = endpoint
        return port

    def resolve(self, hostname: str) -> str:
        if hostname in self.network.unresolvable or hostname not in self.network.addresses:
            raise ResolutionError(hostname, "Name or service not known")
        return self.network.addresses[hostname]

    def send_to(self, payload: bytes, address: Endpoint) -> None:
        if not self.opened or self.closed:
            raise SendError("transport is not open")
        self.network.deliver(payload, (self.address, 40000), address)

    def receive(self, bufsize: int, timeout: Optional[float] = None):
        if self._queue is None or self.closed:
            raise ReceiveError("transport is not bound")
        try:
            payload, source = self._queue.get(timeout=timeout)
        except Empty:
            return None
        return payload[:bufsize], source

    def close(self) -> None:
        self.closed = True
        if self._endpoint is not None:
            self.network.unregister(self._endpoint)
            self._endpoint = None


@pytest.fixture
def network() -> MemoryNetwork:
    """Empty in-memory network; tests add the hosts they need."""
    return MemoryNetwork()


@pytest.fixture
def fast_config() -> BarrierConfig:
    """Settings with short intervals and a deadline so tests never hang."""
    return BarrierConfig(
        port=5000,
        max_attempts=10,
        retry_interval_ms=20,
        receive_poll_interval_ms=20,
        overall_timeout_ms=5000,
    )
