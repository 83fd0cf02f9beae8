"""Counters collected during one barrier run."""

import threading
import time
from typing import Any, Dict, Optional


class BarrierMetrics:
    """Run metrics shared by the announcer and listener threads."""

    def __init__(self) -> None:
        """Initialize metrics collector."""
        self._lock = threading.Lock()
        self.started_at = time.time()
        self.quorum_at: Optional[float] = None
        self.rounds = 0
        self.sends_attempted = 0
        self.send_errors = 0
        self.resolution_errors = 0
        self.datagrams_received = 0
        self.malformed_datagrams = 0
        self.duplicate_announcements = 0
        self.unknown_senders = 0
        self.receive_errors = 0

    def start(self) -> None:
        """Restart the clock that time_to_quorum is measured from."""
        with self._lock:
            self.started_at = time.time()
            self.quorum_at = None

    def record_round(self) -> None:
        """Record a completed announce round."""
        with self._lock:
            self.rounds += 1

    def record_send(self, ok: bool = True) -> None:
        """Record a send attempt and whether it reached the network stack."""
        with self._lock:
            self.sends_attempted += 1
            if not ok:
                self.send_errors += 1

    def record_resolution_error(self) -> None:
        with self._lock:
            self.resolution_errors += 1

    def record_datagram(self) -> None:
        with self._lock:
            self.datagrams_received += 1

    def record_malformed(self) -> None:
        with self._lock:
            self.malformed_datagrams += 1

    def record_duplicate(self) -> None:
        with self._lock:
            self.duplicate_announcements += 1

    def record_unknown_sender(self) -> None:
        with self._lock:
            self.unknown_senders += 1

    def record_receive_error(self) -> None:
        with self._lock:
            self.receive_errors += 1

    def record_quorum(self) -> None:
        """Record the moment the last expected peer was observed."""
        with self._lock:
            if self.quorum_at is None:
                self.quorum_at = time.time()

    def get_stats(self) -> Dict[str, Any]:
        """Get run statistics.

        Returns:
            Dictionary of counters, plus seconds from start to quorum when
            reached.
        """
        with self._lock:
            return {
                'rounds': self.rounds,
                'sends_attempted': self.sends_attempted,
                'send_errors': self.send_errors,
                'resolution_errors': self.resolution_errors,
                'datagrams_received': self.datagrams_received,
                'malformed_datagrams': self.malformed_datagrams,
                'duplicate_announcements': self.duplicate_announcements,
                'unknown_senders': self.unknown_senders,
                'receive_errors': self.receive_errors,
                'time_to_quorum': (
                    None if self.quorum_at is None else self.quorum_at - self.started_at
                ),
            }
