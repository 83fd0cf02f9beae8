"""Readiness message codec for the barrier wire protocol.

A readiness datagram is the UTF-8 text ``"<sender> READY"``.  There is no
framing beyond the datagram boundary and no reply.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from hostbarrier.types import PeerId

READY_TAG = "READY"
_SEPARATOR = " "


@dataclass(frozen=True)
class ReadinessMessage:
    """Announcement that *sender* is up and listening."""

    sender: PeerId

    def encode(self) -> bytes:
        """Serialize to the wire form."""
        return f"{self.sender}{_SEPARATOR}{READY_TAG}".encode("utf-8")

    @classmethod
    def decode(cls, payload: bytes) -> Optional["ReadinessMessage"]:
        """Parse a received datagram.

        The sender is everything before the first ``" READY"``.  Returns
        ``None`` for payloads that are not UTF-8, carry no tag or name no
        sender; callers drop those without treating them as errors.
        """
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None
        pos = text.find(_SEPARATOR + READY_TAG)
        if pos <= 0:
            return None
        return cls(sender=text[:pos])

    def __str__(self) -> str:
        return f"{self.sender} {READY_TAG}"
