"""Peer set resolution from a membership list.

The membership source is a plain-text file with one hostname per line.
Entries are compared verbatim against the local identity; no DNS lookup
happens here.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Set, Union

from hostbarrier.errors import ConfigError, EmptyPeerSetError
from hostbarrier.types import PeerId, PeerSet

logger = logging.getLogger("PeerSetResolver")

MembershipSource = Union[str, "os.PathLike[str]", Iterable[str]]


def read_membership(path: Union[str, "os.PathLike[str]"]) -> List[str]:
    """Read hostname entries from *path*.

    Entries are split on LF only and one trailing CR is dropped from each;
    nothing else is stripped.

    Raises:
        ConfigError: The file is missing, unreadable or not valid UTF-8.
    """
    try:
        with open(path, encoding="utf-8", newline="") as fh:
            pieces = fh.read().split("\n")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to open hostfile: {os.fspath(path)} ({exc})") from exc
    if pieces[-1] == "":
        pieces.pop()
    return [_strip_line_end(piece) for piece in pieces]


def _strip_line_end(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def resolve_peers(source: MembershipSource, self_id: PeerId, *, strict: bool = False) -> PeerSet:
    """Return the peers to rendezvous with.

    Args:
        source: Path of the membership file, or the entries themselves.
        self_id: Local identity; excluded by exact string match.
        strict: Reject blank and duplicate entries instead of warning.

    Raises:
        ConfigError: The source cannot be read, or strict mode rejected an entry.
        EmptyPeerSetError: No entry other than *self_id* remains.
    """
    if isinstance(source, (str, os.PathLike)):
        entries = read_membership(source)
    else:
        entries = [_strip_line_end(line) for line in source]

    peers: Set[PeerId] = set()
    seen: Set[str] = set()
    for lineno, entry in enumerate(entries, start=1):
        if entry.strip() == "":
            if strict:
                raise ConfigError(f"blank entry on line {lineno} of membership list")
            logger.warning("Blank entry on line %d treated as a peer", lineno)
        elif entry != entry.strip():
            logger.warning("Entry %r on line %d has surrounding whitespace", entry, lineno)
        if entry in seen:
            if strict:
                raise ConfigError(f"duplicate entry {entry!r} on line {lineno} of membership list")
            logger.warning("Duplicate entry %r on line %d ignored", entry, lineno)
        seen.add(entry)
        if entry != self_id:
            peers.add(entry)

    if not peers:
        raise EmptyPeerSetError("No peers found in the hostfile.")
    if self_id not in seen:
        logger.info("Local identity %r is not listed; rendezvous with all %d entries", self_id, len(peers))
    return frozenset(peers)


__all__ = ["read_membership", "resolve_peers"]
