"""
ENODE-DASH - Peer Registry
Append-only, lock-guarded table of every peer event seen this session
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .geo import GEO_UNAVAILABLE, UNKNOWN_LOCATION


@dataclass(frozen=True)
class PeerInput:
    """What the ingestion loop hands over for one event"""
    remote_address: str
    identifier: str
    ip: str = ""
    location: str = UNKNOWN_LOCATION
    geo_status: int = GEO_UNAVAILABLE
    first_seen: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Peer:
    row_id: int
    remote_address: str
    identifier: str
    location: str
    active: bool = True
    ip: str = ""
    geo_status: int = GEO_UNAVAILABLE
    first_seen: float = 0.0


class PeerNotFound(KeyError):
    pass


class PeerRegistry:
    """Rows are dense and zero-based; row_id == position. Nothing is ever
    removed or rewritten, so a Peer read under the lock stays valid forever.
    """

    def __init__(self):
        self._peers: List[Peer] = []
        self._by_identifier: Dict[str, List[int]] = {}
        self._lock = threading.Lock()

    def append(self, peer: PeerInput) -> int:
        with self._lock:
            row_id = len(self._peers)
            self._peers.append(Peer(
                row_id=row_id,
                remote_address=peer.remote_address,
                identifier=peer.identifier,
                location=peer.location,
                active=True,
                ip=peer.ip,
                geo_status=peer.geo_status,
                first_seen=peer.first_seen,
            ))
            self._by_identifier.setdefault(peer.identifier, []).append(row_id)
            return row_id

    def get(self, row_id: int) -> Peer:
        with self._lock:
            if row_id < 0 or row_id >= len(self._peers):
                raise PeerNotFound(row_id)
            return self._peers[row_id]

    def count(self) -> int:
        with self._lock:
            return len(self._peers)

    def __len__(self) -> int:
        return self.count()

    def snapshot(self) -> Tuple[Peer, ...]:
        """All rows in insertion order, as of now"""
        with self._lock:
            return tuple(self._peers)

    def tail(self, n: int) -> Tuple[Peer, ...]:
        """Newest n rows, oldest first"""
        if n <= 0:
            return ()
        with self._lock:
            return tuple(self._peers[-n:])

    def rows_for(self, identifier: str) -> List[int]:
        """Row ids recorded for an enode (repeat sightings are separate rows)"""
        with self._lock:
            return list(self._by_identifier.get(identifier, ()))
