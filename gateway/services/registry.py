import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from gateway.models.peer import Peer
from gateway.services.errors import NotFoundError


class PeerNotFound(NotFoundError):
    def __init__(self, peer_id: str) -> None:
        super().__init__(f"peer {peer_id} not found")
        self.peer_id = peer_id


class _ReadWriteLock:
    """Many concurrent readers or a single writer; waiting writers go first."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class PeerRegistry:
    """In-memory peer store shared by the request handlers and the sweeper.

    Every read hands out copies, so callers never observe or cause a mutation
    outside the lock. The lock only ever guards dict operations; nothing here
    talks to the WireGuard device.
    """

    def __init__(self) -> None:
        self._lock = _ReadWriteLock()
        self._peers: dict[str, Peer] = {}

    def add(self, peer: Peer) -> None:
        stored = peer.copy()
        with self._lock.write():
            self._peers[stored.id] = stored

    def get(self, peer_id: str) -> Peer:
        with self._lock.read():
            peer = self._peers.get(peer_id)
            if peer is None:
                raise PeerNotFound(peer_id)
            return peer.copy()

    def delete(self, peer_id: str) -> Peer:
        """Claim and remove a peer. Only one concurrent caller gets it back."""
        with self._lock.write():
            peer = self._peers.pop(peer_id, None)
        if peer is None:
            raise PeerNotFound(peer_id)
        return peer

    def list(self) -> list[Peer]:
        with self._lock.read():
            return [peer.copy() for peer in self._peers.values()]

    def update_handshake(self, peer_id: str, when: datetime) -> Peer:
        """Record a handshake on the stored peer; older readings are ignored."""
        with self._lock.write():
            peer = self._peers.get(peer_id)
            if peer is None:
                raise PeerNotFound(peer_id)
            if peer.last_handshake_at is None or when > peer.last_handshake_at:
                peer.last_handshake_at = when
            return peer.copy()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._peers)
