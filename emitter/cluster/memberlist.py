"""A thread-safe cache of the cluster's known peers."""

from __future__ import annotations

import threading
import time
from typing import Callable

from emitter.cluster.peer import Peer


class Memberlist:
    """Peers keyed by name, created on demand by a factory."""

    def __init__(self, factory: Callable[[int], Peer]) -> None:
        self._factory = factory
        self._peers: dict[int, Peer] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._peers

    def get_or_add(self, name: int) -> tuple[Peer, bool]:
        """Return the peer for ``name`` and whether it was newly created."""
        with self._lock:
            peer = self._peers.get(name)
            if peer is not None:
                return peer, False
            peer = self._factory(name)
            self._peers[name] = peer
            return peer, True

    def touch(self, name: int) -> None:
        """Record activity for the peer, adding it if it is unknown."""
        peer, _ = self.get_or_add(name)
        peer.activity = time.time()

    def contains(self, name: int) -> bool:
        return name in self

    def remove(self, name: int) -> Peer | None:
        """Remove and return the peer, marking it inactive; None if unknown."""
        with self._lock:
            peer = self._peers.pop(name, None)
        if peer is not None:
            peer.activity = 0
        return peer