"""A remote peer of the cluster that receives forwarded messages."""

from __future__ import annotations

import enum
import logging
import string
import threading
import time
from typing import Any, Callable, Sequence

from emitter.timer import repeat

logger = logging.getLogger("emitter.peer")

DEFAULT_FLUSH_INTERVAL = 0.005
ACTIVITY_TIMEOUT = 30

_NAME_BYTES = 6


class SubscriberType(enum.Enum):
    """Whether a subscriber is a local connection or a remote peer."""

    DIRECT = 0
    REMOTE = 1


def format_peer_name(name: int) -> str:
    """Format a peer name as six colon-separated hexadecimal bytes."""
    raw = (name & 0xFFFF_FFFF_FFFF).to_bytes(_NAME_BYTES, "big")
    return ":".join(f"{b:02x}" for b in raw)


def parse_peer_name(text: str) -> int:
    """Parse a peer name such as ``00:00:00:00:00:01`` or ``::7b``."""
    if "::" in text:
        head, tail = text.split("::", 1)
        left = head.split(":") if head else []
        right = tail.split(":") if tail else []
        missing = _NAME_BYTES - len(left) - len(right)
        if missing < 1:
            raise ValueError(f"invalid peer name {text!r}")
        groups = left + ["0"] * missing + right
    else:
        groups = text.split(":")

    valid = len(groups) == _NAME_BYTES and all(
        1 <= len(g) <= 2 and all(c in string.hexdigits for c in g) for g in groups
    )
    if not valid:
        raise ValueError(f"invalid peer name {text!r}")
    return int.from_bytes(bytes(int(g, 16) for g in groups), "big")


class Peer:
    """A remote peer; messages sent to it are batched and flushed periodically."""

    def __init__(
        self,
        name: int,
        sender: Callable[[int, bytes], Any],
        encoder: Callable[[Sequence[Any]], bytes],
        flush_interval: float | None = DEFAULT_FLUSH_INTERVAL,
    ) -> None:
        self.name = name
        self.sender = sender
        self.encoder = encoder
        self.frame: list[Any] = []
        self.subscriptions: dict[tuple[int, ...], int] = {}
        self.activity = time.time()
        self._lock = threading.Lock()
        self._cancel: Callable[[], None] | None = None
        if flush_interval is not None:
            self._cancel = repeat(flush_interval, self.process_send_queue)

    def __enter__(self) -> Peer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def on_subscribe(self, encoded_event: str, ssid: Sequence[int]) -> bool:
        """Count a subscription; True if it is the first for this ssid."""
        key = tuple(ssid)
        with self._lock:
            count = self.subscriptions.get(key, 0) + 1
            self.subscriptions[key] = count
            return count == 1

    def on_unsubscribe(self, encoded_event: str, ssid: Sequence[int]) -> bool:
        """Uncount a subscription; True if it was the last for this ssid."""
        key = tuple(ssid)
        with self._lock:
            count = self.subscriptions.get(key)
            if count is None:
                return False
            if count <= 1:
                del self.subscriptions[key]
                return True
            self.subscriptions[key] = count - 1
            return False

    def close(self) -> None:
        """Stop the background flushing of the send queue."""
        with self._lock:
            if self._cancel is not None:
                self._cancel()
                self._cancel = None

    def id(self) -> str:
        return format_peer_name(self.name)

    def type(self) -> SubscriberType:
        return SubscriberType.REMOTE

    def is_active(self) -> bool:
        """Whether the peer showed activity within the last 30 seconds."""
        return self.activity + ACTIVITY_TIMEOUT > time.time()

    def send(self, message: Any) -> None:
        """Queue a message for the peer; dropped if the peer is inactive."""
        with self._lock:
            if self.is_active():
                self.frame.append(message)

    def process_send_queue(self) -> None:
        """Encode the queued frame and send it to the peer."""
        with self._lock:
            if not self.frame:
                return
            frame, self.frame = self.frame, []

        try:
            self.sender(self.name, self.encoder(frame))
        except Exception:  # noqa: BLE001 - a failed unicast must not kill the flusher
            logger.exception("peer: gossip unicast failed")