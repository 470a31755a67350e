"""Subscription events and the gossiped subscription state of the cluster."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from emitter.lwwset import LWWSet, LWWTime

_UINT32_MASK = 0xFFFF_FFFF
_UINT64_MASK = 0xFFFF_FFFF_FFFF_FFFF
_MAX_VARINT_LEN = 10
_MAX_KEY_LEN = 0xFFFF


def _put_uvarint(out: bytearray, value: int) -> None:
    if value < 0:
        raise ValueError(f"cannot encode negative value {value} as an unsigned varint")
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)


def _put_varint(out: bytearray, value: int) -> None:
    _put_uvarint(out, ((value << 1) ^ (value >> 63)) & _UINT64_MASK)


class _Reader:
    """Sequential reader over an encoded buffer."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, size: int) -> bytes:
        if self.remaining < size:
            raise EOFError("unexpected end of encoded data")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def uvarint(self) -> int:
        value = shift = 0
        for length in range(1, _MAX_VARINT_LEN + 1):
            (byte,) = self.read(1)
            if length == _MAX_VARINT_LEN and byte > 1:
                break
            if byte < 0x80:
                return value | (byte << shift)
            value |= (byte & 0x7F) << shift
            shift += 7
        raise ValueError("varint overflows a 64-bit integer")

    def varint(self) -> int:
        raw = self.uvarint()
        return (raw >> 1) ^ -(raw & 1)


@dataclass(frozen=True)
class SubscriptionEvent:
    """A subscription made by a connection on a given peer."""

    peer: int
    conn: int
    ssid: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "ssid", tuple(self.ssid))

    def encode(self) -> str:
        """Encode the event as a compact string of varint-encoded integers."""
        out = bytearray()
        _put_uvarint(out, self.peer)
        _put_uvarint(out, self.conn)
        for part in self.ssid:
            _put_uvarint(out, part)
        return out.decode("latin-1")


def decode_subscription_event(encoded: str | bytes) -> SubscriptionEvent:
    """Decode an event produced by :meth:`SubscriptionEvent.encode`."""
    data = encoded.encode("latin-1") if isinstance(encoded, str) else bytes(encoded)
    reader = _Reader(data)
    peer = reader.uvarint()
    conn = reader.uvarint()
    ssid: list[int] = []
    while reader.remaining > 0:
        ssid.append(reader.uvarint() & _UINT32_MASK)
    return SubscriptionEvent(peer=peer, conn=conn, ssid=tuple(ssid))


def _encode_state(items: Mapping[str, LWWTime]) -> bytes:
    out = bytearray()
    _put_uvarint(out, len(items))
    for key in sorted(items):
        raw = key.encode("latin-1")
        if len(raw) > _MAX_KEY_LEN:
            raise ValueError(f"state key of {len(raw)} bytes is too long")
        out += len(raw).to_bytes(2, "little")
        out += raw
        entry = items[key]
        _put_varint(out, entry.add_time)
        _put_varint(out, entry.del_time)
    return bytes(out)


class SubscriptionState(LWWSet):
    """The globally synchronised set of subscription events."""

    def encode(self) -> list[bytes]:
        """Collect garbage and serialise the complete state as gossip chunks."""
        self.gc()
        with self._lock:
            return [_encode_state(self.state)]

    def merge(self, other: LWWSet) -> LWWSet:
        """Merge ``other`` into this state and return it, reduced to the delta."""
        super().merge(other)
        return other

    def remove_all(self, name: int) -> None:
        """Remove every live subscription event that belongs to peer ``name``."""
        prefix = bytearray()
        _put_uvarint(prefix, name)
        marker = prefix.decode("latin-1")
        for event, entry in self.all().items():
            if event.startswith(marker) and entry.is_added():
                self.remove(event)


def _decode_entries(reader: _Reader) -> Iterable[tuple[str, LWWTime]]:
    for _ in range(reader.uvarint()):
        size = int.from_bytes(reader.read(2), "little")
        key = reader.read(size).decode("latin-1")
        add_time = reader.varint()
        del_time = reader.varint()
        yield key, LWWTime(add_time, del_time)


def decode_subscription_state(
    buf: bytes, clock: Callable[[], int] | None = None
) -> SubscriptionState:
    """Decode a state produced by :meth:`SubscriptionState.encode`."""
    reader = _Reader(bytes(buf))
    return SubscriptionState(dict(_decode_entries(reader)), clock=clock)