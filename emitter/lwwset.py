"""A last-write-wins element set (CRDT) with a bias towards additions."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping

# Removed entries older than this (in nanoseconds) are garbage collected.
GC_CUTOFF = 6 * 60 * 60 * 1_000_000_000


def now() -> int:
    """Return the current time in Unix nanoseconds."""
    return time.time_ns()


@dataclass(frozen=True)
class LWWTime:
    """The add and delete timestamps of an element."""

    add_time: int = 0
    del_time: int = 0

    def is_zero(self) -> bool:
        return self.add_time == 0 and self.del_time == 0

    def is_added(self) -> bool:
        return self.add_time != 0 and self.add_time >= self.del_time

    def is_removed(self) -> bool:
        return self.add_time < self.del_time

    def is_expired(self, current: int) -> bool:
        """Whether the element was removed long enough ago to be collected."""
        return self.is_removed() and self.del_time + GC_CUTOFF < current


class LWWSet:
    """A thread-safe last-write-wins set keyed by strings."""

    def __init__(
        self,
        items: Mapping[str, LWWTime] | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.state: dict[str, LWWTime] = dict(items or {})
        self._clock = clock or now
        self._lock = threading.Lock()

    def add(self, value: str) -> None:
        with self._lock:
            current = self.state.get(value, LWWTime())
            self.state[value] = LWWTime(self._clock(), current.del_time)

    def remove(self, value: str) -> None:
        with self._lock:
            current = self.state.get(value, LWWTime())
            self.state[value] = LWWTime(current.add_time, self._clock())

    def contains(self, value: str) -> bool:
        with self._lock:
            return self.state.get(value, LWWTime()).is_added()

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and self.contains(value)

    def __len__(self) -> int:
        with self._lock:
            return len(self.state)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LWWSet):
            return NotImplemented
        return self.all() == other.all()

    def merge(self, other: LWWSet) -> None:
        """Merge ``other`` into this set, leaving only the delta in ``other``."""
        with self._lock:
            for key, theirs in list(other.state.items()):
                mine = self.state.get(key, LWWTime())

                if mine.add_time < theirs.add_time:
                    add_time, delta_add = theirs.add_time, theirs.add_time
                else:
                    add_time, delta_add = mine.add_time, 0

                if mine.del_time < theirs.del_time:
                    del_time, delta_del = theirs.del_time, theirs.del_time
                else:
                    del_time, delta_del = mine.del_time, 0

                delta = LWWTime(delta_add, delta_del)
                if delta.is_zero():
                    del other.state[key]
                else:
                    self.state[key] = LWWTime(add_time, del_time)
                    other.state[key] = delta

    def all(self) -> dict[str, LWWTime]:
        """Return a copy of every element and its timestamps."""
        with self._lock:
            return dict(self.state)

    def gc(self) -> None:
        """Drop elements that were removed more than the cutoff ago."""
        with self._lock:
            current = self._clock()
            expired = [key for key, val in self.state.items() if val.is_expired(current)]
            for key in expired:
                del self.state[key]