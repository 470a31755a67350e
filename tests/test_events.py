import pytest

from emitter.cluster.events import (
    SubscriptionEvent,
    SubscriptionState,
    decode_subscription_event,
    decode_subscription_state,
)
from emitter.lwwset import LWWTime


class _Clock:
    def __init__(self, value: int = 0) -> None:
        self.value = value

    def __call__(self) -> int:
        return self.value


def test_encode_subscription_state_bytes():
    state = SubscriptionState({"A": LWWTime(10, 50)}, clock=_Clock(0))
    encoded = state.encode()[0]
    assert encoded == bytes([0x1, 0x1, 0x0, 0x41, 0x14, 0x64])


def test_decode_subscription_state_round_trip():
    state = SubscriptionState({"A": LWWTime(10, 50)}, clock=_Clock(0))
    decoded = decode_subscription_state(state.encode()[0])
    assert decoded == state
    assert decoded.all() == {"A": LWWTime(10, 50)}


def test_encode_subscription_event_round_trip():
    event = SubscriptionEvent(peer=657, conn=12456, ssid=(1, 2, 3, 4, 5))
    decoded = decode_subscription_event(event.encode())
    assert decoded == event


def test_decode_event_accepts_bytes():
    event = SubscriptionEvent(peer=2, conn=30, ssid=[1, 2, 3])
    decoded = decode_subscription_event(event.encode().encode("latin-1"))
    assert decoded.ssid == (1, 2, 3)
    assert decoded.peer == 2
    assert decoded.conn == 30


def test_remove_all_for_peer():
    clock = _Clock(0)
    state = SubscriptionState(clock=clock)
    for i in range(1, 11):
        clock.value = i
        state.add(SubscriptionEvent(peer=i % 3, conn=777, ssid=(1,)).encode())

    clock.value = 20
    assert sum(1 for v in state.all().values() if v.is_added()) == 3

    clock.value = 21
    state.remove_all(1)
    alive = {decode_subscription_event(k).peer for k, v in state.all().items() if v.is_added()}
    assert alive == {0, 2}


def test_merge_returns_delta():
    mine = SubscriptionState({"A": LWWTime(10, 0)}, clock=_Clock(0))
    theirs = SubscriptionState({"A": LWWTime(0, 20), "B": LWWTime(5, 0)}, clock=_Clock(0))
    delta = mine.merge(theirs)
    assert delta is theirs
    assert delta.all() == {"A": LWWTime(0, 20), "B": LWWTime(5, 0)}
    assert mine.all() == {"A": LWWTime(10, 20), "B": LWWTime(5, 0)}


def test_decode_state_truncated():
    with pytest.raises(EOFError):
        decode_subscription_state(bytes([1, 2, 3]))


def test_decode_state_empty():
    with pytest.raises(EOFError):
        decode_subscription_state(b"")


def test_decode_event_empty():
    with pytest.raises(EOFError):
        decode_subscription_event("")


def test_decode_event_overflow():
    with pytest.raises(ValueError):
        decode_subscription_event(bytes([0xFF] * 10 + [0x01]))