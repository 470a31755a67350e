import threading

import pytest

from emitter.cluster.peer import Peer, SubscriberType, format_peer_name, parse_peer_name


def _encoder(frame):
    return b"|".join(frame)


class _Sink:
    """Sender that records what it is given."""

    def __init__(self):
        self.payloads = []
        self.received = threading.Event()

    def __call__(self, name, data):
        self.payloads.append(data)
        self.received.set()


def test_peer_identity_and_counters():
    peer = Peer(123, lambda name, data: None, _encoder, flush_interval=None)
    try:
        assert peer.frame == []
        assert peer.id() == "00:00:00:00:00:7b"
        assert peer.type() is SubscriberType.REMOTE
        assert peer.is_active() is True

        assert peer.on_subscribe("A", [1, 2, 3]) is True
        assert peer.on_subscribe("A", [1, 2, 3]) is False
        assert peer.on_unsubscribe("A", [1, 2, 3]) is False
        assert peer.on_unsubscribe("A", [1, 2, 3]) is True
        assert peer.subscriptions == {}
    finally:
        peer.close()


def test_unsubscribe_unknown_returns_false():
    peer = Peer(1, lambda name, data: None, _encoder, flush_interval=None)
    assert peer.on_unsubscribe("X", [9]) is False


def test_send_and_flush():
    sent = []
    peer = Peer(123, lambda name, data: sent.append((name, data)), _encoder, flush_interval=None)
    peer.send(b"hello")
    assert len(peer.frame) == 1

    peer.process_send_queue()
    assert len(peer.frame) == 0
    assert sent == [(123, b"hello")]


def test_flush_empty_frame_sends_nothing():
    sent = []
    peer = Peer(5, lambda name, data: sent.append(data), _encoder, flush_interval=None)
    peer.process_send_queue()
    assert sent == []


def test_inactive_peer_drops_messages():
    peer = Peer(7, lambda name, data: None, _encoder, flush_interval=None)
    peer.activity = 0
    assert peer.is_active() is False
    peer.send(b"lost")
    assert peer.frame == []


def test_sender_failure_is_swallowed():
    def failing(name, data):
        raise ConnectionError("unreachable")

    peer = Peer(7, failing, _encoder, flush_interval=None)
    peer.send(b"a")
    peer.process_send_queue()
    assert peer.frame == []


def test_background_flush():
    sink = _Sink()
    peer = Peer(9, sink, _encoder, flush_interval=0.001)
    try:
        peer.send(b"x")
        assert sink.received.wait(2.0) is True
        assert sink.payloads[0] == b"x"
        assert peer.frame == []
    finally:
        peer.close()


@pytest.mark.parametrize(
    "text, expected",
    [("00:00:00:00:00:01", 1), ("00:00:00:00:00:7b", 123), ("::7b", 123), ("1:0:0:0:0:0", 1 << 40)],
)
def test_parse_peer_name(text, expected):
    assert parse_peer_name(text) == expected


@pytest.mark.parametrize("text", ["bogus", "00:00:00:00:01", "000:00:00:00:00:01", "zz:00:00:00:00:01"])
def test_parse_peer_name_invalid(text):
    with pytest.raises(ValueError):
        parse_peer_name(text)


def test_peer_name_round_trip():
    for name in (0, 1, 657, 0xAABBCCDDEEFF):
        assert parse_peer_name(format_peer_name(name)) == name