import json

import pytest

from emitter.cluster.events import SubscriptionEvent, SubscriptionState, decode_subscription_state
from emitter.cluster.swarm import Swarm, local_peer_name
from emitter.config import ClusterConfig


class FakeGossip:
    def __init__(self):
        self.broadcasts = []
        self.unicasts = []
        self.connected = []
        self.stopped = False

    def gossip_broadcast(self, data):
        self.broadcasts.append(data)

    def gossip_unicast(self, dst, msg):
        self.unicasts.append((dst, msg))

    def num_connections(self):
        return 0

    def initiate_connections(self, addrs):
        self.connected.extend(addrs)
        return []

    def stop(self):
        self.stopped = True


def encode_frame(frame):
    return json.dumps(list(frame)).encode()


def decode_frame(buf):
    return json.loads(buf.decode())


def make_swarm(gossip=None, **kwargs):
    return Swarm(1, gossip, encode_frame, decode_frame, **kwargs)


def test_on_gossip_unicast():
    frame = [
        {"ssid": [1, 2, 3], "channel": "a/b/c/", "payload": "hello abc"},
        {"ssid": [1, 2, 3], "channel": "a/b/", "payload": "hello ab"},
    ]
    received = []
    swarm = make_swarm(on_message=received.append)
    swarm.on_gossip_unicast(1, encode_frame(frame))
    assert received == frame


def test_on_gossip_unicast_invalid_frame():
    swarm = make_swarm()
    with pytest.raises(ValueError):
        swarm.on_gossip_unicast(1, b"not json")


def test_scenario():
    gossip = FakeGossip()
    name = local_peer_name(ClusterConfig(node_name="00:00:00:00:00:01"), 99)
    swarm = Swarm(name, gossip, encode_frame, decode_frame)

    assert swarm.num_peers() == 0
    assert swarm.id() == 1
    assert swarm.gossip_state() is swarm.state

    assert swarm.on_gossip(b"") is None
    with pytest.raises(EOFError):
        swarm.on_gossip(bytes([1, 2, 3]))

    assert swarm.on_gossip_broadcast(1, bytes([1, 2, 3])) is None
    with pytest.raises(EOFError):
        swarm.on_gossip_broadcast(2, bytes([1, 2, 3]))

    peer = swarm.find_peer(123)
    assert peer.name == 123
    assert swarm.find_peer(123) is peer

    swarm.on_peer_offline(123)
    assert not swarm.members.contains(123)

    swarm.close()
    assert gossip.stopped


def test_num_peers_without_gossip():
    assert make_swarm().num_peers() == 0


def test_notify():
    gossip = FakeGossip()
    swarm = make_swarm(gossip)
    encoded = SubscriptionEvent(peer=1, conn=5, ssid=(1, 2, 3)).encode()

    swarm.notify_subscribe(5, [1, 2, 3])
    assert swarm.state.contains(encoded)
    assert len(gossip.broadcasts) == 1
    assert gossip.broadcasts[0].contains(encoded)

    swarm.notify_unsubscribe(5, [1, 2, 3])
    assert not swarm.state.contains(encoded)
    assert len(gossip.broadcasts) == 2
    assert gossip.broadcasts[1].all()[encoded].is_removed()


def test_merge_subscribes():
    incoming = SubscriptionState()
    incoming.add(SubscriptionEvent(peer=2, conn=30, ssid=(1, 2, 3)).encode())

    calls = []
    swarm = make_swarm(FakeGossip(), on_subscribe=lambda ssid, peer: calls.append((ssid, peer.name)) or True)
    swarm.members.touch(2)

    delta = swarm.merge(incoming.encode()[0])
    assert calls == [((1, 2, 3), 2)]
    assert len(delta) == 1


def test_merge_unsubscribes():
    encoded = SubscriptionEvent(peer=2, conn=30, ssid=(4, 5)).encode()
    clock = iter([10, 20])
    incoming = SubscriptionState(clock=lambda: next(clock))
    incoming.add(encoded)
    buf_add = incoming.encode()[0]

    removed = SubscriptionState(
        decode_subscription_state(buf_add).all(), clock=lambda: 30
    )
    removed.remove(encoded)

    unsubscribed = []
    swarm = make_swarm(
        FakeGossip(),
        on_unsubscribe=lambda ssid, peer: unsubscribed.append(ssid) or True,
    )
    swarm.merge(buf_add)
    swarm.merge(removed.encode()[0])
    assert unsubscribed == [(4, 5)]


def test_merge_skips_own_events():
    incoming = SubscriptionState()
    incoming.add(SubscriptionEvent(peer=1, conn=30, ssid=(1,)).encode())
    calls = []
    swarm = make_swarm(on_subscribe=lambda ssid, peer: calls.append(ssid) or True)
    swarm.merge(incoming.encode()[0])
    assert calls == []
    assert not swarm.members.contains(1)


def test_peer_offline_unsubscribes():
    gossip = FakeGossip()
    unsubscribed = []
    swarm = make_swarm(gossip, on_unsubscribe=lambda ssid, peer: unsubscribed.append((ssid, peer.name)) or True)
    peer = swarm.find_peer(5)
    assert peer.on_subscribe("x", (1, 2))

    swarm.on_peer_offline(5)
    assert unsubscribed == [((1, 2), 5)]
    assert len(gossip.broadcasts) == 1
    assert not swarm.members.contains(5)


def test_peer_offline_unknown_peer():
    gossip = FakeGossip()
    swarm = make_swarm(gossip)
    swarm.on_peer_offline(42)
    assert gossip.broadcasts == []


def test_join_without_gossip():
    swarm = make_swarm()
    assert swarm.join("localhost", "127.0.0.1", "127.0.0.1:4000") == []


def test_join_with_gossip():
    gossip = FakeGossip()
    swarm = make_swarm(gossip)
    errors = swarm.join("127.0.0.1", "127.0.0.1:4000")
    assert errors == []
    assert gossip.connected == ["127.0.0.1", "127.0.0.1:4000"]


@pytest.mark.parametrize(
    "node_name, expected",
    [
        ("00:00:00:00:00:01", 1),
        ("00:00:00:00:00:7b", 123),
        ("", 77),
        ("not-a-name", 77),
    ],
)
def test_local_peer_name(node_name, expected):
    assert local_peer_name(ClusterConfig(node_name=node_name), 77) == expected