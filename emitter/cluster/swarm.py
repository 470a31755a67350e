"""The gossip-based layer that keeps the cluster's subscriptions in sync."""

from __future__ import annotations

import logging
import socket
from typing import Any, Callable, Iterable, Protocol, Sequence

from emitter.cluster.events import (
    SubscriptionEvent,
    SubscriptionState,
    decode_subscription_event,
    decode_subscription_state,
)
from emitter.cluster.memberlist import Memberlist
from emitter.cluster.peer import Peer, parse_peer_name
from emitter.config import ClusterConfig, parse_address

logger = logging.getLogger("emitter.swarm")

Ssid = Sequence[int]
SubscribeHandler = Callable[[tuple[int, ...], Peer], bool]
MessageHandler = Callable[[Any], None]


class Gossip(Protocol):
    """The transport the swarm gossips and forwards message frames over."""

    def gossip_broadcast(self, data: SubscriptionState) -> None: ...

    def gossip_unicast(self, dst: int, msg: bytes) -> None: ...

    def num_connections(self) -> int: ...

    def initiate_connections(self, addrs: list[str]) -> list[Exception]: ...

    def stop(self) -> None: ...


def local_peer_name(cluster_config: ClusterConfig, default: int) -> int:
    """Return the configured node name as a peer name, or ``default``."""
    if cluster_config.node_name:
        try:
            return parse_peer_name(cluster_config.node_name)
        except ValueError:
            logger.error("swarm: getting node name failed for %r", cluster_config.node_name)
    return default


def _resolve(host: str) -> list[str]:
    infos = socket.getaddrinfo(host, None)
    return list(dict.fromkeys(str(info[4][0]) for info in infos))


class Swarm:
    """Gossips subscription state and forwards messages between peers."""

    def __init__(
        self,
        name: int,
        gossip: Gossip | None,
        frame_encoder: Callable[[Sequence[Any]], bytes],
        frame_decoder: Callable[[bytes], Iterable[Any]],
        on_subscribe: SubscribeHandler | None = None,
        on_unsubscribe: SubscribeHandler | None = None,
        on_message: MessageHandler | None = None,
    ) -> None:
        self.name = name
        self.gossip = gossip
        self.frame_encoder = frame_encoder
        self.frame_decoder = frame_decoder
        self.on_subscribe = on_subscribe or (lambda ssid, peer: True)
        self.on_unsubscribe = on_unsubscribe or (lambda ssid, peer: True)
        self.on_message = on_message or (lambda message: None)
        self.state = SubscriptionState()
        self.members = Memberlist(self._new_peer)

    def _unicast(self, dst: int, msg: bytes) -> None:
        if self.gossip is None:
            raise RuntimeError("no gossip transport configured")
        self.gossip.gossip_unicast(dst, msg)

    def _broadcast(self, op: SubscriptionState) -> None:
        if self.gossip is not None:
            self.gossip.gossip_broadcast(op)

    def _new_peer(self, name: int) -> Peer:
        return Peer(name, self._unicast, self.frame_encoder)

    def _on_peer_online(self, peer: Peer) -> None:
        logger.info("swarm: peer created %s", peer.id())
        for ssid in list(peer.subscriptions):
            self.on_subscribe(ssid, peer)

    def id(self) -> int:
        return self.name

    def num_peers(self) -> int:
        """The number of peers this node is connected to."""
        if self.gossip is None:
            return 0
        return self.gossip.num_connections()

    def find_peer(self, name: int) -> Peer:
        """Return the peer for ``name``, creating and announcing it if new."""
        peer, added = self.members.get_or_add(name)
        if added:
            self._on_peer_online(peer)
        return peer

    def on_peer_offline(self, name: int) -> None:
        """Drop an unreachable peer along with all of its subscriptions."""
        peer = self.members.remove(name)
        if peer is None:
            return

        logger.info("swarm: unreachable peer removed %s", peer.id())
        peer.close()
        for ssid in list(peer.subscriptions):
            self.on_unsubscribe(ssid, peer)

        op = SubscriptionState()
        op.remove_all(name)
        self._broadcast(op)

    def join(self, *args: str) -> list[Exception]:
        """Resolve the given hosts or addresses and connect to them."""
        errors: list[Exception] = []
        addrs: list[str] = []
        for host in args:
            try:
                addrs.extend(_resolve(host))
                continue
            except (OSError, UnicodeError):
                pass

            try:
                ip, port = parse_address(host, 80)
            except ValueError as exc:
                errors.append(exc)
                continue
            addrs.append(f"[{ip}]:{port}" if ":" in ip else f"{ip}:{port}")

        for addr in addrs:
            logger.info("swarm: joining %s", addr)

        if self.gossip is not None:
            errors = list(self.gossip.initiate_connections(addrs))
        return errors

    def merge(self, buf: bytes) -> SubscriptionState:
        """Merge an incoming encoded state and return the delta learnt from it."""
        other = decode_subscription_state(buf)
        delta = self.state.merge(other)
        for key, entry in other.all().items():
            event = decode_subscription_event(key)
            if event.peer == self.name:
                continue

            peer = self.find_peer(event.peer)
            if entry.is_added() and peer.on_subscribe(key, event.ssid) and peer.is_active():
                self.on_subscribe(event.ssid, peer)
            if entry.is_removed() and peer.on_unsubscribe(key, event.ssid) and peer.is_active():
                self.on_unsubscribe(event.ssid, peer)
        return delta

    def gossip_state(self) -> SubscriptionState:
        """The complete state this node knows of."""
        return self.state

    def _merge_logged(self, buf: bytes) -> SubscriptionState:
        try:
            return self.merge(buf)
        except Exception as exc:
            logger.error("merge: merging failed: %s", exc)
            raise

    def on_gossip(self, buf: bytes) -> SubscriptionState | None:
        """Merge gossiped state; None when the payload carries nothing."""
        if len(buf) <= 1:
            return None
        return self._merge_logged(buf)

    def on_gossip_broadcast(self, src: int, buf: bytes) -> SubscriptionState | None:
        """Merge a broadcast from another node; our own broadcasts are ignored."""
        if src == self.name:
            logger.info("merge: got our own broadcast")
            return None
        return self._merge_logged(buf)

    def on_gossip_unicast(self, src: int, buf: bytes) -> None:
        """Decode a forwarded message frame and hand each message on."""
        try:
            frame = self.frame_decoder(buf)
        except Exception as exc:
            logger.error("swarm: decode frame failed: %s", exc)
            raise
        for message in frame:
            self.on_message(message)

    def _event(self, conn: int, ssid: Ssid) -> str:
        return SubscriptionEvent(peer=self.name, conn=conn, ssid=tuple(ssid)).encode()

    def notify_subscribe(self, conn: int, ssid: Ssid) -> None:
        """Record a local subscription and broadcast it to the cluster."""
        encoded = self._event(conn, ssid)
        self.state.add(encoded)
        op = SubscriptionState()
        op.add(encoded)
        self._broadcast(op)

    def notify_unsubscribe(self, conn: int, ssid: Ssid) -> None:
        """Record a local unsubscription and broadcast it to the cluster."""
        encoded = self._event(conn, ssid)
        self.state.remove(encoded)
        op = SubscriptionState()
        op.remove(encoded)
        self._broadcast(op)

    def close(self) -> None:
        """Stop the gossip transport."""
        if self.gossip is not None:
            self.gossip.stop()