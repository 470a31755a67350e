# emitter

Building blocks for a clustered publish/subscribe broker: a last-write-wins set,
the gossiped subscription state built on it, cluster peers and the swarm that
merges their gossip, broker configuration, and the request and response objects
of the broker's `emitter/` API. The package has no dependencies outside the
standard library.

## Modules

- `emitter.lwwset` — `LWWSet`, a thread-safe last-write-wins set of strings with a
  bias for additions, and `LWWTime`, the add/delete timestamps of an element.
  `LWWSet.merge(other)` merges `other` in and leaves only the delta in `other`;
  `LWWSet.gc()` drops elements removed more than six hours ago. The clock can be
  passed in (`LWWSet(clock=...)`); by default it is `now()`, Unix nanoseconds.
- `emitter.cluster.events` — `SubscriptionEvent` (peer, connection and ssid) with a
  compact varint `encode()` and `decode_subscription_event()`; `SubscriptionState`,
  an `LWWSet` of encoded events with `encode()`, `merge()` returning the delta, and
  `remove_all(peer_name)`; `decode_subscription_state()`.
- `emitter.cluster.peer` — `Peer`, a remote peer that queues messages while it is
  active and flushes them as one encoded frame every few milliseconds through a
  sender callable; it counts subscriptions per ssid. `format_peer_name()` and
  `parse_peer_name()` convert peer names to and from `00:00:00:00:00:7b` form.
  `SubscriberType` tells direct from remote subscribers.
- `emitter.cluster.memberlist` — `Memberlist`, a thread-safe cache of peers created
  on demand by a factory, with `get_or_add`, `touch`, `contains` and `remove`.
- `emitter.cluster.swarm` — `Swarm`, which records local subscriptions in its state
  and broadcasts them, merges incoming gossip (`on_gossip`, `on_gossip_broadcast`),
  calls `on_subscribe` / `on_unsubscribe` for remote peers, hands decoded message
  frames to `on_message` (`on_gossip_unicast`), and resolves hosts in `join()`.
  `local_peer_name()` reads the node name from a `ClusterConfig`.
- `emitter.config` — `Config` and its parts (`TLSConfig`, `ProviderConfig`,
  `ClusterConfig`, `LimitConfig`), `new_default()`, `load(filename)` which reads a
  JSON file or writes the defaults to it when it is missing, `Config.addr()`,
  `Config.max_message_bytes()`, and `parse_address()` which raises `AddressError`.
- `emitter.responses` — `HandlerError` and the `ERR_*` errors, `KeyGenRequest`
  (with `access` as a `Permission` flag and `expires()`), `KeyGenResponse`,
  `LinkRequest`, `LinkResponse`, `MeResponse`, `PresenceRequest`,
  `PresenceResponse`, `PresenceInfo`, `PresenceEvent`, `PresenceNotify` and
  `new_presence_notify()`. Requests are read with `from_json()`, which raises the
  bad-request `HandlerError` on malformed input; responses are written with
  `to_json()` and tagged with `for_request(request_id)`.
- `emitter.timer` — `repeat(interval, action)` runs an action now and then every
  `interval` seconds on a daemon thread, logging its exceptions, and returns a
  function that stops it.
- `emitter.bufferpool` — `BufferPool`, a thread-safe pool of reusable
  `io.BytesIO` buffers.

## Installation

```
pip install .
```

## Examples

```python
from emitter.lwwset import LWWSet

a = LWWSet()
a.add("topic/1")

b = LWWSet()
b.remove("topic/1")

a.merge(b)            # b now holds only what was new to a
print(a.contains("topic/1"))
```

```python
from emitter.cluster.events import SubscriptionEvent, decode_subscription_event

event = SubscriptionEvent(peer=657, conn=12456, ssid=(1, 2, 3))
assert decode_subscription_event(event.encode()) == event
```

```python
from emitter.config import new_default

cfg = new_default()
print(cfg.max_message_bytes())   # 65536 unless a limit is configured
```

## What the package does not do

There is no broker here to run: no command, no MQTT or WebSocket listener, no
HTTP endpoints and no message storage. `Swarm` does not open network
connections itself; it is given a gossip transport object with
`gossip_broadcast`, `gossip_unicast`, `num_connections`,
`initiate_connections` and `stop`, and a frame encoder and decoder for the
messages it forwards. Keys are not generated, encrypted or checked: the
`responses` module only carries the requests and replies of those operations.

## Tests

```
pip install .[test]
pytest
```