"""Requests, responses and errors exchanged over the broker's API channels."""

from __future__ import annotations

import dataclasses
import enum
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence

_MAX_REQUEST_ID = 0xFFFF
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def _dumps(data: Mapping[str, Any]) -> bytes:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _check_request_id(request_id: int) -> int:
    if not 0 <= request_id <= _MAX_REQUEST_ID:
        raise ValueError(f"request id {request_id} does not fit in 16 bits")
    return request_id


def _with_request(data: dict[str, Any], request: int) -> dict[str, Any]:
    return {"req": request, **data} if request else data


class HandlerError(Exception):
    """An error reported back to a client, carrying an HTTP-like status."""

    def __init__(self, status: int, message: str, request: int = 0) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.request = request

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"HandlerError(status={self.status}, message={self.message!r}, request={self.request})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HandlerError):
            return NotImplemented
        return (self.status, self.message, self.request) == (
            other.status,
            other.message,
            other.request,
        )

    def __hash__(self) -> int:
        return hash((self.status, self.message, self.request))

    def for_request(self, request_id: int) -> HandlerError:
        """Return a copy of the error tagged with the given request id."""
        return HandlerError(self.status, self.message, _check_request_id(request_id))

    def to_json(self) -> bytes:
        return _dumps(_with_request({"status": self.status, "message": self.message}, self.request))


ERR_BAD_REQUEST = HandlerError(400, "the request was invalid or cannot be otherwise served")
ERR_UNAUTHORIZED = HandlerError(
    401, "the security key provided is not authorized to perform this operation"
)
ERR_PAYMENT_REQUIRED = HandlerError(
    402, "the request can not be served, as the payment is required to proceed"
)
ERR_FORBIDDEN = HandlerError(
    403, "the request is understood, but it has been refused or access is not allowed"
)
ERR_NOT_FOUND = HandlerError(404, "the resource requested does not exist")
ERR_SERVER_ERROR = HandlerError(
    500, "an unexpected condition was encountered and no more specific message is suitable"
)
ERR_NOT_IMPLEMENTED = HandlerError(
    501,
    "the server either does not recognize the request method, "
    "or it lacks the ability to fulfill the request",
)
ERR_TARGET_INVALID = HandlerError(
    400, "channel should end with `/` for strict types or `/#/` for wildcards"
)
ERR_TARGET_TOO_LONG = HandlerError(400, "channel can not have more than 23 parts")
ERR_LINK_INVALID = HandlerError(
    400, "the link must be an alphanumeric string of 1 or 2 characters"
)


def _bad_request() -> HandlerError:
    return ERR_BAD_REQUEST.for_request(0)


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {value!r}")
    return value


def _as_int32(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer, got {value!r}")
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"integer {value} does not fit in 32 bits")
    return value


def _decode(
    payload: bytes | str,
    fields: Mapping[str, Callable[[Any], Any]],
    defaults: Mapping[str, Any],
) -> dict[str, Any]:
    """Decode a JSON object onto known fields, matching names case-insensitively."""
    try:
        data = json.loads(payload)
    except (ValueError, TypeError) as exc:
        raise _bad_request() from exc

    values = dict(defaults)
    if data is None:
        return values
    if not isinstance(data, dict):
        raise _bad_request()

    lookup = {name.lower(): name for name in fields}
    for key, value in data.items():
        name = lookup.get(key.lower())
        if name is None or value is None:
            continue
        try:
            values[name] = fields[name](value)
        except ValueError as exc:
            raise _bad_request() from exc
    return values


class Permission(enum.Flag):
    """Access rights that a generated key can carry."""

    NONE = 0
    READ = enum.auto()
    WRITE = enum.auto()
    STORE = enum.auto()
    LOAD = enum.auto()
    PRESENCE = enum.auto()
    EXTEND = enum.auto()
    EXECUTE = enum.auto()


_ACCESS_LETTERS = {
    "r": Permission.READ,
    "w": Permission.WRITE,
    "s": Permission.STORE,
    "l": Permission.LOAD,
    "p": Permission.PRESENCE,
    "e": Permission.EXTEND,
    "x": Permission.EXECUTE,
}


@dataclass
class KeyGenRequest:
    """A request to generate a channel key from a master key."""

    key: str = ""
    channel: str = ""
    type: str = ""
    ttl: int = 0

    @classmethod
    def from_json(cls, payload: bytes | str) -> KeyGenRequest:
        """Decode the request; raises the bad-request error if it is malformed."""
        values = _decode(
            payload,
            {"key": _as_str, "channel": _as_str, "type": _as_str, "ttl": _as_int32},
            {"key": "", "channel": "", "type": "", "ttl": 0},
        )
        return cls(**values)

    def expires(self) -> datetime:
        """The expiry of the key: the epoch when no TTL is set."""
        if self.ttl == 0:
            return datetime.fromtimestamp(0, tz=timezone.utc)
        return datetime.now(timezone.utc) + timedelta(seconds=self.ttl)

    @property
    def access(self) -> Permission:
        """The permissions requested by the letters of ``type``."""
        required = Permission.NONE
        for letter in self.type:
            required |= _ACCESS_LETTERS.get(letter, Permission.NONE)
        return required


@dataclass
class KeyGenResponse:
    """The key generated for a keygen request."""

    status: int = 0
    key: str = ""
    channel: str = ""
    request: int = 0

    def for_request(self, request_id: int) -> KeyGenResponse:
        """Return a copy tagged with the given request id."""
        return dataclasses.replace(self, request=_check_request_id(request_id))

    def to_json(self) -> bytes:
        body = {"status": self.status, "key": self.key, "channel": self.channel}
        return _dumps(_with_request(body, self.request))


@dataclass
class LinkRequest:
    """A request to create a short link to a channel."""

    name: str = ""
    key: str = ""
    channel: str = ""
    subscribe: bool = False
    private: bool = False

    @classmethod
    def from_json(cls, payload: bytes | str) -> LinkRequest:
        """Decode the request; raises the bad-request error if it is malformed."""
        values = _decode(
            payload,
            {
                "name": _as_str,
                "key": _as_str,
                "channel": _as_str,
                "subscribe": _as_bool,
                "private": _as_bool,
            },
            {"name": "", "key": "", "channel": "", "subscribe": False, "private": False},
        )
        return cls(**values)


@dataclass
class LinkResponse:
    """The link registered for a link request."""

    status: int = 0
    name: str = ""
    channel: str = ""
    request: int = 0

    def for_request(self, request_id: int) -> LinkResponse:
        """Return a copy tagged with the given request id."""
        return dataclasses.replace(self, request=_check_request_id(request_id))

    def to_json(self) -> bytes:
        body: dict[str, Any] = {"status": self.status}
        if self.name:
            body["name"] = self.name
        if self.channel:
            body["channel"] = self.channel
        return _dumps(_with_request(body, self.request))


@dataclass
class MeResponse:
    """Information about the requesting connection."""

    id: str = ""
    links: dict[str, str] = field(default_factory=dict)
    request: int = 0

    def for_request(self, request_id: int) -> MeResponse:
        """Return a copy tagged with the given request id."""
        return dataclasses.replace(self, request=_check_request_id(request_id))

    def to_json(self) -> bytes:
        body: dict[str, Any] = {"id": self.id}
        if self.links:
            body["links"] = dict(sorted(self.links.items()))
        return _dumps(_with_request(body, self.request))


@dataclass
class PresenceRequest:
    """A request for the presence on a channel; status and changes default to on."""

    key: str = ""
    channel: str = ""
    status: bool = True
    changes: bool = True

    @classmethod
    def from_json(cls, payload: bytes | str) -> PresenceRequest:
        """Decode the request; raises the bad-request error if it is malformed."""
        values = _decode(
            payload,
            {"key": _as_str, "channel": _as_str, "status": _as_bool, "changes": _as_bool},
            {"key": "", "channel": "", "status": True, "changes": True},
        )
        return cls(**values)


class PresenceEvent(str, enum.Enum):
    """The kind of a presence message."""

    STATUS = "status"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


@dataclass(frozen=True)
class PresenceInfo:
    """The presence of a single connection."""

    id: str = ""
    username: str = ""

    def to_dict(self) -> dict[str, str]:
        out = {"id": self.id}
        if self.username:
            out["username"] = self.username
        return out


@dataclass
class PresenceResponse:
    """The current presence on a channel."""

    time: int = 0
    event: PresenceEvent = PresenceEvent.STATUS
    channel: str = ""
    who: list[PresenceInfo] = field(default_factory=list)
    request: int = 0

    def for_request(self, request_id: int) -> PresenceResponse:
        """Return a copy tagged with the given request id."""
        return dataclasses.replace(self, request=_check_request_id(request_id))

    def to_json(self) -> bytes:
        body = {
            "time": self.time,
            "event": PresenceEvent(self.event).value,
            "channel": self.channel,
            "who": [info.to_dict() for info in self.who],
        }
        return _dumps(_with_request(body, self.request))


@dataclass
class PresenceNotify:
    """A notification that a connection subscribed to or left a channel."""

    ssid: tuple[int, ...]
    time: int
    event: PresenceEvent
    channel: str
    who: PresenceInfo

    def encode(self) -> bytes:
        """The JSON payload to publish; the ssid is not part of it."""
        return _dumps(
            {
                "time": self.time,
                "event": PresenceEvent(self.event).value,
                "channel": self.channel,
                "who": self.who.to_dict(),
            }
        )


def new_presence_notify(
    ssid: Sequence[int],
    event: PresenceEvent,
    channel: str,
    id: str,
    username: str,
) -> PresenceNotify:
    """Create a notification stamped with the current time.

    ``ssid`` is the presence ssid the notification is dispatched on.
    """
    return PresenceNotify(
        ssid=tuple(ssid),
        time=int(time.time()),
        event=PresenceEvent(event),
        channel=channel,
        who=PresenceInfo(id=id, username=username),
    )