"""Broker configuration: reading, writing and default values."""

from __future__ import annotations

import ipaddress
import json
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CHANNEL_SEPARATOR = "/"
MAX_MESSAGE_SIZE = 65536
ENCODING_BUFFER_SIZE = 65536

_ANY_HOSTS = {"": "0.0.0.0", "any": "0.0.0.0", "loopback": "127.0.0.1", "localhost": "127.0.0.1"}
_LOCAL_HOSTS = {"private", "public", "external"}


class AddressError(ValueError):
    """Raised when a listen or advertise address cannot be parsed."""


def _local_ip() -> str:
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return "127.0.0.1"


def _parse_port(text: str, original: str) -> int:
    if not text.isdigit():
        raise AddressError(f"invalid port in address {original!r}")
    port = int(text)
    if port > 65535:
        raise AddressError(f"port out of range in address {original!r}")
    return port


def _split(text: str, default_port: int) -> tuple[str, int]:
    if text.startswith("["):
        end = text.find("]")
        if end < 0:
            raise AddressError(f"unterminated IPv6 address {text!r}")
        host, rest = text[1:end], text[end + 1 :]
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise AddressError(f"invalid address {text!r}")
        return host, _parse_port(rest[1:], text)
    if text.count(":") == 1:
        host, _, port = text.partition(":")
        return host, _parse_port(port, text)
    return text, default_port


def _resolve_host(host: str, original: str) -> str:
    name = host.lower()
    if name in _ANY_HOSTS:
        return _ANY_HOSTS[name]
    if name in _LOCAL_HOSTS:
        return _local_ip()
    try:
        return str(ipaddress.ip_address(host))
    except ValueError as exc:
        raise AddressError(f"unable to parse address {original!r}") from exc


def parse_address(text: str, default_port: int) -> tuple[str, int]:
    """Parse ``host:port`` into a (host, port) pair, using ``default_port`` if absent."""
    text = text.strip()
    host, port = _split(text, default_port)
    return _resolve_host(host, text), port


@dataclass
class TLSConfig:
    listen_addr: str = ""
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderConfig:
    provider: str = ""
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class ClusterConfig:
    node_name: str = ""
    listen_addr: str = ""
    advertise_addr: str = ""
    seed: str = ""
    passphrase: str = ""


@dataclass
class LimitConfig:
    message_size: int = 0


def _tls_to_dict(tls: TLSConfig) -> dict[str, Any]:
    return {**tls.options, "listen": tls.listen_addr}


def _tls_from_dict(data: dict[str, Any]) -> TLSConfig:
    rest = dict(data)
    return TLSConfig(listen_addr=rest.pop("listen", ""), options=rest)


def _provider_to_dict(provider: ProviderConfig) -> dict[str, Any]:
    return {**provider.options, "provider": provider.provider}


def _provider_from_dict(data: dict[str, Any] | None) -> ProviderConfig | None:
    if data is None:
        return None
    rest = dict(data)
    return ProviderConfig(provider=rest.pop("provider", ""), options=rest)


def _cluster_to_dict(cluster: ClusterConfig) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if cluster.node_name:
        out["name"] = cluster.node_name
    out["listen"] = cluster.listen_addr
    out["advertise"] = cluster.advertise_addr
    if cluster.seed:
        out["seed"] = cluster.seed
    if cluster.passphrase:
        out["passphrase"] = cluster.passphrase
    return out


def _cluster_from_dict(data: dict[str, Any]) -> ClusterConfig:
    return ClusterConfig(
        node_name=data.get("name", ""),
        listen_addr=data.get("listen", ""),
        advertise_addr=data.get("advertise", ""),
        seed=data.get("seed", ""),
        passphrase=data.get("passphrase", ""),
    )


_PROVIDER_KEYS = ("storage", "contract", "metering", "logging", "monitor")


@dataclass
class Config:
    """The main broker configuration."""

    listen_addr: str = ""
    license: str = ""
    limit: LimitConfig | None = None
    tls: TLSConfig | None = None
    cluster: ClusterConfig | None = None
    storage: ProviderConfig | None = None
    contract: ProviderConfig | None = None
    metering: ProviderConfig | None = None
    logging: ProviderConfig | None = None
    monitor: ProviderConfig | None = None
    vault: dict[str, Any] = field(default_factory=dict)
    dynamo: dict[str, Any] = field(default_factory=dict)
    _listen_address: tuple[str, int] | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def max_message_bytes(self) -> int:
        """Maximum message size, falling back to the default when unset."""
        if self.limit is None or self.limit.message_size <= 0:
            return MAX_MESSAGE_SIZE
        return self.limit.message_size

    def addr(self) -> tuple[str, int]:
        """The parsed listen address; raises AddressError if invalid."""
        if self._listen_address is None:
            self._listen_address = parse_address(self.listen_addr, 8080)
        return self._listen_address

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"listen": self.listen_addr, "license": self.license}
        if self.limit is not None:
            out["limit"] = (
                {"messageSize": self.limit.message_size} if self.limit.message_size else {}
            )
        if self.tls is not None:
            out["tls"] = _tls_to_dict(self.tls)
        if self.cluster is not None:
            out["cluster"] = _cluster_to_dict(self.cluster)
        for key in _PROVIDER_KEYS:
            provider = getattr(self, key)
            if provider is not None:
                out[key] = _provider_to_dict(provider)
        if self.vault:
            out["vault"] = dict(self.vault)
        if self.dynamo:
            out["dynamodb"] = dict(self.dynamo)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        limit = data.get("limit")
        tls = data.get("tls")
        cluster = data.get("cluster")
        return cls(
            listen_addr=data.get("listen", ""),
            license=data.get("license", ""),
            limit=None if limit is None else LimitConfig(limit.get("messageSize", 0)),
            tls=None if tls is None else _tls_from_dict(tls),
            cluster=None if cluster is None else _cluster_from_dict(cluster),
            vault=dict(data.get("vault") or {}),
            dynamo=dict(data.get("dynamodb") or {}),
            **{key: _provider_from_dict(data.get(key)) for key in _PROVIDER_KEYS},
        )


def new_default() -> Config:
    """Create the default configuration."""
    return Config(
        listen_addr=":8080",
        tls=TLSConfig(listen_addr=":443"),
        cluster=ClusterConfig(listen_addr=":4000", advertise_addr="external:4000"),
        storage=ProviderConfig(provider="inmemory"),
    )


def load(filename: str | Path) -> Config:
    """Read the configuration file, creating it with defaults if it is missing."""
    path = Path(filename)
    if not path.exists():
        config = new_default()
        path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
        return config

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ValueError(f"unable to parse configuration, due to {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("unable to parse configuration, due to a non-object document")
    return Config.from_dict(data)