"""
Node adapter interface.

An adapter decides how a node's protocol stack is physically executed.
The network graph and the cluster only see the `NodeAdapter` and
`AdapterNode` protocols below, never adapter internals.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final, Protocol

from les_sim.node import NodeService, Peer, ServiceContext
from les_sim.types import ConfigurationError, UnsupportedAdapterError

READY_PREFIX: Final = "READY "
"""Line a subprocess node prints once its control server is up, followed by its URL."""

ERROR_PREFIX: Final = "ERROR "
"""Line a subprocess node prints when its service cannot be built."""


class AdapterKind(StrEnum):
    """Supported execution strategies."""

    SIM = "sim"
    """Every node in the calling process."""

    EXEC = "exec"
    """One child process per node, driven over local HTTP."""


_KIND_ALIASES: dict[str, AdapterKind] = {
    "sim": AdapterKind.SIM,
    "in-process": AdapterKind.SIM,
    "exec": AdapterKind.EXEC,
    "subprocess": AdapterKind.EXEC,
}


def resolve_kind(kind: str | AdapterKind) -> AdapterKind:
    """
    Normalize an adapter kind or one of its aliases.

    Raises:
        UnsupportedAdapterError: If the kind is unknown.
    """
    try:
        return _KIND_ALIASES[str(kind)]
    except KeyError:
        raise UnsupportedAdapterError(str(kind)) from None


class LifecycleConstructor(Protocol):
    """Builds a fresh service for a node each time it starts."""

    def create(self, ctx: ServiceContext) -> NodeService: ...


@dataclass(frozen=True, slots=True)
class NodeConfig:
    """How a node is identified and which service it runs."""

    id: str
    """Unique node id (64 hex characters)."""

    name: str
    """Human-readable node name, unique within a network."""

    lifecycles: tuple[str, ...]
    """Registered constructor names. The first one is instantiated."""

    properties: tuple[str, ...] = ()
    """Role tags."""

    external_signer: str | None = None
    """Signing daemon endpoint handed to the service."""

    log_file: str = ""
    """Log destination of subprocess nodes. Empty means the node directory."""

    log_level: str = "INFO"
    """Logging level name of subprocess nodes."""

    @classmethod
    def random(cls, *, name: str | None = None, **kwargs: Any) -> NodeConfig:
        """Create a config with a fresh random id. The name defaults to a prefix of the id."""
        node_id = secrets.token_hex(32)
        return cls(id=node_id, name=name or f"node_{node_id[:8]}", **kwargs)

    def context(self) -> ServiceContext:
        """What the service is told about the node it runs in."""
        return ServiceContext(
            node_id=self.id,
            name=self.name,
            properties=self.properties,
            external_signer=self.external_signer,
        )

    def to_json(self) -> dict[str, Any]:
        """JSON-friendly form."""
        return {
            "id": self.id,
            "name": self.name,
            "lifecycles": list(self.lifecycles),
            "properties": list(self.properties),
            "externalSigner": self.external_signer,
            "logFile": self.log_file,
            "logLevel": self.log_level,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> NodeConfig:
        """Inverse of `to_json`."""
        return cls(
            id=data["id"],
            name=data["name"],
            lifecycles=tuple(data.get("lifecycles", ())),
            properties=tuple(data.get("properties", ())),
            external_signer=data.get("externalSigner"),
            log_file=data.get("logFile", ""),
            log_level=data.get("logLevel", "INFO"),
        )


class AdapterNode(Protocol):
    """A node as seen by the network graph."""

    config: NodeConfig

    @property
    def id(self) -> str:
        """Node id."""
        ...

    @property
    def running(self) -> bool:
        """Whether the node's service is up."""
        ...

    def start(self) -> None:
        """
        Instantiate and start the service.

        Raises:
            NodeStateError: If the node is already running.
            ConstructionError: If the service cannot be created.
        """
        ...

    def stop(self) -> None:
        """
        Stop the service.

        Raises:
            NodeStateError: If the node is not running.
        """
        ...

    def peer(self) -> Peer:
        """A handle other nodes of the same adapter can peer with."""
        ...

    def add_peer(self, peer: Peer) -> None:
        """
        Peer with another node.

        Raises:
            PeerRejectedError: If the service refuses the peer.
        """
        ...

    def remove_peer(self, peer_id: str) -> bool:
        """Drop a peer. Returns whether it was connected."""
        ...

    def info(self) -> dict[str, Any]:
        """JSON-friendly node status."""
        ...


class NodeAdapter(Protocol):
    """Creates nodes bound to registered constructors."""

    kind: AdapterKind

    def new_node(self, config: NodeConfig) -> AdapterNode:
        """
        Create a node in the constructed state.

        Raises:
            ConfigurationError: If a lifecycle name is not registered.
        """
        ...

    def close(self) -> None:
        """Release adapter-wide resources."""
        ...


def lookup_constructor(
    constructors: Mapping[str, LifecycleConstructor],
    config: NodeConfig,
) -> LifecycleConstructor:
    """
    Pick the constructor a node runs.

    Raises:
        ConfigurationError: If the node names no lifecycle or an unknown one.
    """
    if not config.lifecycles:
        raise ConfigurationError(f"node {config.name} has no lifecycle")
    for name in config.lifecycles:
        if name not in constructors:
            raise ConfigurationError(f"unknown lifecycle {name!r} for node {config.name}")
    return constructors[config.lifecycles[0]]


def base_info(config: NodeConfig, running: bool) -> dict[str, Any]:
    """Node status fields every adapter reports."""
    return {
        "id": config.id,
        "name": config.name,
        "properties": list(config.properties),
        "running": running,
    }
