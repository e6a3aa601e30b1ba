"""
Network graph.

Holds the nodes an adapter created and the connections between them.
Connections are unordered pairs: connecting A to B peers both nodes with
each other, and (A, B) and (B, A) name the same connection.

Every state change is recorded as a `NetworkEvent` in a bounded history,
which the HTTP surface serves to external test harnesses.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from les_sim.metrics import connection_operations, connections_active, nodes_running
from les_sim.types import ConnectionStateError, NodeStateError, SimulatorError

from .adapters import AdapterNode, NodeAdapter, NodeConfig

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 1024
"""Number of events kept."""


class EventType(StrEnum):
    """What a network event is about."""

    NODE = "node"
    CONN = "conn"


@dataclass(frozen=True, slots=True)
class NetworkEvent:
    """A node going up or down, or a connection being made or dropped."""

    type: EventType
    up: bool
    node: str | None = None
    one: str | None = None
    other: str | None = None
    time: float = field(default_factory=time.time)

    def to_json(self) -> dict[str, Any]:
        """JSON-friendly form."""
        return {
            "type": str(self.type),
            "up": self.up,
            "node": self.node,
            "one": self.one,
            "other": self.other,
            "time": self.time,
        }


@dataclass(frozen=True, slots=True)
class Connection:
    """An established link between two nodes."""

    one: str
    """Node id of the side that initiated the connection."""

    other: str
    """Node id of the other side."""

    @property
    def key(self) -> frozenset[str]:
        """Order-independent identity of the pair."""
        return frozenset((self.one, self.other))

    def to_json(self) -> dict[str, Any]:
        """JSON-friendly form."""
        return {"one": self.one, "other": self.other, "up": True}


def _role(node: AdapterNode) -> str:
    properties = node.config.properties
    return properties[0] if properties else "unknown"


class Network:
    """
    Nodes plus the connections between them.

    Thread-safe. Each method holds the network lock for its whole body,
    including the adapter calls it makes.
    """

    def __init__(
        self,
        adapter: NodeAdapter,
        network_id: str = "0",
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self.adapter = adapter
        self.id = network_id
        self._nodes: dict[str, AdapterNode] = {}
        self._conns: dict[frozenset[str], Connection] = {}
        self._events: deque[NetworkEvent] = deque(maxlen=history)
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def new_node(self, config: NodeConfig) -> AdapterNode:
        """
        Create a node in the constructed state.

        Raises:
            NodeStateError: If the id or name is already taken.
            ConfigurationError: If the adapter rejects the config.
        """
        with self._lock:
            if config.id in self._nodes:
                raise NodeStateError(f"node with id {config.id} already exists")
            if any(n.config.name == config.name for n in self._nodes.values()):
                raise NodeStateError(f"node with name {config.name} already exists")
            node = self.adapter.new_node(config)
            self._nodes[config.id] = node
        logger.debug("Created node %s (%s)", config.name, config.id[:16])
        return node

    def get_node(self, node_id: str) -> AdapterNode:
        """
        Look up a node by id.

        Raises:
            NodeStateError: If no such node exists.
        """
        with self._lock:
            try:
                return self._nodes[node_id]
            except KeyError:
                raise NodeStateError(f"unknown node {node_id}") from None

    def find_node(self, ref: str) -> AdapterNode | None:
        """Look up a node by id or name."""
        with self._lock:
            node = self._nodes.get(ref)
            if node is not None:
                return node
            for node in self._nodes.values():
                if node.config.name == ref:
                    return node
            return None

    def nodes(self) -> list[AdapterNode]:
        """All nodes, in creation order."""
        with self._lock:
            return list(self._nodes.values())

    def start(self, node_id: str) -> None:
        """
        Start a node.

        Raises:
            NodeStateError: If the node is unknown or already running.
            ConstructionError: If its service cannot be built.
        """
        with self._lock:
            node = self.get_node(node_id)
            node.start()
            nodes_running.labels(role=_role(node)).inc()
            self._events.append(NetworkEvent(EventType.NODE, up=True, node=node_id))
        logger.debug("Node %s up", node.config.name)

    def stop(self, node_id: str) -> None:
        """
        Stop a node and drop its connections.

        Raises:
            NodeStateError: If the node is unknown or not running.
        """
        with self._lock:
            node = self.get_node(node_id)
            node.stop()
            nodes_running.labels(role=_role(node)).dec()
            for key, conn in list(self._conns.items()):
                if node_id in key:
                    other = self._nodes[conn.other if conn.one == node_id else conn.one]
                    other.remove_peer(node_id)
                    del self._conns[key]
                    connections_active.dec()
                    self._events.append(
                        NetworkEvent(EventType.CONN, up=False, one=conn.one, other=conn.other)
                    )
            self._events.append(NetworkEvent(EventType.NODE, up=False, node=node_id))
        logger.debug("Node %s down", node.config.name)

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    def connect(self, one_id: str, other_id: str) -> None:
        """
        Peer two running nodes with each other.

        If the second side refuses, the first side drops the peer again.

        Raises:
            ConnectionStateError: If the pair is already connected, a node
                is not running, or both ids name the same node.
            PeerRejectedError: If either service refuses the peer.
        """
        with self._lock:
            try:
                one, other = self._pair(one_id, other_id)
                key = frozenset((one_id, other_id))
                if key in self._conns:
                    raise ConnectionStateError(
                        f"already connected: {one.config.name} - {other.config.name}"
                    )
                one.add_peer(other.peer())
                try:
                    other.add_peer(one.peer())
                except SimulatorError:
                    one.remove_peer(other_id)
                    raise
            except SimulatorError:
                connection_operations.labels(operation="connect", result="error").inc()
                raise
            self._conns[key] = Connection(one_id, other_id)
            connections_active.inc()
            connection_operations.labels(operation="connect", result="ok").inc()
            self._events.append(NetworkEvent(EventType.CONN, up=True, one=one_id, other=other_id))
        logger.debug("Connected %s - %s", one.config.name, other.config.name)

    def disconnect(self, one_id: str, other_id: str) -> None:
        """
        Drop the connection between two nodes.

        Raises:
            ConnectionStateError: If the pair is not connected.
        """
        with self._lock:
            try:
                one, other = self._pair(one_id, other_id, require_running=False)
                key = frozenset((one_id, other_id))
                if key not in self._conns:
                    raise ConnectionStateError(
                        f"not connected: {one.config.name} - {other.config.name}"
                    )
            except SimulatorError:
                connection_operations.labels(operation="disconnect", result="error").inc()
                raise
            one.remove_peer(other_id)
            other.remove_peer(one_id)
            del self._conns[key]
            connections_active.dec()
            connection_operations.labels(operation="disconnect", result="ok").inc()
            self._events.append(NetworkEvent(EventType.CONN, up=False, one=one_id, other=other_id))
        logger.debug("Disconnected %s - %s", one.config.name, other.config.name)

    def _pair(
        self,
        one_id: str,
        other_id: str,
        *,
        require_running: bool = True,
    ) -> tuple[AdapterNode, AdapterNode]:
        if one_id == other_id:
            raise ConnectionStateError(f"cannot connect node {one_id} to itself")
        one = self.get_node(one_id)
        other = self.get_node(other_id)
        if require_running:
            for node in (one, other):
                if not node.running:
                    raise ConnectionStateError(f"node {node.config.name} not running")
        return one, other

    def get_conn(self, one_id: str, other_id: str) -> Connection | None:
        """The connection between two nodes, in either order."""
        with self._lock:
            return self._conns.get(frozenset((one_id, other_id)))

    def conns(self) -> list[Connection]:
        """All established connections, in the order they were made."""
        with self._lock:
            return list(self._conns.values())

    def events(self) -> list[NetworkEvent]:
        """Recorded events, oldest first."""
        with self._lock:
            return list(self._events)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        """Stop every running node (best effort) and release the adapter."""
        with self._lock:
            for node in self._nodes.values():
                if not node.running:
                    continue
                try:
                    self.stop(node.id)
                except SimulatorError as e:
                    logger.warning("Failed to stop node %s: %s", node.config.name, e)
            self.adapter.close()
        logger.info("Network %s shut down", self.id)

    def to_json(self) -> dict[str, Any]:
        """Snapshot of nodes and connections."""
        with self._lock:
            return {
                "id": self.id,
                "nodes": [node.info() for node in self._nodes.values()],
                "conns": [conn.to_json() for conn in self._conns.values()],
            }
