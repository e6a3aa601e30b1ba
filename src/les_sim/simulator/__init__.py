"""
Cluster orchestration.

Builds simulated networks of light clients and servers from a declarative
configuration and drives their lifecycle and topology.
"""

from .adapters import AdapterKind, NodeConfig, create_adapter
from .cluster import Cluster, ClusterConfig, ClusterNode, client_lifecycle, server_lifecycle
from .network import Connection, EventType, Network, NetworkEvent
from .rwlock import ReadWriteLock
from .services import (
    ClientServiceConfig,
    LesClientService,
    LesServerService,
    ServerServiceConfig,
    new_client_service,
    new_server_service,
)
from .topology import Conn, format_topology, full_bipartite, full_mesh, parse_topology

__all__ = [
    # Topology
    "Conn",
    "format_topology",
    "full_bipartite",
    "full_mesh",
    "parse_topology",
    # Services
    "ClientServiceConfig",
    "LesClientService",
    "LesServerService",
    "ServerServiceConfig",
    "new_client_service",
    "new_server_service",
    # Adapters and network
    "AdapterKind",
    "NodeConfig",
    "create_adapter",
    "Connection",
    "EventType",
    "Network",
    "NetworkEvent",
    "ReadWriteLock",
    # Cluster
    "Cluster",
    "ClusterConfig",
    "ClusterNode",
    "client_lifecycle",
    "server_lifecycle",
]
