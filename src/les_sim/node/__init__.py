"""
Protocol stack stand-ins.

The cluster treats the light protocol as an opaque collaborator. These
services provide just enough behavior to drive and observe it: chain sync
on peering, light-server capacity, checkpoint trust and block production.
"""

from .peer import LocalPeer, Peer, Role
from .service import (
    FullNode,
    LightClient,
    LightServerConfig,
    NodeService,
    ServiceContext,
)

__all__ = [
    "FullNode",
    "LightClient",
    "LightServerConfig",
    "LocalPeer",
    "NodeService",
    "Peer",
    "Role",
    "ServiceContext",
]
