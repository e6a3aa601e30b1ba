"""
Node adapters.

Pick how nodes are executed: `sim` keeps every node in the calling process,
`exec` runs each node as a child process.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from .base import (
    AdapterKind,
    AdapterNode,
    LifecycleConstructor,
    NodeAdapter,
    NodeConfig,
    resolve_kind,
)
from .exec import ExecAdapter, ExecNode
from .remote import RemoteNodeError, RemotePeer
from .sim import SimAdapter, SimNode


def create_adapter(
    kind: str | AdapterKind,
    constructors: Mapping[str, LifecycleConstructor],
    base_dir: Path | str | None = None,
) -> NodeAdapter:
    """
    Create an adapter bound to the registered constructors.

    Args:
        kind: "sim" / "in-process" or "exec" / "subprocess".
        constructors: Lifecycle name to service constructor.
        base_dir: Working directory of subprocess nodes. None means a
            temporary directory removed on close.

    Raises:
        UnsupportedAdapterError: If the kind is unknown.
    """
    if resolve_kind(kind) is AdapterKind.SIM:
        return SimAdapter(constructors)
    return ExecAdapter(constructors, base_dir)


__all__ = [
    "AdapterKind",
    "AdapterNode",
    "ExecAdapter",
    "ExecNode",
    "LifecycleConstructor",
    "NodeAdapter",
    "NodeConfig",
    "RemoteNodeError",
    "RemotePeer",
    "SimAdapter",
    "SimNode",
    "create_adapter",
    "resolve_kind",
]
