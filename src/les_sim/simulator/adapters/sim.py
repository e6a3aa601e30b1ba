"""In-process adapter: every node's service lives in the calling process."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from les_sim.node import LocalPeer, NodeService, Peer
from les_sim.types import NodeStateError

from .base import (
    AdapterKind,
    LifecycleConstructor,
    NodeConfig,
    base_info,
    lookup_constructor,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SimNode:
    """
    A node whose service runs in-process.

    The constructor is invoked on every start, so a stop/start cycle
    rebuilds the service from the bootstrap chain.
    """

    config: NodeConfig
    constructor: LifecycleConstructor

    service: NodeService | None = None
    """Service of the current (or last) run. None before the first start."""

    _lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def running(self) -> bool:
        return self.service is not None and self.service.running

    def start(self) -> None:
        with self._lock:
            if self.running:
                raise NodeStateError(f"node {self.config.name} already running")
            service = self.constructor.create(self.config.context())
            service.start()
            self.service = service
        logger.debug("Started in-process node %s", self.config.name)

    def stop(self) -> None:
        with self._lock:
            if self.service is None or not self.service.running:
                raise NodeStateError(f"node {self.config.name} not running")
            self.service.stop()
        logger.debug("Stopped in-process node %s", self.config.name)

    def _running_service(self) -> NodeService:
        service = self.service
        if service is None or not service.running:
            raise NodeStateError(f"node {self.config.name} not running")
        return service

    def peer(self) -> Peer:
        return LocalPeer(self._running_service())

    def add_peer(self, peer: Peer) -> None:
        self._running_service().add_peer(peer)

    def remove_peer(self, peer_id: str) -> bool:
        if self.service is None:
            return False
        return self.service.remove_peer(peer_id)

    def info(self) -> dict[str, Any]:
        status = base_info(self.config, self.running)
        if self.service is not None:
            status.update(self.service.info())
        return status


class SimAdapter:
    """Creates in-process nodes from registered constructors."""

    kind = AdapterKind.SIM

    def __init__(self, constructors: Mapping[str, LifecycleConstructor]) -> None:
        self.constructors = dict(constructors)

    def new_node(self, config: NodeConfig) -> SimNode:
        return SimNode(config=config, constructor=lookup_constructor(self.constructors, config))

    def close(self) -> None:
        """Nothing to release."""
