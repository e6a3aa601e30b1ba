"""
Node services.

The protocol stacks the cluster instantiates are stand-ins: they keep an
in-memory chain, peer with each other under the light protocol's rules and
propagate new blocks, which is all the orchestration layer needs to drive
and observe.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar

from les_sim.chain import Block, ChainStore, Header
from les_sim.chain.block import EMPTY_TX_ROOT
from les_sim.chain.config import BLOCK_PERIOD, MINER_COINBASE
from les_sim.metrics import blocks_mined
from les_sim.signer import AccountManager
from les_sim.types import Address, ChainInsertError, PeerRejectedError

from .peer import Peer, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ServiceContext:
    """What an adapter tells a service about the node it runs in."""

    node_id: str
    """Unique node id."""

    name: str
    """Node name (also the lifecycle name)."""

    properties: tuple[str, ...] = ()
    """Role tags."""

    external_signer: str | None = None
    """Signing daemon endpoint, if the node has one."""


@dataclass(slots=True)
class NodeService:
    """
    State and peering logic shared by both node roles.

    Peers are tracked under a lock. Calls into peers are always made without
    holding it, so two in-process nodes can query each other concurrently.
    """

    ROLE: ClassVar[Role]

    ctx: ServiceContext
    store: ChainStore
    account_manager: AccountManager | None = None

    _peers: dict[str, Peer] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _running: bool = False

    @property
    def peer_id(self) -> str:
        """Node id."""
        return self.ctx.node_id

    @property
    def role(self) -> Role:
        """Client or server."""
        return self.ROLE

    @property
    def serves_light(self) -> bool:
        """Whether light clients may peer with this node."""
        return False

    @property
    def running(self) -> bool:
        """Whether the service has been started and not stopped."""
        return self._running

    def peers(self) -> list[Peer]:
        """Snapshot of the connected peers."""
        with self._lock:
            return list(self._peers.values())

    def start(self) -> None:
        """Start the service."""
        self._running = True
        logger.debug("Started %s service %s", self.role, self.ctx.name)

    def stop(self) -> None:
        """Stop the service and drop every peer."""
        self._running = False
        with self._lock:
            self._peers.clear()
        logger.debug("Stopped %s service %s", self.role, self.ctx.name)

    def add_peer(self, peer: Peer) -> None:
        """
        Admit a peer and catch up with its chain.

        Raises:
            PeerRejectedError: If the peer is not acceptable or its chain
                does not extend ours.
        """
        if peer.peer_id == self.peer_id:
            raise PeerRejectedError(f"{self.ctx.name} cannot peer with itself")
        if peer.genesis_hash() != self.store.genesis_hash:
            raise PeerRejectedError(f"{self.ctx.name}: genesis mismatch with {peer.name}")

        with self._lock:
            if peer.peer_id in self._peers:
                raise PeerRejectedError(f"{self.ctx.name} already peered with {peer.name}")
            self._admit(peer)
            self._peers[peer.peer_id] = peer

        try:
            self._sync_with(peer)
        except ChainInsertError as e:
            self.remove_peer(peer.peer_id)
            raise PeerRejectedError(f"{self.ctx.name}: cannot sync with {peer.name}: {e}") from e

    def remove_peer(self, peer_id: str) -> bool:
        """Drop a peer. Returns whether it was connected."""
        with self._lock:
            return self._peers.pop(peer_id, None) is not None

    def on_announce(self, block: Block, origin: str) -> None:
        """Handle a block announced by peer `origin`. The base service ignores it."""

    def info(self) -> dict[str, Any]:
        """JSON-friendly status."""
        head = self.store.head
        return {
            "id": self.peer_id,
            "name": self.ctx.name,
            "role": str(self.role),
            "servesLight": self.serves_light,
            "running": self._running,
            "genesis": self.store.genesis_hash.to_hex(),
            "headNumber": head.number,
            "headHash": head.hash.to_hex(),
            "peers": sorted(p.peer_id for p in self.peers()),
        }

    def _admit(self, peer: Peer) -> None:
        """Role-specific admission check. Caller holds the lock."""

    def _sync_with(self, peer: Peer) -> None:
        """Pull whatever the peer has beyond our head."""

    def _origin(self, peer_id: str) -> Peer | None:
        with self._lock:
            return self._peers.get(peer_id)


@dataclass(slots=True)
class LightClient(NodeService):
    """
    Light-sync node.

    Keeps headers only, peers exclusively with light-serving full nodes and
    can pay for service. Trusted servers act as an ultra-light checkpoint
    quorum: `trusted_fraction` percent of them must be connected.
    """

    ROLE: ClassVar[Role] = Role.CLIENT

    service_pay: bool = False
    payment_address: Address = field(default_factory=Address.zero)
    trusted_servers: tuple[str, ...] = ()
    trusted_fraction: int = 0

    def _admit(self, peer: Peer) -> None:
        if peer.role is Role.CLIENT:
            raise PeerRejectedError(f"{self.ctx.name}: light clients cannot peer with each other")
        if not peer.serves_light:
            raise PeerRejectedError(f"{self.ctx.name}: {peer.name} does not serve light clients")

    def _sync_with(self, peer: Peer) -> None:
        headers = peer.headers_from(self.store.height + 1)
        if headers:
            inserted = self.store.insert_header_chain(headers)
            logger.debug("%s synced %d headers from %s", self.ctx.name, inserted, peer.name)

    def on_announce(self, block: Block, origin: str) -> None:
        try:
            if block.number > self.store.height + 1:
                peer = self._origin(origin)
                if peer is not None:
                    self._sync_with(peer)
            self.store.insert_header_chain([block.header])
        except ChainInsertError as e:
            logger.debug("%s ignored announced block: %s", self.ctx.name, e)

    def is_trusted(self, peer: Peer) -> bool:
        """Whether `peer` is one of the configured trusted servers (by id or name)."""
        return peer.peer_id in self.trusted_servers or peer.name in self.trusted_servers

    def trusted_quorum(self) -> bool:
        """Whether enough trusted servers are connected to accept their checkpoints."""
        if not self.trusted_servers:
            return True
        connected = sum(1 for peer in self.peers() if self.is_trusted(peer))
        return connected * 100 >= self.trusted_fraction * len(self.trusted_servers)

    def info(self) -> dict[str, Any]:
        status = NodeService.info(self)
        status["trustedQuorum"] = self.trusted_quorum()
        return status


@dataclass(frozen=True, slots=True)
class LightServerConfig:
    """Light protocol server extension of a full node."""

    light_serv: int
    """Serving capacity, as a percentage of one core."""

    light_peers: int
    """Maximum number of light clients served at once."""

    service_charge: bool = False
    """Whether clients are charged for service."""

    payment_address: Address = field(default_factory=Address.zero)
    """Account receiving payments."""


@dataclass(slots=True)
class FullNode(NodeService):
    """
    Full-sync node, optionally serving light clients and producing blocks.

    A mining node seals one block every `block_period` seconds once started
    and announces it to every peer. Full peers relay blocks they had not seen.
    """

    ROLE: ClassVar[Role] = Role.SERVER

    les: LightServerConfig | None = None
    mining: bool = False
    block_period: float = BLOCK_PERIOD

    _miner: threading.Thread | None = None
    _miner_stop: threading.Event = field(default_factory=threading.Event)

    @property
    def serves_light(self) -> bool:
        return self.les is not None

    def start(self) -> None:
        NodeService.start(self)
        if self.mining:
            self._miner_stop.clear()
            self._miner = threading.Thread(
                target=self._mine_loop,
                name=f"miner-{self.ctx.name}",
                daemon=True,
            )
            self._miner.start()

    def stop(self) -> None:
        self._miner_stop.set()
        if self._miner is not None:
            self._miner.join(timeout=5.0)
            self._miner = None
        NodeService.stop(self)

    def _admit(self, peer: Peer) -> None:
        if peer.role is not Role.CLIENT:
            return
        if self.les is None:
            raise PeerRejectedError(f"{self.ctx.name}: light serving is disabled")
        light_peers = sum(1 for p in self._peers.values() if p.role is Role.CLIENT)
        if light_peers >= self.les.light_peers:
            raise PeerRejectedError(
                f"{self.ctx.name}: light peer limit reached ({self.les.light_peers})"
            )

    def _sync_with(self, peer: Peer) -> None:
        if peer.role is not Role.SERVER:
            return
        if peer.head().number > self.store.height:
            inserted = self.store.insert_chain(peer.blocks_from(self.store.height + 1))
            logger.debug("%s synced %d blocks from %s", self.ctx.name, inserted, peer.name)

    def on_announce(self, block: Block, origin: str) -> None:
        try:
            if block.number > self.store.height + 1:
                peer = self._origin(origin)
                if peer is not None and peer.role is Role.SERVER:
                    self._sync_with(peer)
            inserted = self.store.insert_chain([block])
        except ChainInsertError as e:
            logger.debug("%s ignored announced block: %s", self.ctx.name, e)
            return
        if inserted:
            self._broadcast(block, exclude=origin)

    def seal_block(self) -> Block:
        """Seal a block on top of the head, insert it and announce it."""
        head = self.store.head
        header = Header(
            parent_hash=head.hash,
            coinbase=MINER_COINBASE,
            state_root=head.state_root,
            tx_root=EMPTY_TX_ROOT,
            number=head.number + 1,
            difficulty=head.difficulty,
            gas_limit=head.gas_limit,
            timestamp=max(int(time.time()), head.timestamp + 1),
        )
        block = Block(header=header)
        self.store.insert_chain([block])
        blocks_mined.inc()
        logger.debug("%s sealed block #%d (%s)", self.ctx.name, block.number, block.hash)
        self._broadcast(block, exclude=None)
        return block

    def _mine_loop(self) -> None:
        while not self._miner_stop.wait(self.block_period):
            try:
                self.seal_block()
            except ChainInsertError as e:
                # Lost a race against an imported block. Retry on the next tick.
                logger.debug("%s failed to seal: %s", self.ctx.name, e)

    def _broadcast(self, block: Block, exclude: str | None) -> None:
        for peer in self.peers():
            if peer.peer_id == exclude:
                continue
            try:
                peer.announce(block, self.peer_id)
            except Exception as e:
                logger.warning(
                    "%s failed to announce block #%d to %s: %s",
                    self.ctx.name,
                    block.number,
                    peer.name,
                    e,
                )

    def info(self) -> dict[str, Any]:
        status = NodeService.info(self)
        status["mining"] = self.mining and self._miner is not None
        if self.les is not None:
            status["lightServ"] = self.les.light_serv
            status["lightPeers"] = self.les.light_peers
        return status
