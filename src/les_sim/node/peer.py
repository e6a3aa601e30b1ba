"""
Peer abstraction.

A node sees each of its peers through this narrow interface: identity,
chain queries and block announcements. In-process networks wrap the peer's
service directly; subprocess networks reach it over HTTP.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from les_sim.chain import Block, Header
from les_sim.types import Hash32

if TYPE_CHECKING:
    from .service import NodeService


class Role(StrEnum):
    """Which side of the light protocol a node plays."""

    CLIENT = "client"
    """Light client: syncs headers, consumes light service."""

    SERVER = "server"
    """Full node: syncs blocks, may serve light clients."""


class Peer(Protocol):
    """What a node may ask of a connected peer."""

    @property
    def peer_id(self) -> str:
        """Node id of the peer."""
        ...

    @property
    def name(self) -> str:
        """Human-readable node name."""
        ...

    @property
    def role(self) -> Role:
        """Client or server."""
        ...

    @property
    def serves_light(self) -> bool:
        """Whether the peer accepts light clients."""
        ...

    def genesis_hash(self) -> Hash32:
        """Hash of the peer's genesis block."""
        ...

    def head(self) -> Header:
        """The peer's current head."""
        ...

    def headers_from(self, number: int) -> list[Header]:
        """Canonical headers from `number` to the peer's head."""
        ...

    def blocks_from(self, number: int) -> list[Block]:
        """Canonical blocks from `number` to the peer's head."""
        ...

    def announce(self, block: Block, origin: str) -> None:
        """Hand a new block to the peer. `origin` is the sender's node id."""
        ...


class LocalPeer:
    """A peer living in the same process."""

    __slots__ = ("_service",)

    def __init__(self, service: NodeService) -> None:
        self._service = service

    @property
    def peer_id(self) -> str:
        return self._service.peer_id

    @property
    def name(self) -> str:
        return self._service.ctx.name

    @property
    def role(self) -> Role:
        return self._service.role

    @property
    def serves_light(self) -> bool:
        return self._service.serves_light

    def genesis_hash(self) -> Hash32:
        return self._service.store.genesis_hash

    def head(self) -> Header:
        return self._service.store.head

    def headers_from(self, number: int) -> list[Header]:
        return self._service.store.headers_from(number)

    def blocks_from(self, number: int) -> list[Block]:
        return self._service.store.blocks_from(number)

    def announce(self, block: Block, origin: str) -> None:
        self._service.on_announce(block, origin)

    def __repr__(self) -> str:
        return f"LocalPeer({self.name})"
