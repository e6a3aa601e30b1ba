"""
In-memory chain store.

Each node owns one. Full nodes keep blocks; light clients keep headers only.
Nothing is persisted: a restarted node is rebuilt from the bootstrap chain.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from les_sim.types import ChainInsertError, Hash32

from .block import Block, Header
from .genesis import Genesis


@dataclass(slots=True)
class ChainStore:
    """
    Canonical chain of a single node.

    Only linear extension is supported: an item must either already be
    stored (same hash at the same height, skipped) or extend the head.
    """

    full: bool
    """Whether block bodies are kept (full sync) or only headers (light sync)."""

    _headers: list[Header] = field(default_factory=list)
    """Canonical headers indexed by number."""

    _blocks: dict[Hash32, Block] = field(default_factory=dict)
    """Block bodies by hash. Empty for light stores."""

    _lock: threading.Lock = field(default_factory=threading.Lock)

    @classmethod
    def from_genesis(cls, genesis: Genesis, *, full: bool) -> ChainStore:
        """Create a store holding only the genesis."""
        store = cls(full=full)
        block = genesis.to_block()
        store._headers.append(block.header)
        if full:
            store._blocks[block.hash] = block
        return store

    @property
    def genesis_hash(self) -> Hash32:
        """Hash of block zero."""
        return self._headers[0].hash

    @property
    def head(self) -> Header:
        """Current head header."""
        with self._lock:
            return self._headers[-1]

    @property
    def height(self) -> int:
        """Number of the head block."""
        with self._lock:
            return len(self._headers) - 1

    def get_header(self, number: int) -> Header | None:
        """Canonical header at `number`, if known."""
        with self._lock:
            if 0 <= number < len(self._headers):
                return self._headers[number]
            return None

    def has_block(self, block_hash: Hash32) -> bool:
        """Whether the canonical chain contains `block_hash`."""
        with self._lock:
            return any(h.hash == block_hash for h in reversed(self._headers))

    def headers_from(self, number: int) -> list[Header]:
        """Canonical headers from `number` up to the head."""
        with self._lock:
            return self._headers[max(number, 0) :]

    def blocks_from(self, number: int) -> list[Block]:
        """
        Canonical blocks from `number` up to the head.

        Light stores have no bodies and return an empty list.
        """
        if not self.full:
            return []
        with self._lock:
            return [self._blocks[h.hash] for h in self._headers[max(number, 0) :]]

    def insert_chain(self, blocks: Iterable[Block]) -> int:
        """
        Insert full blocks.

        A light store keeps only their headers.

        Returns:
            Number of blocks that extended the chain.

        Raises:
            ChainInsertError: If a block neither is known nor extends the head.
        """
        inserted = 0
        with self._lock:
            for block in blocks:
                if self._link(block.header):
                    if self.full:
                        self._blocks[block.hash] = block
                    inserted += 1
        return inserted

    def insert_header_chain(self, headers: Iterable[Header]) -> int:
        """
        Insert headers into a light store.

        Returns:
            Number of headers that extended the chain.

        Raises:
            ChainInsertError: On a full store, or if a header does not link.
        """
        if self.full:
            raise ChainInsertError(-1, "full stores only accept complete blocks")
        inserted = 0
        with self._lock:
            for header in headers:
                if self._link(header):
                    inserted += 1
        return inserted

    def _link(self, header: Header) -> bool:
        """Append `header` if it extends the head. Caller holds the lock."""
        number = header.number
        if number < len(self._headers):
            stored = self._headers[number]
            if stored.hash == header.hash:
                return False
            raise ChainInsertError(number, f"conflicts with stored block {stored.hash}")

        head = self._headers[-1]
        if number != head.number + 1:
            raise ChainInsertError(number, f"gap after head #{head.number}")
        if header.parent_hash != head.hash:
            raise ChainInsertError(number, f"unknown parent {header.parent_hash}")

        self._headers.append(header)
        return True
