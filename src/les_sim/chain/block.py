"""
Blocks, headers and transactions of the bootstrap chain.

These are deliberately thin: the simulator only needs identities (hashes),
lineage (parent hashes) and the handful of transactions that deploy the
system contracts. Hashes follow the Ethereum convention of keccak over RLP.
"""

from __future__ import annotations

from functools import cached_property

from les_sim.types import ZERO_HASH, Address, FrozenModel, Hash32, encode_rlp, keccak256


def contract_address(sender: Address, nonce: int) -> Address:
    """Address of a contract created by `sender` with account nonce `nonce`."""
    return Address(keccak256(encode_rlp([bytes(sender), nonce]))[12:])


class Transaction(FrozenModel):
    """A value transfer or, when `to` is None, a contract creation."""

    sender: Address
    """Account that signed the transaction."""

    nonce: int
    """Sender's account nonce."""

    to: Address | None = None
    """Recipient. None creates a contract."""

    value: int = 0
    """Transferred amount in wei."""

    gas_price: int = 0
    """Offered gas price in wei."""

    data: str = ""
    """Payload label. For deployments this names the deployed contract."""

    @cached_property
    def hash(self) -> Hash32:
        """Transaction hash."""
        to = bytes(self.to) if self.to is not None else b""
        return Hash32(
            keccak256(
                encode_rlp(
                    [
                        self.nonce,
                        self.gas_price,
                        to,
                        self.value,
                        self.data.encode(),
                        bytes(self.sender),
                    ]
                )
            )
        )

    @property
    def created_address(self) -> Address | None:
        """Address of the contract this transaction creates, if any."""
        if self.to is not None:
            return None
        return contract_address(self.sender, self.nonce)


def transactions_root(transactions: tuple[Transaction, ...] | list[Transaction]) -> Hash32:
    """Commitment to an ordered transaction list."""
    return Hash32(keccak256(encode_rlp([bytes(tx.hash) for tx in transactions])))


EMPTY_TX_ROOT: Hash32 = transactions_root(())
"""Transactions root of a block without transactions."""


class Header(FrozenModel):
    """Block header. Light clients only ever store these."""

    parent_hash: Hash32
    coinbase: Address
    state_root: Hash32
    tx_root: Hash32
    number: int
    difficulty: int
    gas_limit: int
    timestamp: int
    extra: str = ""

    @cached_property
    def hash(self) -> Hash32:
        """Block hash: keccak of the RLP-encoded header fields."""
        return Hash32(
            keccak256(
                encode_rlp(
                    [
                        bytes(self.parent_hash),
                        bytes(self.coinbase),
                        bytes(self.state_root),
                        bytes(self.tx_root),
                        self.number,
                        self.difficulty,
                        self.gas_limit,
                        self.timestamp,
                        self.extra.encode(),
                    ]
                )
            )
        )

    @property
    def is_genesis(self) -> bool:
        """Whether this header starts a chain."""
        return self.number == 0 and self.parent_hash == ZERO_HASH


class Block(FrozenModel):
    """A header plus the transactions it commits to."""

    header: Header
    transactions: tuple[Transaction, ...] = ()

    @property
    def number(self) -> int:
        """Block height."""
        return self.header.number

    @property
    def hash(self) -> Hash32:
        """Block hash."""
        return self.header.hash

    @property
    def parent_hash(self) -> Hash32:
        """Hash of the block this one extends."""
        return self.header.parent_hash
