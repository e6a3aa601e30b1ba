"""Genesis configuration for simulated networks.

The genesis can be written by hand or loaded from YAML:

    chainId: 1337
    gasLimit: 4700000
    alloc:
      0x71562b71999873db5b286df957af199ec94617f7: 1000000000000000000
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import Field, field_validator

from les_sim.types import ZERO_HASH, Address, FrozenModel, Hash32, encode_rlp, keccak256

from .block import EMPTY_TX_ROOT, Block, Header
from .config import (
    DEFAULT_CHAIN_ID,
    GENESIS_DIFFICULTY,
    GENESIS_GAS_LIMIT,
    MASTER_BALANCE,
    MASTER_KEY_HEX,
)


def restore_hex_keys(value: Any) -> Any:
    """
    Restore address keys that YAML parsed as integers.

    YAML parsers read unquoted 0x-prefixed keys as integers.
    """
    if not isinstance(value, dict):
        return value
    return {
        (f"0x{key:040x}" if isinstance(key, int) else key): balance
        for key, balance in value.items()
    }


@lru_cache(maxsize=1)
def master_key() -> ec.EllipticCurvePrivateKey:
    """The master account's secp256k1 private key."""
    return ec.derive_private_key(int(MASTER_KEY_HEX, 16), ec.SECP256K1())


@lru_cache(maxsize=1)
def master_address() -> Address:
    """Address of the master account."""
    public = master_key().public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return Address.from_public_key(public)


class Genesis(FrozenModel):
    """
    The shared starting point of every node in a cluster.

    Two nodes can only peer if they agree on the genesis hash, so every
    node of a cluster is built from the same instance.
    """

    chain_id: int = Field(default=DEFAULT_CHAIN_ID, gt=0)
    """EIP-155 chain id. Recorded in the genesis extra data."""

    gas_limit: int = Field(default=GENESIS_GAS_LIMIT, gt=0)
    difficulty: int = Field(default=GENESIS_DIFFICULTY, gt=0)
    timestamp: int = Field(default=0, ge=0)

    alloc: dict[Address, int] = Field(default_factory=dict)
    """Pre-funded balances in wei."""

    @field_validator("alloc", mode="before")
    @classmethod
    def parse_hex_keys(cls, v: Any) -> Any:
        """YAML may have turned the addresses into integers."""
        return restore_hex_keys(v)

    @field_validator("alloc")
    @classmethod
    def check_balances(cls, v: dict[Address, int]) -> dict[Address, int]:
        """Balances must be non-negative."""
        for address, balance in v.items():
            if balance < 0:
                raise ValueError(f"negative genesis balance for {address}: {balance}")
        return v

    @property
    def state_root(self) -> Hash32:
        """Commitment to the allocation, independent of insertion order."""
        entries = sorted((bytes(address), balance) for address, balance in self.alloc.items())
        return Hash32(keccak256(encode_rlp([[address, balance] for address, balance in entries])))

    def to_header(self) -> Header:
        """Build the genesis header."""
        return Header(
            parent_hash=ZERO_HASH,
            coinbase=Address.zero(),
            state_root=self.state_root,
            tx_root=EMPTY_TX_ROOT,
            number=0,
            difficulty=self.difficulty,
            gas_limit=self.gas_limit,
            timestamp=self.timestamp,
            extra=f"chain:{self.chain_id}",
        )

    def to_block(self) -> Block:
        """Build the genesis block."""
        return Block(header=self.to_header())

    @property
    def hash(self) -> Hash32:
        """Genesis block hash."""
        return self.to_header().hash

    @classmethod
    def default(
        cls,
        chain_id: int = DEFAULT_CHAIN_ID,
        prefunds: dict[Address, int] | None = None,
    ) -> Genesis:
        """
        Genesis used by clusters.

        The master account always receives its allocation. Prefunded
        accounts are added on top and may override the master balance.
        """
        alloc = {master_address(): MASTER_BALANCE}
        alloc.update(prefunds or {})
        return cls(chain_id=chain_id, alloc=alloc)

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> Genesis:
        """
        Load a genesis from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the data fails validation.
        """
        path = Path(path)
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)

    @classmethod
    def from_yaml(cls, content: str) -> Genesis:
        """Load a genesis from a YAML string."""
        return cls.model_validate(yaml.safe_load(content))
