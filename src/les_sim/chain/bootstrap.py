"""
Bootstrap chain generation.

A cluster starts from a pre-generated chain shared by every node: the
genesis plus `count` blocks, optionally carrying the deployments of the
checkpoint oracle and the payment contract. The addresses of those
contracts are returned in a `BootstrapResult` instead of being published
in process-wide registries, so whatever needs them asks the cluster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import Field

from les_sim.types import Address, FrozenModel, Hash32

from .block import Block, Header, Transaction, transactions_root
from .config import (
    BLOCK_TIME,
    DEFAULT_CHAIN_ID,
    DEPLOY_GAS_PRICE,
    ORACLE_DEPLOY_STEP,
    ORACLE_THRESHOLD,
    PAYMENT_DEPLOY_STEP,
)
from .genesis import Genesis, master_address

logger = logging.getLogger(__name__)

ORACLE_CONTRACT = "checkpoint-oracle"
"""Payload label of the checkpoint oracle deployment."""

PAYMENT_CONTRACT = "lottery-book"
"""Payload label of the payment contract deployment."""


class BlockchainConfig(FrozenModel):
    """
    Chain state every node is initialized with.

    Shared by reference across all service constructors and never mutated.
    """

    genesis: Genesis | None = None
    """Custom genesis. None means the default genesis."""

    chain: tuple[Block, ...] = ()
    """Blocks on top of genesis. Empty means genesis only."""

    def resolved_genesis(self) -> Genesis:
        """The genesis nodes should start from."""
        return self.genesis if self.genesis is not None else Genesis.default()


class CheckpointOracleConfig(FrozenModel):
    """Where the checkpoint oracle lives and who may sign checkpoints."""

    address: Address
    signers: tuple[Address, ...]
    threshold: int = Field(ge=1)


class SystemContracts(FrozenModel):
    """System contracts deployed during bootstrap, keyed by genesis hash."""

    genesis_hash: Hash32
    payment_contract: Address | None = None
    oracle: CheckpointOracleConfig | None = None


@dataclass(frozen=True, slots=True)
class BootstrapResult:
    """Everything cluster construction derives from the chain settings."""

    blockchain: BlockchainConfig
    """Genesis and pre-generated blocks handed to every node."""

    contracts: SystemContracts
    """Deployed system contracts."""


def _deployment(nonce: int, contract: str) -> Transaction:
    return Transaction(
        sender=master_address(),
        nonce=nonce,
        gas_price=DEPLOY_GAS_PRICE,
        data=contract,
    )


def generate_chain(
    genesis: Genesis,
    count: int,
    *,
    deploy_oracle: bool = False,
    deploy_payment: bool = False,
) -> tuple[list[Block], SystemContracts]:
    """
    Generate `count` blocks on top of `genesis`.

    Step `ORACLE_DEPLOY_STEP` deploys the oracle and step `PAYMENT_DEPLOY_STEP`
    deploys the payment contract, when requested. A chain too short to reach
    a step simply does not deploy that contract.

    Args:
        genesis: Chain origin.
        count: Number of blocks to generate (0 means genesis only).
        deploy_oracle: Whether to deploy the checkpoint oracle.
        deploy_payment: Whether to deploy the payment contract.

    Returns:
        The generated blocks and the resulting system contracts.
    """
    if count < 0:
        raise ValueError(f"block count must be non-negative, got {count}")

    parent = genesis.to_header()
    master = master_address()
    nonce = 0

    oracle: CheckpointOracleConfig | None = None
    payment: Address | None = None
    blocks: list[Block] = []

    for step in range(count):
        txs: list[Transaction] = []
        if step == ORACLE_DEPLOY_STEP and deploy_oracle:
            tx = _deployment(nonce, ORACLE_CONTRACT)
            nonce += 1
            txs.append(tx)
            assert tx.created_address is not None
            oracle = CheckpointOracleConfig(
                address=tx.created_address,
                signers=(master,),
                threshold=ORACLE_THRESHOLD,
            )
        elif step == PAYMENT_DEPLOY_STEP and deploy_payment:
            tx = _deployment(nonce, PAYMENT_CONTRACT)
            nonce += 1
            txs.append(tx)
            payment = tx.created_address

        header = Header(
            parent_hash=parent.hash,
            coinbase=parent.coinbase,
            state_root=parent.state_root,
            tx_root=transactions_root(txs),
            number=parent.number + 1,
            difficulty=genesis.difficulty,
            gas_limit=genesis.gas_limit,
            timestamp=parent.timestamp + BLOCK_TIME,
        )
        block = Block(header=header, transactions=tuple(txs))
        blocks.append(block)
        parent = header

    contracts = SystemContracts(
        genesis_hash=genesis.hash,
        payment_contract=payment,
        oracle=oracle,
    )
    return blocks, contracts


def build_bootstrap(
    *,
    chain_id: int = DEFAULT_CHAIN_ID,
    blocks: int = 0,
    deploy_payment_contract: bool = False,
    deploy_oracle_contract: bool = False,
    prefunds: dict[Address, int] | None = None,
) -> BootstrapResult:
    """
    Build the shared bootstrap chain for a cluster.

    Runs once per cluster. The result is read-only.
    """
    genesis = Genesis.default(chain_id=chain_id, prefunds=prefunds)
    chain, contracts = generate_chain(
        genesis,
        blocks,
        deploy_oracle=deploy_oracle_contract,
        deploy_payment=deploy_payment_contract,
    )
    logger.info(
        "Generated bootstrap chain (genesis=%s, blocks=%d, oracle=%s, payment=%s)",
        genesis.hash,
        len(chain),
        contracts.oracle.address if contracts.oracle else None,
        contracts.payment_contract,
    )
    return BootstrapResult(
        blockchain=BlockchainConfig(genesis=genesis, chain=tuple(chain)),
        contracts=contracts,
    )
