"""
Bootstrap chain state.

Genesis, blocks and the pre-generated chain shared by all nodes of a cluster,
plus the per-node in-memory chain store.
"""

from .block import Block, Header, Transaction, contract_address
from .bootstrap import (
    BlockchainConfig,
    BootstrapResult,
    CheckpointOracleConfig,
    SystemContracts,
    build_bootstrap,
    generate_chain,
)
from .genesis import Genesis, master_address
from .store import ChainStore

__all__ = [
    "Block",
    "Header",
    "Transaction",
    "contract_address",
    "Genesis",
    "master_address",
    "BlockchainConfig",
    "BootstrapResult",
    "CheckpointOracleConfig",
    "SystemContracts",
    "build_bootstrap",
    "generate_chain",
    "ChainStore",
]
