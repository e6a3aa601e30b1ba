"""
Chain Configuration
===================

Constants shared by every simulated network: the bootstrap genesis
parameters, the master account that funds and deploys system contracts,
and the block production cadence.
"""

from typing_extensions import Final

from les_sim.config import LES_SIM_ENV
from les_sim.types import Address

# --- Genesis Parameters ---

DEFAULT_CHAIN_ID: Final = 1337
"""Chain id used when a configuration does not pick one."""

GENESIS_GAS_LIMIT: Final = 4_700_000
"""Block gas limit of the bootstrap genesis."""

GENESIS_DIFFICULTY: Final = 5_242_880
"""Difficulty of the bootstrap genesis."""

ETHER: Final = 10**18
"""One ether in wei."""

GWEI: Final = 10**9
"""One gwei in wei."""

# --- Master Account ---

MASTER_KEY_HEX: Final = "ab2f8cb941579e8b7336fd7e084e047e0f985b14f85485af37989487798403e8"
"""
Pre-generated secp256k1 private key of the master account.

Fixed so that genesis hashes and contract addresses are reproducible.
"""

MASTER_BALANCE: Final = ETHER
"""Genesis allocation of the master account."""

DEPLOY_GAS_PRICE: Final = 2 * GWEI
"""Gas price of the contract deployment transactions."""

# --- System Contracts ---

ORACLE_DEPLOY_STEP: Final = 1
"""Generation step (0-based) that carries the checkpoint oracle deployment."""

PAYMENT_DEPLOY_STEP: Final = 2
"""Generation step (0-based) that carries the payment contract deployment."""

ORACLE_SECTION_SIZE: Final = 128
"""Checkpoint section size the oracle is deployed with."""

ORACLE_THRESHOLD: Final = 1
"""Number of master signatures an oracle checkpoint needs."""

# --- Block Production ---

MINER_COINBASE: Final = Address("0x" + "00" * 16 + "deadbeef")
"""Etherbase credited by the producing server."""

BLOCK_TIME: Final = 10
"""Timestamp gap between pre-generated blocks, in seconds."""

BLOCK_PERIOD: Final = 0.05 if LES_SIM_ENV == "test" else 1.0
"""Seconds between blocks sealed by a mining server."""
