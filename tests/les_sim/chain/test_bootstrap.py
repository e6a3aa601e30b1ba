"""Tests for bootstrap chain generation."""

from __future__ import annotations

import pytest

from les_sim.chain import (
    BlockchainConfig,
    Genesis,
    build_bootstrap,
    contract_address,
    generate_chain,
    master_address,
)
from les_sim.chain.bootstrap import ORACLE_CONTRACT, PAYMENT_CONTRACT
from les_sim.chain.config import BLOCK_TIME, ORACLE_THRESHOLD
from les_sim.types import Address


class TestGenerateChain:
    """Tests for the raw chain generator."""

    def test_genesis_only(self) -> None:
        """Zero blocks yields no blocks and no contracts."""
        blocks, contracts = generate_chain(Genesis(), 0)
        assert blocks == []
        assert contracts.payment_contract is None
        assert contracts.oracle is None

    def test_blocks_link_to_genesis(self) -> None:
        """Each block extends the previous one."""
        genesis = Genesis()
        blocks, _ = generate_chain(genesis, 4)

        parent = genesis.to_header()
        for block in blocks:
            assert block.parent_hash == parent.hash
            assert block.number == parent.number + 1
            assert block.header.timestamp == parent.timestamp + BLOCK_TIME
            parent = block.header

    def test_negative_count_rejected(self) -> None:
        """A negative block count is rejected."""
        with pytest.raises(ValueError, match="non-negative"):
            generate_chain(Genesis(), -1)

    def test_deployments_land_in_fixed_blocks(self) -> None:
        """The oracle is deployed in block 2 and the payment contract in block 3."""
        blocks, contracts = generate_chain(Genesis(), 5, deploy_oracle=True, deploy_payment=True)

        assert [tx.data for tx in blocks[1].transactions] == [ORACLE_CONTRACT]
        assert [tx.data for tx in blocks[2].transactions] == [PAYMENT_CONTRACT]
        assert all(not b.transactions for i, b in enumerate(blocks) if i not in (1, 2))

        assert contracts.oracle is not None
        assert contracts.oracle.address == contract_address(master_address(), 0)
        assert contracts.oracle.signers == (master_address(),)
        assert contracts.oracle.threshold == ORACLE_THRESHOLD
        assert contracts.payment_contract == contract_address(master_address(), 1)

    def test_payment_only_uses_first_nonce(self) -> None:
        """Without the oracle, the payment deployment takes nonce zero."""
        _, contracts = generate_chain(Genesis(), 3, deploy_payment=True)
        assert contracts.oracle is None
        assert contracts.payment_contract == contract_address(master_address(), 0)

    def test_short_chain_skips_deployment(self) -> None:
        """A chain too short to reach a deployment step does not deploy."""
        _, contracts = generate_chain(Genesis(), 2, deploy_oracle=True, deploy_payment=True)
        assert contracts.oracle is not None
        assert contracts.payment_contract is None

    def test_deterministic(self) -> None:
        """Generating twice from the same genesis gives the same chain."""
        first, _ = generate_chain(Genesis(), 3, deploy_oracle=True)
        second, _ = generate_chain(Genesis(), 3, deploy_oracle=True)
        assert [b.hash for b in first] == [b.hash for b in second]


class TestBuildBootstrap:
    """Tests for the cluster-level bootstrap."""

    def test_result(self) -> None:
        """The result bundles the chain with the contracts it deployed."""
        result = build_bootstrap(blocks=3, deploy_oracle_contract=True)

        assert len(result.blockchain.chain) == 3
        assert result.blockchain.genesis is not None
        assert result.contracts.genesis_hash == result.blockchain.genesis.hash
        assert result.contracts.oracle is not None

    def test_prefunds_reach_genesis(self) -> None:
        """Prefunded balances end up in the genesis allocation."""
        account = Address("0x" + "33" * 20)
        result = build_bootstrap(prefunds={account: 7})

        assert result.blockchain.genesis is not None
        assert result.blockchain.genesis.alloc[account] == 7

    def test_chain_id(self) -> None:
        """The chain id is carried into the genesis."""
        result = build_bootstrap(chain_id=5)
        assert result.blockchain.resolved_genesis().chain_id == 5

    def test_empty_blockchain_config_uses_default_genesis(self) -> None:
        """Without a custom genesis, nodes start from the default one."""
        assert BlockchainConfig().resolved_genesis() == Genesis.default()
