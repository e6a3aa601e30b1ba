"""Tests for the genesis configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from les_sim.chain import Genesis, master_address
from les_sim.chain.config import DEFAULT_CHAIN_ID, MASTER_BALANCE
from les_sim.chain.genesis import restore_hex_keys
from les_sim.types import ZERO_HASH, Address

ALICE = Address("0x71562b71999873db5b286df957af199ec94617f7")


class TestDefaultGenesis:
    """Tests for the cluster genesis."""

    def test_master_is_funded(self) -> None:
        """The master account always receives its allocation."""
        genesis = Genesis.default()
        assert genesis.alloc == {master_address(): MASTER_BALANCE}
        assert genesis.chain_id == DEFAULT_CHAIN_ID

    def test_prefunds_are_added(self) -> None:
        """Prefunded accounts sit next to the master account."""
        genesis = Genesis.default(prefunds={ALICE: 5})
        assert genesis.alloc[ALICE] == 5
        assert genesis.alloc[master_address()] == MASTER_BALANCE

    def test_prefund_may_override_master(self) -> None:
        """A prefund for the master address replaces its balance."""
        genesis = Genesis.default(prefunds={master_address(): 1})
        assert genesis.alloc[master_address()] == 1

    def test_master_address_is_stable(self) -> None:
        """The master key is fixed, so is its address."""
        assert master_address() == master_address()
        assert len(master_address()) == 20


class TestGenesisHash:
    """Tests for the genesis block identity."""

    def test_deterministic(self) -> None:
        """Two default geneses agree on their hash."""
        assert Genesis.default().hash == Genesis.default().hash

    def test_chain_id_changes_hash(self) -> None:
        """The chain id is part of the genesis header."""
        assert Genesis.default(chain_id=1).hash != Genesis.default(chain_id=2).hash

    def test_alloc_changes_hash(self) -> None:
        """The allocation is committed to through the state root."""
        assert Genesis.default().hash != Genesis.default(prefunds={ALICE: 1}).hash

    def test_state_root_ignores_insertion_order(self) -> None:
        """Reordering the allocation does not change the state root."""
        other = Address("0x" + "22" * 20)
        one = Genesis(alloc={ALICE: 1, other: 2})
        two = Genesis(alloc={other: 2, ALICE: 1})
        assert one.state_root == two.state_root

    def test_header(self) -> None:
        """The genesis header starts a chain at number zero."""
        header = Genesis(chain_id=42).to_header()
        assert header.number == 0
        assert header.parent_hash == ZERO_HASH
        assert header.is_genesis
        assert header.extra == "chain:42"

    def test_block_matches_header(self) -> None:
        """The genesis block carries no transactions."""
        genesis = Genesis()
        block = genesis.to_block()
        assert block.hash == genesis.hash
        assert block.transactions == ()


class TestValidation:
    """Tests for genesis validation."""

    def test_negative_balance_rejected(self) -> None:
        """Balances cannot be negative."""
        with pytest.raises(ValidationError, match="negative genesis balance"):
            Genesis(alloc={ALICE: -1})

    def test_zero_chain_id_rejected(self) -> None:
        """Chain id zero is not allowed."""
        with pytest.raises(ValidationError):
            Genesis(chain_id=0)

    def test_unknown_field_rejected(self) -> None:
        """Unknown genesis fields are rejected."""
        with pytest.raises(ValidationError):
            Genesis.model_validate({"chainId": 1, "nonce": 7})


class TestYaml:
    """Tests for loading a genesis from YAML."""

    YAML = """
chainId: 99
gasLimit: 8000000
alloc:
  0x71562b71999873db5b286df957af199ec94617f7: 1000
"""

    def test_from_yaml(self) -> None:
        """camelCase keys and integer-parsed addresses are accepted."""
        genesis = Genesis.from_yaml(self.YAML)
        assert genesis.chain_id == 99
        assert genesis.gas_limit == 8_000_000
        assert genesis.alloc == {ALICE: 1000}

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        """A genesis file loads like the same YAML text."""
        path = tmp_path / "genesis.yaml"
        path.write_text(self.YAML, encoding="utf-8")
        assert Genesis.from_yaml_file(path) == Genesis.from_yaml(self.YAML)

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing genesis file raises."""
        with pytest.raises(FileNotFoundError):
            Genesis.from_yaml_file(tmp_path / "missing.yaml")

    def test_restore_hex_keys(self) -> None:
        """Integer keys become zero-padded hex, other keys are kept."""
        restored = restore_hex_keys({0x1F: 1, "0xab": 2})
        assert restored == {"0x" + "00" * 19 + "1f": 1, "0xab": 2}

    def test_restore_hex_keys_passes_non_mappings(self) -> None:
        """Values that are not mappings pass through unchanged."""
        assert restore_hex_keys(None) is None
        assert restore_hex_keys([1]) == [1]
