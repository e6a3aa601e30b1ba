"""
Shared pytest fixtures for all les_sim tests.

Provides bootstrap chains, keystores and small cluster configurations.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from les_sim.chain import BlockchainConfig, build_bootstrap
from les_sim.simulator import (
    ClientServiceConfig,
    Cluster,
    ClusterConfig,
    ServerServiceConfig,
)
from les_sim.types import Address

KEYSTORE_ACCOUNT = Address("0x" + "11" * 20)
"""Account present in the test keystore."""


@pytest.fixture
def blockchain() -> BlockchainConfig:
    """Bootstrap chain with five blocks and both system contracts."""
    return build_bootstrap(
        blocks=5,
        deploy_payment_contract=True,
        deploy_oracle_contract=True,
    ).blockchain


@pytest.fixture
def keystore(tmp_path: Path) -> Path:
    """Keystore directory holding one account file and one unrelated file."""
    directory = tmp_path / "keystore"
    directory.mkdir()
    (directory / "UTC--account").write_text(
        json.dumps({"address": KEYSTORE_ACCOUNT.hex(), "version": 3}),
        encoding="utf-8",
    )
    (directory / "README").write_text("not a key", encoding="utf-8")
    return directory


@pytest.fixture
def cluster_config_factory() -> Callable[..., ClusterConfig]:
    """Factory for in-process cluster configs with `servers` and `clients` nodes."""

    def factory(servers: int = 2, clients: int = 2, **overrides: object) -> ClusterConfig:
        return ClusterConfig(
            server_configs=tuple(ServerServiceConfig() for _ in range(servers)),
            client_configs=tuple(ClientServiceConfig() for _ in range(clients)),
            **overrides,
        )

    return factory


@pytest.fixture
def cluster_factory(
    cluster_config_factory: Callable[..., ClusterConfig],
) -> Iterator[Callable[..., Cluster]]:
    """Factory for clusters that are closed when the test ends."""
    created: list[Cluster] = []

    def factory(servers: int = 2, clients: int = 2, **overrides: object) -> Cluster:
        cluster = Cluster(cluster_config_factory(servers, clients, **overrides))
        created.append(cluster)
        return cluster

    yield factory

    for cluster in created:
        cluster.close()
