"""Tests for service settings and constructors."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from les_sim.chain import BlockchainConfig
from les_sim.node import FullNode, LightClient, ServiceContext
from les_sim.signer import SignerConfig, SignerDaemon
from les_sim.simulator import (
    ClientServiceConfig,
    LesClientService,
    LesServerService,
    ServerServiceConfig,
    new_client_service,
    new_server_service,
)
from les_sim.simulator.services import (
    DEFAULT_LIGHT_PEERS,
    DEFAULT_LIGHT_SERV,
    SERVICE_CONSTRUCTOR,
)
from les_sim.types import Address, ConstructionError


def context(name: str = "node", signer: str | None = None) -> ServiceContext:
    return ServiceContext(node_id=f"id-{name}", name=name, external_signer=signer)


class TestClientServiceConfig:
    """Tests for light client settings."""

    def test_defaults(self) -> None:
        """Unset fields take their default values."""
        config = ClientServiceConfig()

        assert config.service_pay is False
        assert config.payment_address == Address.zero()
        assert config.trusted_servers == ()
        assert config.trusted_fraction == 0
        assert config.log_level == "INFO"

    def test_camel_case_keys(self) -> None:
        """Camel-case keys load into the snake-case fields."""
        config = ClientServiceConfig.model_validate(
            {"servicePay": True, "trustedServers": ["les-server-0"], "trustedFraction": 60}
        )

        assert config.service_pay
        assert config.trusted_servers == ("les-server-0",)
        assert config.trusted_fraction == 60

    @pytest.mark.parametrize("fraction", [-1, 101])
    def test_fraction_is_a_percentage(self, fraction: int) -> None:
        """The trusted fraction must lie within 0 and 100."""
        with pytest.raises(ValidationError):
            ClientServiceConfig(trusted_fraction=fraction)

    def test_log_level_is_normalized(self) -> None:
        """Log levels are upper-cased."""
        assert ClientServiceConfig(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self) -> None:
        """Unknown log levels are rejected."""
        with pytest.raises(ValidationError, match="unknown log level"):
            ClientServiceConfig(log_level="chatty")

    def test_unknown_field(self) -> None:
        """Settings of the other role are rejected."""
        with pytest.raises(ValidationError):
            ClientServiceConfig.model_validate({"lightServ": 10})


class TestServerServiceConfig:
    """Tests for full node settings."""

    def test_defaults(self) -> None:
        """Unset fields take their default values."""
        config = ServerServiceConfig()

        assert config.light_serv == DEFAULT_LIGHT_SERV == 100
        assert config.light_peers == DEFAULT_LIGHT_PEERS == 50
        assert config.service_charge is False

    def test_camel_case_keys(self) -> None:
        """Camel-case keys load into the snake-case fields."""
        config = ServerServiceConfig.model_validate({"lightServ": 25, "lightPeers": 3})
        assert (config.light_serv, config.light_peers) == (25, 3)

    @pytest.mark.parametrize("field", ["light_serv", "light_peers"])
    def test_negative_rejected(self, field: str) -> None:
        """Serving capacity and peer limit cannot be negative."""
        with pytest.raises(ValidationError):
            ServerServiceConfig(**{field: -1})


class TestConstructors:
    """Tests for building services."""

    def test_client_constructor(self, blockchain: BlockchainConfig) -> None:
        """The client constructor builds a light client on the bootstrap chain."""
        constructor = new_client_service(ClientServiceConfig(service_pay=True), blockchain)
        service = constructor.create(context())

        assert isinstance(service, LightClient)
        assert service.service_pay
        assert service.account_manager is None
        assert service.store.height == len(blockchain.chain)

    def test_server_constructor(self, blockchain: BlockchainConfig) -> None:
        """The server constructor builds a full node with the light server extension."""
        constructor = new_server_service(ServerServiceConfig(light_peers=2), blockchain, True)
        service = constructor.create(context())

        assert isinstance(service, FullNode)
        assert service.mining
        assert service.les is not None
        assert service.les.light_peers == 2

    def test_defaults_when_unset(self) -> None:
        """Missing settings and chain fall back to the defaults."""
        client = new_client_service(None, None)
        server = new_server_service(None, None)

        assert client.config == ClientServiceConfig()
        assert server.config == ServerServiceConfig()
        assert client.blockchain == BlockchainConfig()
        assert not server.mining

    def test_every_call_builds_a_fresh_service(self, blockchain: BlockchainConfig) -> None:
        """Each call starts again from the shared bootstrap chain."""
        constructor = new_server_service(None, blockchain)

        first = constructor.create(context())
        first.seal_block()
        second = constructor.create(context())

        assert first is not second
        assert second.store.height == len(blockchain.chain)

    def test_unreachable_signer(self, blockchain: BlockchainConfig, tmp_path: Path) -> None:
        """An unreachable signer endpoint fails construction."""
        constructor = new_client_service(None, blockchain)

        with pytest.raises(ConstructionError, match="external signer unavailable"):
            constructor.create(context(signer=str(tmp_path / "missing.ipc")))

    def test_signer_attached(
        self, blockchain: BlockchainConfig, keystore: Path, tmp_path: Path
    ) -> None:
        """A reachable signer backs the service's account manager."""
        daemon = SignerDaemon(SignerConfig(dir=tmp_path / "signer", keystore=keystore, chain_id=1))
        try:
            service = new_server_service(None, blockchain).create(
                context(signer=daemon.endpoint)
            )
            assert service.account_manager is not None
            assert len(service.account_manager.accounts()) == 1
        finally:
            daemon.stop()


class TestSerialization:
    """Constructors travel to subprocess nodes as JSON."""

    def test_kind_selects_constructor(self, blockchain: BlockchainConfig) -> None:
        """A serialized server constructor restores to an equal one."""
        server = new_server_service(ServerServiceConfig(light_serv=0), blockchain, mining=True)
        data = SERVICE_CONSTRUCTOR.dump_python(server, mode="json", by_alias=True)

        assert data["kind"] == "les-server"
        restored = SERVICE_CONSTRUCTOR.validate_python(data)
        assert isinstance(restored, LesServerService)
        assert restored == server

    def test_client_kind(self) -> None:
        """The client kind restores a client constructor."""
        restored = SERVICE_CONSTRUCTOR.validate_python({"kind": "les-client"})
        assert isinstance(restored, LesClientService)

    def test_unknown_kind(self) -> None:
        """Unknown kinds are rejected."""
        with pytest.raises(ValidationError):
            SERVICE_CONSTRUCTOR.validate_python({"kind": "les-bridge"})
