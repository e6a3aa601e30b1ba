"""Tests for node configs and the in-process adapter."""

from __future__ import annotations

from pathlib import Path

import pytest

from les_sim.chain import BlockchainConfig
from les_sim.simulator import AdapterKind, NodeConfig, create_adapter, new_server_service
from les_sim.simulator.adapters import ExecAdapter, SimAdapter, resolve_kind
from les_sim.types import ConfigurationError, NodeStateError, UnsupportedAdapterError


@pytest.fixture
def adapter(blockchain: BlockchainConfig) -> SimAdapter:
    return SimAdapter({"les-server-0": new_server_service(None, blockchain)})


def server_config(**overrides: object) -> NodeConfig:
    settings: dict[str, object] = {
        "name": "les-server-0",
        "lifecycles": ("les-server-0",),
        "properties": ("server",),
    }
    settings.update(overrides)
    return NodeConfig.random(**settings)  # type: ignore[arg-type]


class TestAdapterKind:
    """Tests for adapter kind resolution."""

    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            ("sim", AdapterKind.SIM),
            ("in-process", AdapterKind.SIM),
            ("exec", AdapterKind.EXEC),
            ("subprocess", AdapterKind.EXEC),
            (AdapterKind.EXEC, AdapterKind.EXEC),
        ],
    )
    def test_aliases(self, kind: str, expected: AdapterKind) -> None:
        """Each kind and its alias resolve to the same adapter."""
        assert resolve_kind(kind) is expected

    @pytest.mark.parametrize("kind", ["docker", "", "SIM"])
    def test_unknown(self, kind: str) -> None:
        """Unknown kinds are rejected and reported."""
        with pytest.raises(UnsupportedAdapterError) as excinfo:
            resolve_kind(kind)
        assert excinfo.value.kind == kind

    def test_create_adapter(self, tmp_path: Path) -> None:
        """The factory returns the adapter for the requested kind."""
        assert isinstance(create_adapter("in-process", {}), SimAdapter)
        exec_adapter = create_adapter("subprocess", {}, tmp_path)
        assert isinstance(exec_adapter, ExecAdapter)
        exec_adapter.close()


class TestNodeConfig:
    """Tests for node identity."""

    def test_random_ids_are_unique(self) -> None:
        """Random node ids are distinct 32-byte hex strings."""
        first, second = NodeConfig.random(lifecycles=()), NodeConfig.random(lifecycles=())

        assert first.id != second.id
        assert len(first.id) == 64

    def test_default_name(self) -> None:
        """An unnamed node is named after its id."""
        config = NodeConfig.random(lifecycles=())
        assert config.name == f"node_{config.id[:8]}"

    def test_json_form(self) -> None:
        """A node config survives its JSON form."""
        config = server_config(external_signer="/tmp/signer.ipc", log_level="DEBUG")

        data = config.to_json()

        assert data["externalSigner"] == "/tmp/signer.ipc"
        assert data["lifecycles"] == ["les-server-0"]
        assert NodeConfig.from_json(data) == config

    def test_context(self) -> None:
        """The service context mirrors the node config."""
        config = server_config(external_signer="/tmp/signer.ipc")
        ctx = config.context()

        assert ctx.node_id == config.id
        assert ctx.name == "les-server-0"
        assert ctx.properties == ("server",)
        assert ctx.external_signer == "/tmp/signer.ipc"


class TestSimNode:
    """Tests for the in-process node lifecycle."""

    def test_unknown_lifecycle(self, adapter: SimAdapter) -> None:
        """A node needs a registered lifecycle."""
        with pytest.raises(ConfigurationError, match="unknown lifecycle"):
            adapter.new_node(server_config(lifecycles=("les-server-9",)))

    def test_no_lifecycle(self, adapter: SimAdapter) -> None:
        """A node without any lifecycle is rejected."""
        with pytest.raises(ConfigurationError, match="no lifecycle"):
            adapter.new_node(server_config(lifecycles=()))

    def test_start_and_stop(self, adapter: SimAdapter) -> None:
        """A node builds its service on start and drops it on stop."""
        node = adapter.new_node(server_config())
        assert not node.running
        assert node.service is None

        node.start()
        assert node.running

        node.stop()
        assert not node.running

    def test_double_start(self, adapter: SimAdapter) -> None:
        """Starting a running node fails."""
        node = adapter.new_node(server_config())
        node.start()

        with pytest.raises(NodeStateError, match="already running"):
            node.start()

    def test_stop_when_not_running(self, adapter: SimAdapter) -> None:
        """Stopping an idle node fails."""
        node = adapter.new_node(server_config())

        with pytest.raises(NodeStateError, match="not running"):
            node.stop()

    def test_restart_builds_fresh_service(self, adapter: SimAdapter) -> None:
        """A stop/start cycle starts over from the bootstrap chain."""
        node = adapter.new_node(server_config())
        node.start()
        first = node.service
        assert first is not None
        node.stop()

        node.start()

        assert node.service is not first
        assert node.running

    def test_peer_requires_running(self, adapter: SimAdapter) -> None:
        """An idle node has no peer handle and no peers."""
        node = adapter.new_node(server_config())

        with pytest.raises(NodeStateError):
            node.peer()
        assert node.remove_peer("anything") is False

    def test_info(self, adapter: SimAdapter) -> None:
        """Status grows with service details once the node runs."""
        node = adapter.new_node(server_config())
        assert node.info() == {
            "id": node.id,
            "name": "les-server-0",
            "properties": ["server"],
            "running": False,
        }

        node.start()
        info = node.info()

        assert info["running"] is True
        assert info["role"] == "server"
        assert info["headNumber"] == 5
