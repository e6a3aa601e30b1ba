"""Tests for the command line entry point."""

from __future__ import annotations

import argparse
from pathlib import Path
from unittest import mock

import pytest

from les_sim.__main__ import build_config, main
from les_sim.api import ApiServerConfig
from les_sim.simulator import Conn
from les_sim.types import TopologyError


def namespace(**overrides: object) -> argparse.Namespace:
    settings: dict[str, object] = {
        "config": None,
        "servers": 2,
        "clients": 3,
        "routes": "",
        "strict_routes": False,
        "adapter": "sim",
        "blocks": 10,
        "no_payment_contract": False,
        "no_oracle_contract": False,
    }
    settings.update(overrides)
    return argparse.Namespace(**settings)


class TestBuildConfig:
    """Tests for turning flags into a cluster config."""

    def test_counts(self) -> None:
        """Count flags give default service settings and the full bootstrap chain."""
        config = build_config(namespace())

        assert len(config.server_configs) == 2
        assert len(config.client_configs) == 3
        assert config.conns is None
        assert config.blocks == 10
        assert config.deploy_payment_contract
        assert config.deploy_oracle_contract

    def test_contract_flags(self) -> None:
        """Contract deployment can be switched off."""
        config = build_config(namespace(no_payment_contract=True, no_oracle_contract=True))

        assert not config.deploy_payment_contract
        assert not config.deploy_oracle_contract

    def test_routes(self) -> None:
        """Routes become an explicit connection list; invalid ones are dropped."""
        config = build_config(namespace(routes="c0->s1, *->s0, c9->s0"))
        assert config.conns == (Conn(0, 1), Conn(0, 0), Conn(1, 0), Conn(2, 0))

    def test_routes_that_match_nothing(self) -> None:
        """Routes that all get dropped leave only the server mesh."""
        config = build_config(namespace(routes="bogus"))
        assert config.conns == ()

    def test_strict_routes(self) -> None:
        """Strict routes reject an invalid instruction."""
        with pytest.raises(TopologyError):
            build_config(namespace(routes="bogus", strict_routes=True))

    def test_no_nodes(self) -> None:
        """An empty cluster is refused."""
        with pytest.raises(ValueError, match="no servers and no clients"):
            build_config(namespace(servers=0, clients=0))

    def test_negative_counts(self) -> None:
        """Negative node counts are refused."""
        with pytest.raises(ValueError, match="must not be negative"):
            build_config(namespace(servers=-1))

    def test_yaml_config_wins(self, tmp_path: Path) -> None:
        """A YAML config overrides the counts; routes still apply."""
        path = tmp_path / "cluster.yaml"
        path.write_text("serverConfigs: [{}]\nclientConfigs: [{}, {}]\n", encoding="utf-8")

        config = build_config(namespace(config=path, servers=7, routes="*->s0"))

        assert len(config.server_configs) == 1
        assert config.conns == (Conn(0, 0), Conn(1, 0))


class TestMain:
    """Tests for the entry point's exit codes."""

    def test_empty_cluster(self) -> None:
        """An empty cluster exits with an error."""
        assert main(["--servers", "0", "--clients", "0", "--no-color"]) == 1

    def test_missing_config(self, tmp_path: Path) -> None:
        """A missing config file exits with an error."""
        assert main(["--config", str(tmp_path / "missing.yaml"), "--no-color"]) == 1

    def test_invalid_strict_routes(self) -> None:
        """An invalid route in strict mode exits with an error."""
        assert main(["--routes", "c1-s2", "--strict-routes", "--no-color"]) == 1

    def test_unknown_adapter(self) -> None:
        """argparse rejects an unknown adapter."""
        with pytest.raises(SystemExit):
            main(["--adapter", "docker"])

    def test_runs_until_interrupted(self) -> None:
        """An interrupt shuts the cluster down and exits cleanly."""
        with (
            mock.patch("les_sim.__main__.run_simulation") as run_simulation,
            mock.patch("les_sim.__main__.asyncio.run", side_effect=KeyboardInterrupt),
        ):
            code = main(["--servers", "1", "--clients", "1", "--port", "15180", "--no-color"])

        assert code == 0
        cluster, server_config = run_simulation.call_args.args
        assert server_config == ApiServerConfig(host="0.0.0.0", port=15180)
        assert not any(node.running for node in cluster.network.nodes())
