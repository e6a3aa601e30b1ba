"""Tests for the simulator exception hierarchy."""

from __future__ import annotations

import pytest

from les_sim.types import (
    ChainInsertError,
    ConfigurationError,
    ConnectionStateError,
    ConstructionError,
    InvalidConnectionIndexError,
    NodeStateError,
    PeerRejectedError,
    SignerError,
    SimulatorError,
    TopologyError,
    UnsupportedAdapterError,
)


class TestHierarchy:
    """Every error can be caught as a SimulatorError."""

    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("bad"),
            UnsupportedAdapterError("docker"),
            InvalidConnectionIndexError("client", 3, 2),
            TopologyError("c1-s2", "no arrow"),
            ConstructionError("broken"),
            ChainInsertError(4, "gap"),
            NodeStateError("down"),
            ConnectionStateError("twice"),
            PeerRejectedError("full"),
            SignerError("locked"),
        ],
    )
    def test_is_simulator_error(self, error: SimulatorError) -> None:
        """All errors share the base class and keep their message."""
        assert isinstance(error, SimulatorError)
        assert str(error) == error.message

    def test_configuration_errors(self) -> None:
        """Adapter and index errors are configuration errors."""
        assert issubclass(UnsupportedAdapterError, ConfigurationError)
        assert issubclass(InvalidConnectionIndexError, ConfigurationError)

    def test_chain_insert_is_construction_error(self) -> None:
        """A bootstrap chain that does not link fails construction."""
        assert issubclass(ChainInsertError, ConstructionError)


class TestAttributes:
    """Errors carry their details as attributes."""

    def test_unsupported_adapter(self) -> None:
        """The rejected kind is kept on the error."""
        error = UnsupportedAdapterError("docker")
        assert error.kind == "docker"
        assert "docker" in error.message

    def test_invalid_connection_index(self) -> None:
        """The role, index and node count are kept on the error."""
        error = InvalidConnectionIndexError("server", 5, 2)
        assert (error.role, error.index, error.count) == ("server", 5, 2)
        assert error.message == "invalid server index 5 (have 2)"

    def test_topology(self) -> None:
        """The offending token and the reason are kept on the error."""
        error = TopologyError("c1-s2", "no arrow")
        assert error.token == "c1-s2"
        assert error.reason == "no arrow"

    def test_chain_insert(self) -> None:
        """The block number is kept on the error."""
        error = ChainInsertError(7, "gap after head #5")
        assert error.number == 7
        assert error.message == "cannot insert block #7: gap after head #5"

    def test_repr(self) -> None:
        """repr shows the class and message."""
        assert repr(NodeStateError("down")) == "NodeStateError('down')"
