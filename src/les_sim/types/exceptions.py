"""Exception hierarchy for the cluster simulator."""

from __future__ import annotations


class SimulatorError(Exception):
    """
    Base exception for all simulator errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class ConfigurationError(SimulatorError):
    """Base class for invalid cluster configuration."""


class UnsupportedAdapterError(ConfigurationError):
    """
    Raised when a cluster asks for an adapter kind that does not exist.

    Attributes:
        kind: The requested adapter kind.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"unsupported adapter: {kind!r}")


class InvalidConnectionIndexError(ConfigurationError):
    """
    Raised when an explicit connection refers to a node that does not exist.

    Attributes:
        role: "client" or "server".
        index: The offending index.
        count: Number of nodes configured for that role.
    """

    def __init__(self, role: str, index: int, count: int) -> None:
        self.role = role
        self.index = index
        self.count = count
        super().__init__(f"invalid {role} index {index} (have {count})")


class TopologyError(SimulatorError):
    """
    Raised by the topology parser in strict mode.

    Attributes:
        token: The instruction that could not be compiled.
        reason: What was wrong with it.
    """

    def __init__(self, token: str, reason: str) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"invalid topology instruction {token!r}: {reason}")


class ConstructionError(SimulatorError):
    """Raised when a node's protocol stack cannot be created."""


class ChainInsertError(ConstructionError):
    """
    Raised when blocks or headers do not extend a node's chain.

    Attributes:
        number: Block number of the first item that failed to link.
        detail: Description of the mismatch.
    """

    def __init__(self, number: int, detail: str) -> None:
        self.number = number
        self.detail = detail
        super().__init__(f"cannot insert block #{number}: {detail}")


class NodeStateError(SimulatorError):
    """Raised for lifecycle calls that do not match a node's state."""


class ConnectionStateError(SimulatorError):
    """Raised when a connect or disconnect does not match the edge state."""


class PeerRejectedError(SimulatorError):
    """Raised when a node refuses to peer with another node."""


class SignerError(SimulatorError):
    """Raised for signing daemon configuration or IPC failures."""
