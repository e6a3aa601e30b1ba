"""Reusable type definitions for the cluster simulator."""

from .base import CamelModel, FrozenModel, StrictBaseModel
from .byte_arrays import ZERO_HASH, Address, BaseBytes, Hash32, keccak256
from .exceptions import (
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
from .rlp import encode_rlp

__all__ = [
    # Models
    "CamelModel",
    "FrozenModel",
    "StrictBaseModel",
    # Bytes
    "Address",
    "BaseBytes",
    "Hash32",
    "ZERO_HASH",
    "keccak256",
    "encode_rlp",
    # Exceptions
    "SimulatorError",
    "ConfigurationError",
    "UnsupportedAdapterError",
    "InvalidConnectionIndexError",
    "TopologyError",
    "ConstructionError",
    "ChainInsertError",
    "NodeStateError",
    "ConnectionStateError",
    "PeerRejectedError",
    "SignerError",
]
