"""
Fixed-length byte types.

Addresses and hashes are plain `bytes` subclasses with a length check,
so they hash, compare and slice like bytes while validating through pydantic.
"""

from __future__ import annotations

from typing import Any, ClassVar, Iterable, SupportsIndex

from Crypto.Hash import keccak
from pydantic.annotated_handlers import GetCoreSchemaHandler
from pydantic_core import core_schema
from typing_extensions import Self


def _coerce_to_bytes(value: Any) -> bytes:
    """
    Coerce a variety of inputs to raw bytes.

    Accepts:
      - `bytes` / `bytearray` (returned as immutable `bytes`)
      - Iterables of integers in [0, 255]
      - Hex strings, with or without a '0x' prefix (e.g. "0xdeadbeef" or "deadbeef")

    Raises:
      ValueError / TypeError if conversion is not possible or out-of-range.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value.removeprefix("0x"))
    if isinstance(value, Iterable):
        return bytes(bytearray(value))
    return bytes(value)


def keccak256(*chunks: bytes) -> bytes:
    """Keccak-256 digest of the concatenated chunks."""
    k = keccak.new(digest_bits=256)
    for chunk in chunks:
        k.update(chunk)
    return k.digest()


class BaseBytes(bytes):
    """
    A base class for fixed-length byte types that inherits from `bytes`.

    Subclasses set:
      - `LENGTH`: exact number of bytes the instance must contain.
    """

    LENGTH: ClassVar[int]
    """The exact number of bytes (overridden by subclasses)."""

    def __new__(cls, value: Any = b"") -> Self:
        """
        Create and validate a new instance.

        Raises:
            ValueError: If the resulting byte length differs from `LENGTH`.
        """
        if not hasattr(cls, "LENGTH"):
            raise TypeError(f"{cls.__name__} must define LENGTH")

        b = _coerce_to_bytes(value)
        if len(b) != cls.LENGTH:
            raise ValueError(f"{cls.__name__} expects exactly {cls.LENGTH} bytes, got {len(b)}")
        return super().__new__(cls, b)

    @classmethod
    def zero(cls) -> Self:
        """Create a new instance filled with zero bytes."""
        return cls(b"\x00" * cls.LENGTH)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        """
        Hook into Pydantic's validation system.

        Accepts an existing instance, raw bytes of the exact length, or a
        0x-prefixed hex string (the form used in YAML and JSON payloads).
        Serializes to a 0x-prefixed hex string.
        """
        from_value_validator = core_schema.no_info_plain_validator_function(cls)

        bytes_schema = core_schema.chain_schema(
            [
                core_schema.bytes_schema(min_length=cls.LENGTH, max_length=cls.LENGTH),
                from_value_validator,
            ]
        )
        hex_schema = core_schema.chain_schema(
            [
                core_schema.str_schema(pattern=r"^(0x)?[0-9a-fA-F]*$"),
                from_value_validator,
            ]
        )

        return core_schema.union_schema(
            [
                core_schema.is_instance_schema(cls),
                bytes_schema,
                hex_schema,
            ],
            serialization=core_schema.plain_serializer_function_ser_schema(lambda x: x.to_hex()),
        )

    def to_hex(self) -> str:
        """Return the 0x-prefixed hexadecimal form."""
        return "0x" + bytes(self).hex()

    def __repr__(self) -> str:
        """Return a string representation of the bytes."""
        return f"{type(self).__name__}({self.to_hex()})"

    def __str__(self) -> str:
        """Render as 0x-prefixed hex."""
        return self.to_hex()

    def __hash__(self) -> int:
        """Return the hash of the bytes."""
        return hash((type(self), bytes(self)))

    def hex(self, sep: str | bytes | None = None, bytes_per_sep: SupportsIndex = 1) -> str:
        """Return the hexadecimal string representation of the underlying bytes."""
        return bytes(self).hex() if sep is None else bytes(self).hex(sep, bytes_per_sep)


class Address(BaseBytes):
    """A 20-byte account or contract address."""

    LENGTH = 20

    @classmethod
    def from_public_key(cls, uncompressed: bytes) -> Address:
        """
        Derive the address of a secp256k1 public key.

        The key is the 65-byte uncompressed SEC1 encoding; the address is the
        last 20 bytes of the keccak digest of the 64 coordinate bytes.
        """
        if len(uncompressed) != 65 or uncompressed[0] != 0x04:
            raise ValueError("expected a 65-byte uncompressed public key")
        return cls(keccak256(uncompressed[1:])[12:])


class Hash32(BaseBytes):
    """A 32-byte keccak digest."""

    LENGTH = 32


ZERO_HASH: Hash32 = Hash32.zero()
"""All-zero hash used as the genesis parent."""
