"""Tests for fixed-length byte types."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from les_sim.types import ZERO_HASH, Address, Hash32, keccak256

ADDRESS_HEX = "0x" + "ab" * 20


class TestConstruction:
    """Tests for building addresses and hashes."""

    def test_from_hex_with_and_without_prefix(self) -> None:
        """Hex strings are accepted with or without 0x."""
        assert Address(ADDRESS_HEX) == Address(ADDRESS_HEX[2:])

    def test_from_bytes(self) -> None:
        """Raw bytes of the right length are accepted."""
        assert bytes(Address(b"\xab" * 20)) == b"\xab" * 20

    def test_from_iterable_of_ints(self) -> None:
        """Integer iterables are read as byte values."""
        assert Hash32([1] * 32) == b"\x01" * 32

    @pytest.mark.parametrize("value", [b"\x00" * 19, b"\x00" * 21, "0x00"])
    def test_wrong_length_rejected(self, value: bytes | str) -> None:
        """Anything but the exact length is refused."""
        with pytest.raises(ValueError, match="expects exactly 20 bytes"):
            Address(value)

    def test_zero(self) -> None:
        """zero() fills the type with zero bytes."""
        assert Address.zero() == b"\x00" * 20
        assert ZERO_HASH == b"\x00" * 32


class TestRendering:
    """Tests for hex rendering."""

    def test_to_hex(self) -> None:
        """to_hex is 0x-prefixed lowercase hex."""
        assert Address(ADDRESS_HEX).to_hex() == ADDRESS_HEX

    def test_str_and_repr(self) -> None:
        """str is the hex form, repr names the type."""
        address = Address(ADDRESS_HEX)
        assert str(address) == ADDRESS_HEX
        assert repr(address) == f"Address({ADDRESS_HEX})"

    def test_hex_has_no_prefix(self) -> None:
        """hex() behaves like bytes.hex()."""
        assert Address(ADDRESS_HEX).hex() == "ab" * 20


class TestPydantic:
    """Tests for validation through pydantic."""

    def test_validates_hex_string(self) -> None:
        """Hex strings validate into the byte type."""
        address = TypeAdapter(Address).validate_python(ADDRESS_HEX)
        assert isinstance(address, Address)

    def test_serializes_to_hex(self) -> None:
        """JSON serialization uses the hex form."""
        adapter = TypeAdapter(Address)
        assert adapter.dump_python(Address(ADDRESS_HEX), mode="json") == ADDRESS_HEX

    def test_rejects_non_hex(self) -> None:
        """Non-hex strings fail validation."""
        with pytest.raises(ValidationError):
            TypeAdapter(Address).validate_python("not an address")

    def test_usable_as_dict_key(self) -> None:
        """Equal values hash equally."""
        balances = {Address(ADDRESS_HEX): 1}
        assert balances[Address(ADDRESS_HEX[2:])] == 1


class TestKeccak:
    """Tests for the keccak helper and address derivation."""

    def test_empty_digest(self) -> None:
        """Keccak-256 of nothing matches the well-known constant."""
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_chunks_are_concatenated(self) -> None:
        """Several chunks hash like their concatenation."""
        assert keccak256(b"ab", b"cd") == keccak256(b"abcd")

    def test_from_public_key_takes_last_twenty_bytes(self) -> None:
        """An address is the tail of the digest of the key coordinates."""
        public = b"\x04" + b"\x01" * 64
        assert Address.from_public_key(public) == keccak256(b"\x01" * 64)[12:]

    def test_from_public_key_rejects_compressed(self) -> None:
        """Only uncompressed keys are accepted."""
        with pytest.raises(ValueError, match="uncompressed"):
            Address.from_public_key(b"\x02" + b"\x01" * 32)
