"""
Recursive Length Prefix (RLP) Encoding
======================================

RLP is Ethereum's serialization format for arbitrary nested binary data.
The simulator only needs the encoding direction: block hashes, genesis
hashes and contract-creation addresses are all keccak digests of RLP.

+-------------+-----------------------------------------------------------+
| Prefix      | Meaning                                                   |
+=============+===========================================================+
| [0x00-0x7f] | Single byte, value is the byte itself                     |
+-------------+-----------------------------------------------------------+
| [0x80-0xb7] | Short string (0-55 bytes), length = prefix - 0x80         |
+-------------+-----------------------------------------------------------+
| [0xb8-0xbf] | Long string (>55 bytes), prefix - 0xb7 = length of length |
+-------------+-----------------------------------------------------------+
| [0xc0-0xf7] | Short list (0-55 bytes payload), length = prefix - 0xc0   |
+-------------+-----------------------------------------------------------+
| [0xf8-0xff] | Long list (>55 bytes payload), prefix - 0xf7 = len of len |
+-------------+-----------------------------------------------------------+
"""

from __future__ import annotations

from typing import TypeAlias

RLPItem: TypeAlias = bytes | int | list["RLPItem"]
"""Bytes, a non-negative integer (encoded big-endian, minimal), or a nested list."""

SINGLE_BYTE_MAX = 0x7F
SHORT_STRING_PREFIX = 0x80
LONG_STRING_BASE = 0xB7
SHORT_LIST_PREFIX = 0xC0
LONG_LIST_BASE = 0xF7
SHORT_MAX_LEN = 55


def encode_int(value: int) -> bytes:
    """Minimal big-endian representation; zero is the empty string."""
    if value < 0:
        raise ValueError(f"RLP cannot encode negative integer {value}")
    if value == 0:
        return b""
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def encode_rlp(item: RLPItem) -> bytes:
    """
    Encode an item using RLP.

    Raises:
        TypeError: If item is not bytes, int or list.
    """
    # bool is an int subclass and almost always a caller mistake.
    if isinstance(item, bool):
        raise TypeError("Cannot RLP encode type: bool")
    if isinstance(item, int):
        return _encode_bytes(encode_int(item))
    if isinstance(item, bytes):
        return _encode_bytes(item)
    if isinstance(item, list):
        payload = b"".join(encode_rlp(sub) for sub in item)
        return _prefix(payload, SHORT_LIST_PREFIX, LONG_LIST_BASE) + payload
    raise TypeError(f"Cannot RLP encode type: {type(item).__name__}")


def _encode_bytes(data: bytes) -> bytes:
    if len(data) == 1 and data[0] <= SINGLE_BYTE_MAX:
        return data
    return _prefix(data, SHORT_STRING_PREFIX, LONG_STRING_BASE) + data


def _prefix(payload: bytes, short_base: int, long_base: int) -> bytes:
    length = len(payload)
    if length <= SHORT_MAX_LEN:
        return bytes([short_base + length])
    length_bytes = encode_int(length)
    return bytes([long_base + len(length_bytes)]) + length_bytes
