"""
Iceberg Protocol Field Arithmetic

Helpers for the BN254 scalar field. Field elements are plain ints in
[0, FIELD_MODULUS); these helpers parse, reduce and encode them.
"""

from __future__ import annotations
from typing import Any, List, Union

from iceberg.constants import FIELD_MODULUS, FIELD_BYTES
from iceberg.errors import InvalidFieldElementError

FieldLike = Union[int, str, bytes]


def to_field(value: int) -> int:
    """Reduce an integer into the field."""
    return value % FIELD_MODULUS


def is_field_element(value: Any) -> bool:
    """True if value is a canonical field element."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < FIELD_MODULUS


def parse_field(value: FieldLike, strict: bool = True) -> int:
    """
    Parse a field element from int, decimal string, 0x-hex string or bytes.

    Args:
        value: Value to parse
        strict: Reject values >= modulus instead of reducing them

    Returns:
        Field element

    Raises:
        InvalidFieldElementError: If the value cannot be parsed or is out of range
    """
    if isinstance(value, bool):
        raise InvalidFieldElementError(value, "booleans are not field elements")

    if isinstance(value, int):
        number = value
    elif isinstance(value, bytes):
        number = int.from_bytes(value, "big")
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                number = int(text, 16)
            else:
                number = int(text, 10)
        except ValueError:
            raise InvalidFieldElementError(value, "not a number") from None
    else:
        raise InvalidFieldElementError(value, f"unsupported type {type(value).__name__}")

    if number < 0:
        raise InvalidFieldElementError(value, "negative")
    if number >= FIELD_MODULUS:
        if strict:
            raise InvalidFieldElementError(value, "not below the field modulus")
        number %= FIELD_MODULUS
    return number


def field_from_bytes(data: bytes) -> int:
    """Interpret big-endian bytes as an integer and reduce into the field."""
    return int.from_bytes(data, "big") % FIELD_MODULUS


def to_bytes32(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return value.to_bytes(FIELD_BYTES, "big")


def to_hex32(value: int) -> str:
    """Encode a field element as a 0x-prefixed 64-digit hex string (bytes32)."""
    return "0x" + value.to_bytes(FIELD_BYTES, "big").hex()


def short_hex(value: int) -> str:
    """Shortened hex for log lines."""
    return to_hex32(value)[:18] + "..."


def field_inv(value: int) -> int:
    """Multiplicative inverse in the field."""
    if value % FIELD_MODULUS == 0:
        raise ZeroDivisionError("zero has no inverse in the field")
    return pow(value, FIELD_MODULUS - 2, FIELD_MODULUS)


def batch_inverse(values: List[int]) -> List[int]:
    """
    Invert many field elements with one exponentiation (Montgomery's trick).

    Args:
        values: Non-zero field elements

    Returns:
        Inverses in the same order
    """
    if not values:
        return []

    prefix = [0] * len(values)
    acc = 1
    for i, v in enumerate(values):
        prefix[i] = acc
        acc = acc * v % FIELD_MODULUS

    inv = field_inv(acc)
    result = [0] * len(values)
    for i in range(len(values) - 1, -1, -1):
        result[i] = inv * prefix[i] % FIELD_MODULUS
        inv = inv * values[i] % FIELD_MODULUS
    return result
