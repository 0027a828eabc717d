"""
Iceberg Protocol Core Types

Addresses are 20-byte account identifiers, amounts are non-negative integers
in the asset's smallest unit, field elements are ints (see crypto.field).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from eth_utils import is_checksum_address, is_hex_address, to_checksum_address

from iceberg.constants import ADDRESS_SIZE
from iceberg.errors import InvalidAddressError, InvalidAmountError


@dataclass(frozen=True, slots=True)
class Address:
    """
    Account or token address.

    SIZE: 20 bytes
    SERIALIZATION: raw bytes; text form is EIP-55 checksummed hex
    """
    data: bytes = field(default_factory=lambda: bytes(ADDRESS_SIZE))

    def __post_init__(self):
        if not isinstance(self.data, bytes) or len(self.data) != ADDRESS_SIZE:
            raise InvalidAddressError(self.data)

    def __bytes__(self) -> bytes:
        return self.data

    def __str__(self) -> str:
        return self.checksum

    def __repr__(self) -> str:
        return f"Address({self.checksum})"

    @property
    def checksum(self) -> str:
        return to_checksum_address(self.data)

    def hex(self) -> str:
        return "0x" + self.data.hex()

    def to_int(self) -> int:
        """Address as an unsigned integer (circuit public input form)."""
        return int.from_bytes(self.data, "big")

    def is_zero(self) -> bool:
        return self.data == bytes(ADDRESS_SIZE)

    @classmethod
    def from_hex(cls, text: str) -> "Address":
        """
        Parse a 0x-prefixed hex address.

        Mixed-case input must carry a valid EIP-55 checksum; all-lowercase
        and all-uppercase input is accepted as is.

        Raises:
            InvalidAddressError: If the text is not a valid address
        """
        if not isinstance(text, str) or not is_hex_address(text):
            raise InvalidAddressError(text)
        body = text[2:] if text[:2].lower() == "0x" else text
        if body != body.lower() and body != body.upper() and not is_checksum_address(text):
            raise InvalidAddressError(text)
        return cls(bytes.fromhex(body))

    @classmethod
    def from_int(cls, value: int) -> "Address":
        if value < 0 or value >= 1 << (8 * ADDRESS_SIZE):
            raise InvalidAddressError(value)
        return cls(value.to_bytes(ADDRESS_SIZE, "big"))

    @classmethod
    def zero(cls) -> "Address":
        return cls(bytes(ADDRESS_SIZE))

    @classmethod
    def parse(cls, value: Any) -> "Address":
        """Accept an Address, hex string or 20 raw bytes."""
        if isinstance(value, Address):
            return value
        if isinstance(value, bytes):
            return cls(value)
        if isinstance(value, str):
            return cls.from_hex(value)
        raise InvalidAddressError(value)


def parse_amount(value: Any) -> int:
    """
    Validate an amount in base units.

    Accepts non-negative ints and decimal digit strings.

    Raises:
        InvalidAmountError: If the value is not a non-negative integer
    """
    if isinstance(value, bool):
        raise InvalidAmountError(value)
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip().isdigit():
        amount = int(value.strip())
    else:
        raise InvalidAmountError(value)
    if amount < 0:
        raise InvalidAmountError(value, "must not be negative")
    return amount


def format_units(amount: int, decimals: int) -> str:
    """
    Render base units as a decimal string, e.g. 200000000000000 at 18 -> "0.0002".

    Whole amounts keep one fractional digit ("1.0").
    """
    whole, fraction = divmod(parse_amount(amount), 10 ** decimals)
    digits = str(fraction).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{whole}.{digits or '0'}"
