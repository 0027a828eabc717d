"""
Iceberg Protocol Core Types
"""

from iceberg.core.types import Address, format_units, parse_amount
from iceberg.core.asset import (
    Native,
    Fungible,
    NATIVE,
    Vault,
    asset_from_address,
    asset_to_dict,
)

__all__ = [
    "Address",
    "parse_amount",
    "format_units",
    # Assets
    "Native",
    "Fungible",
    "NATIVE",
    "Vault",
    "asset_from_address",
    "asset_to_dict",
]
