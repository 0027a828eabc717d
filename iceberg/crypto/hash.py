"""
Iceberg Protocol Hash Functions

Keccak-256 (the pre-standard Keccak used by Ethereum, not SHA3-256) and the
hash-to-field mapping used for passphrase derivation and Merkle zero values.
"""

from __future__ import annotations
from typing import Any, Sequence

from Crypto.Hash import SHA256, keccak
from eth_abi.packed import encode_packed

from iceberg.crypto.field import field_from_bytes


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash.

    Args:
        data: Input bytes

    Returns:
        32-byte digest
    """
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def domain_hash(text: str) -> int:
    """
    Map a string to a field element: keccak256(utf8(text)) mod r.

    Args:
        text: Any string, including the empty string

    Returns:
        Field element
    """
    return field_from_bytes(keccak256(text.encode("utf-8")))


def solidity_keccak256(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """
    keccak256 over the tightly packed ABI encoding (abi.encodePacked).

    Args:
        types: Solidity type names
        values: Values matching types

    Returns:
        32-byte digest
    """
    return keccak256(encode_packed(list(types), list(values)))


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 of a canonical function signature."""
    return keccak256(signature.encode("ascii"))[:4]


def sha256_file(path: str, chunk_size: int = 1 << 20) -> str:
    """
    Hex SHA-256 digest of a file, read in chunks.

    Args:
        path: File to hash
        chunk_size: Read size in bytes

    Returns:
        64-character hex digest
    """
    h = SHA256.new()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()
