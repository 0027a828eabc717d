"""
Iceberg Protocol Cryptographic Primitives
BN254 field helpers, Poseidon, Keccak and the Merkle accumulator.
"""

from iceberg.crypto.field import to_field, parse_field, to_bytes32, to_hex32
from iceberg.crypto.hash import keccak256, solidity_keccak256, sha256_file
from iceberg.crypto.poseidon import poseidon, h1, h2
from iceberg.crypto.merkle import MerkleAccumulator, MerklePath, compute_root, zero_values

__all__ = [
    # Field
    "to_field",
    "parse_field",
    "to_bytes32",
    "to_hex32",
    # Hash functions
    "keccak256",
    "solidity_keccak256",
    "sha256_file",
    "poseidon",
    "h1",
    "h2",
    # Merkle tree
    "MerkleAccumulator",
    "MerklePath",
    "compute_root",
    "zero_values",
]
