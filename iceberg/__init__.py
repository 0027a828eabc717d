"""
Iceberg Protocol

Privacy pool for fixed-denomination deposits: commit, swap through an
aggregator, withdraw to an unlinked address with a Groth16 proof.
"""

__version__ = "1.0.0"
__author__ = "Iceberg Protocol"

from iceberg.constants import PROTOCOL_NAME, PROTOCOL_VERSION, MERKLE_TREE_DEPTH

__all__ = [
    "PROTOCOL_NAME",
    "PROTOCOL_VERSION",
    "MERKLE_TREE_DEPTH",
    "__version__",
]
