"""
Iceberg Protocol Node
"""

from iceberg.node.config import IcebergConfig, setup_logging
from iceberg.node.node import IcebergNode

__all__ = [
    "IcebergConfig",
    "IcebergNode",
    "setup_logging",
]
