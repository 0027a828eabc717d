"""
Iceberg Protocol JSON-RPC API
"""

from iceberg.api.server import APIServer
from iceberg.api.remote import RemoteLedger
from iceberg.api.methods import METHOD_REGISTRY, list_methods

__all__ = [
    "APIServer",
    "RemoteLedger",
    "METHOD_REGISTRY",
    "list_methods",
]
