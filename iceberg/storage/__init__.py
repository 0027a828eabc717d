"""
Iceberg Protocol Event Storage
"""

from iceberg.storage.events import EventStore

__all__ = ["EventStore"]
