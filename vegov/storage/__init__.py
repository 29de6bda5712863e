"""
Engine storage: transactional key-value store and height-versioned tables.
"""

from .kv import Counter, KVStore, Table
from .versioned import VersionedTable

__all__ = ["Counter", "KVStore", "Table", "VersionedTable"]
