"""
로컬 Key-Value 저장소 어댑터
"""

from adapters.kv.memory_store import MemoryKeyValueStore
from adapters.kv.sqlite_store import SQLiteKeyValueStore

__all__ = [
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
]
