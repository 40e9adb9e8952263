"""Storage adapters for captured logs and alert rules."""

from storepulse.adapters.storage.ring_buffer import RingBufferLogStorage
from storepulse.adapters.storage.rules import CacheRuleStorage
from storepulse.adapters.storage.sqlite_logs import SQLiteLogStorage

__all__ = [
    "CacheRuleStorage",
    "RingBufferLogStorage",
    "SQLiteLogStorage",
]
