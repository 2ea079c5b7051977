"""
Work Store - SQLite persistence

Responsibilities:
- Work item table (CONFIGURED / QUEUED / DISPATCHED)
- Append-only work event log
- FIFO selection of queued items
"""

from .local_db import WorkStore, SAMPLE_ITEMS

__all__ = ["WorkStore", "SAMPLE_ITEMS"]
