"""Backup synchronization for nostr-backup.

SyncEngine finds the records a target relay is missing; BatchPublisher
republishes them oldest first.
"""

from .engine import SyncEngine, SyncPlan, build_filter, missing_records
from .publisher import BatchPublisher, PublishReport

__all__ = [
    "BatchPublisher",
    "PublishReport",
    "SyncEngine",
    "SyncPlan",
    "build_filter",
    "missing_records",
]
