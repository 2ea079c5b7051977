"""
Gateway Service - Dispatch, reconciliation and status

Responsibilities:
- Dispatch queued work items to the device
- Reconcile device events into the work store
- Track live progress of the executing item
- Publish the shared status document
"""

from .dispatcher import DispatchOutcome, Dispatcher
from .progress import ProgressSnapshot, ProgressTracker
from .publisher import (
    FileStatusSink,
    MemoryStatusSink,
    NullStatusSink,
    StatusPublisher,
    StatusSink,
)
from .reconciler import EventReconciler
from .service import GatewayService

__all__ = [
    "DispatchOutcome",
    "Dispatcher",
    "ProgressSnapshot",
    "ProgressTracker",
    "FileStatusSink",
    "MemoryStatusSink",
    "NullStatusSink",
    "StatusPublisher",
    "StatusSink",
    "EventReconciler",
    "GatewayService",
]
