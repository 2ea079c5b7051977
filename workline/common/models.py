"""
Work Item Dataclasses

Domain records shared by the store, the dispatcher and the reconciler.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class WorkState(str, Enum):
    """Work item lifecycle states"""
    CONFIGURED = "CONFIGURED"
    QUEUED = "QUEUED"
    DISPATCHED = "DISPATCHED"


class EventKind(str, Enum):
    """Work event log kinds"""
    DISPATCHED = "DISPATCHED"
    ACCEPTED = "ACCEPTED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"


# Device events that return an item to the eligible pool
RESETTING_EVENTS = frozenset({EventKind.REJECTED, EventKind.CANCELED})


@dataclass
class WorkItem:
    """A timed unit of work configured by an operator"""
    id: int
    code: str
    name: str
    duration: int  # seconds, > 0
    state: WorkState = WorkState.CONFIGURED
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "duration": self.duration,
            "state": self.state.value,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class WorkEvent:
    """
    Append-only log record.

    Code, name and duration are copied from the item at write time so
    history survives later edits to the item.
    """
    id: int
    work_id: int
    code: str
    name: str
    duration: int
    kind: EventKind
    occurred_at: str
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "work_id": self.work_id,
            "code": self.code,
            "name": self.name,
            "duration": self.duration,
            "kind": self.kind.value,
            "occurred_at": self.occurred_at,
            "note": self.note,
        }
