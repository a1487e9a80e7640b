"""Message type definitions for the sortcluster push protocol."""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any
import time


class WorkerStatus(str, Enum):
    """Lifecycle status of a worker."""

    CONNECTED = "connected"
    WORKING = "working"
    SUSPENDED = "suspended"
    DISCONNECTED = "disconnected"

    @property
    def is_eligible(self) -> bool:
        """Whether a worker in this status takes part in a sort run."""
        return self in (WorkerStatus.CONNECTED, WorkerStatus.WORKING)


class EventType(str, Enum):
    """Event types pushed from the coordinator to observers."""

    # Membership
    INITIAL_SNAPSHOT = "initial_snapshot"
    WORKER_ADDED = "worker_added"
    WORKER_UPDATED = "worker_updated"
    WORKER_REMOVED = "worker_removed"
    COORDINATOR_SWITCHED = "coordinator_switched"

    # Event log
    LOG_UPDATE = "log_update"

    # Sort runs
    ASSIGN_CHUNK = "assign_chunk"
    SORT_PROGRESS = "sort_progress"
    SORT_COMPLETE = "sort_complete"
    SORT_ERROR = "sort_error"

    # Private reply to a single observer
    ERROR = "error"


class ObserverMessageType(str, Enum):
    """Message types an observer may send to the coordinator."""

    REQUEST_COORDINATOR_SWITCH = "request_coordinator_switch"
    MANUAL_UPDATE = "manual_update"
    MANUAL_UNREGISTER = "manual_unregister"


def isoformat(timestamp: float) -> str:
    """Render a unix timestamp the way the event log does."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(
        timespec="milliseconds"
    ).replace("+00:00", "Z")


@dataclass
class Event:
    """A single push event."""

    event_type: EventType
    sequence_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON frame sent over the WebSocket."""
        return {
            "event": self.event_type.value,
            "seq": self.sequence_id,
            "timestamp": self.timestamp,
            "data": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Create from a received frame."""
        return cls(
            event_type=EventType(data["event"]),
            sequence_id=data.get("seq", 0),
            payload=data.get("data", {}),
            timestamp=data.get("timestamp", time.time()),
        )


@dataclass
class WorkerInfo:
    """Information about a registered worker."""

    worker_id: str
    name: str
    status: WorkerStatus = WorkerStatus.CONNECTED
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.worker_id,
            "name": self.name,
            "status": self.status.value,
            "createdAt": isoformat(self.created_at),
        }


@dataclass
class LogEntry:
    """One line of the human-readable event log."""

    message: str
    timestamp: float = field(default_factory=time.time)

    @property
    def line(self) -> str:
        return f"[{isoformat(self.timestamp)}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "message": self.message,
            "timestamp": self.timestamp,
        }

