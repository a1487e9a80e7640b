"""Protocol layer: push event types and request models."""

from sortcluster.protocol.messages import (
    Event,
    EventType,
    LogEntry,
    ObserverMessageType,
    WorkerInfo,
    WorkerStatus,
)

__all__ = [
    "Event",
    "EventType",
    "LogEntry",
    "ObserverMessageType",
    "WorkerInfo",
    "WorkerStatus",
]
