"""Coordinator server for cluster membership and sort runs."""

from sortcluster.coordinator.server import CoordinatorServer
from sortcluster.coordinator.registry import WorkerRegistry
from sortcluster.coordinator.broadcaster import EventBroadcaster
from sortcluster.coordinator.orchestrator import SortOrchestrator

__all__ = [
    "CoordinatorServer",
    "WorkerRegistry",
    "EventBroadcaster",
    "SortOrchestrator",
]
