"""
sortcluster - Simulated cluster running a parallel odd-even sort

Workers register with a coordinator process, the first one becomes the
coordinator, and sort runs split an array across the registered workers
and exchange chunk boundaries until the whole array is sorted. Observers
receive every state change over a WebSocket.
"""

__version__ = "0.1.0"

from sortcluster.protocol.messages import EventType, WorkerStatus

__all__ = [
    "__version__",
    "EventType",
    "WorkerStatus",
    "CoordinatorServer",
]


def __getattr__(name: str):
    if name == "CoordinatorServer":
        from sortcluster.coordinator.server import CoordinatorServer
        return CoordinatorServer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
