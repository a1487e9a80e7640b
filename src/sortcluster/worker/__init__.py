"""Worker node that registers with the coordinator."""

from sortcluster.worker.node import WorkerNode

__all__ = ["WorkerNode"]
