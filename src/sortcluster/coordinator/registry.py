"""Worker registry for tracking membership and the current coordinator."""

import asyncio
import logging
from typing import Dict, Optional, List, Any

from sortcluster.coordinator.broadcaster import EventBroadcaster
from sortcluster.errors import UnknownWorker
from sortcluster.protocol.messages import EventType, WorkerInfo, WorkerStatus

logger = logging.getLogger(__name__)


class WorkerRegistry:
    """
    Registry for tracking worker nodes.

    Responsibilities:
    - Accept worker registrations and status updates
    - Elect the first registered worker as coordinator
    - Keep the coordinator reference pointing at a present worker
    - Publish every change through the broadcaster

    All mutations run under one lock and publish while holding it, so the
    order of pushed events matches the order of mutations.
    """

    def __init__(self, broadcaster: Optional[EventBroadcaster] = None):
        """
        Initialize WorkerRegistry.

        Args:
            broadcaster: Event broadcaster notified of every change
        """
        self.broadcaster = broadcaster or EventBroadcaster()

        # Insertion ordered: registration order is the eligibility order
        self._workers: Dict[str, WorkerInfo] = {}
        self._coordinator_id: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def worker_count(self) -> int:
        """Number of registered workers."""
        return len(self._workers)

    @property
    def coordinator_id(self) -> Optional[str]:
        return self._coordinator_id

    async def register(self, worker_id: str, name: str, status: WorkerStatus) -> Optional[str]:
        """
        Register a worker or update the status of an existing one.

        Args:
            worker_id: Unique worker id
            name: Display name (ignored for known workers)
            status: Worker status

        Returns:
            Current coordinator id
        """
        status = WorkerStatus(status)
        async with self._lock:
            info = self._workers.get(worker_id)

            if info is None:
                info = WorkerInfo(worker_id=worker_id, name=name, status=status)
                self._workers[worker_id] = info

                if self._coordinator_id is None:
                    self._coordinator_id = worker_id
                    self.broadcaster.log(f"First worker {worker_id} joined and became Coordinator")
                else:
                    self.broadcaster.log(
                        f"Worker registered: {worker_id} ({name}). "
                        f"Coordinator={self._coordinator_id}"
                    )
                self.broadcaster.publish(EventType.WORKER_ADDED, {
                    **info.to_dict(),
                    "coordinatorId": self._coordinator_id,
                })
            else:
                info.status = status
                self.broadcaster.log(f"Worker {worker_id} updated status -> {status.value}")
                self.broadcaster.publish(EventType.WORKER_UPDATED, {
                    "id": worker_id,
                    "status": status.value,
                })

            return self._coordinator_id

    async def unregister(self, worker_id: str) -> Optional[str]:
        """
        Remove a worker.

        Removing the coordinator clears the coordinator reference; no
        replacement is elected.

        Args:
            worker_id: Worker id to remove

        Returns:
            Current coordinator id (None if the coordinator was removed)

        Raises:
            UnknownWorker: If the worker is not registered
        """
        async with self._lock:
            if worker_id not in self._workers:
                logger.warning(f"Cannot unregister unknown worker {worker_id}")
                raise UnknownWorker("invalid id")

            del self._workers[worker_id]

            if self._coordinator_id == worker_id:
                self._coordinator_id = None
                self.broadcaster.log(f"Coordinator {worker_id} left. No Coordinator now.")
            else:
                self.broadcaster.log(
                    f"Worker {worker_id} left. Coordinator still {self._coordinator_id}"
                )
            self.broadcaster.publish(EventType.WORKER_REMOVED, {
                "id": worker_id,
                "coordinatorId": self._coordinator_id,
            })

            return self._coordinator_id

    async def switch_coordinator(self, new_id: str) -> bool:
        """
        Make another present worker the coordinator.

        Returns:
            True if switched, False if ``new_id`` is not a registered worker
        """
        async with self._lock:
            if new_id not in self._workers:
                logger.debug(f"Ignoring coordinator switch to unknown worker {new_id}")
                return False

            old_id = self._coordinator_id
            self._coordinator_id = new_id
            self.broadcaster.log(f"Coordinator switched from {old_id or '(none)'} to {new_id}")
            self.broadcaster.publish(EventType.COORDINATOR_SWITCHED, {
                "newCoordinatorId": new_id,
                "oldCoordinatorId": old_id,
            })

            return True

    async def set_status(self, worker_id: str, status: WorkerStatus) -> bool:
        """
        Update a worker's status.

        Returns:
            True if updated, False if the worker is not registered
        """
        status = WorkerStatus(status)
        async with self._lock:
            return self._set_status_locked(worker_id, status)

    async def mark_coordinator(self, status: WorkerStatus) -> Optional[str]:
        """
        Set the current coordinator's status.

        Returns:
            Id of the coordinator that was updated, or None if there is none
        """
        status = WorkerStatus(status)
        async with self._lock:
            coordinator_id = self._coordinator_id
            if coordinator_id is not None:
                self._set_status_locked(coordinator_id, status)
            return coordinator_id

    def _set_status_locked(self, worker_id: str, status: WorkerStatus) -> bool:
        info = self._workers.get(worker_id)
        if info is None:
            logger.debug(f"Ignoring status update for unknown worker {worker_id}")
            return False

        info.status = status
        self.broadcaster.publish(EventType.WORKER_UPDATED, {
            "id": worker_id,
            "status": status.value,
        })
        return True

    def list_active(self) -> List[str]:
        """Ids of workers eligible for a sort run, in registration order."""
        return [
            worker_id
            for worker_id, info in self._workers.items()
            if info.status.is_eligible
        ]

    def get_worker(self, worker_id: str) -> Optional[WorkerInfo]:
        """Get worker info by id."""
        return self._workers.get(worker_id)

    def get_all_workers(self) -> List[WorkerInfo]:
        """Get all registered workers."""
        return list(self._workers.values())

    def snapshot(self) -> Dict[str, Any]:
        """All workers plus the current coordinator id."""
        return {
            "workers": [w.to_dict() for w in self._workers.values()],
            "coordinatorId": self._coordinator_id,
        }
