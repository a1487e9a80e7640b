"""Worker node that joins the sort cluster over HTTP."""

import asyncio
import logging
import signal
import argparse
import socket
import time
import uuid
from typing import Optional, Dict, Any
import aiohttp

from sortcluster.coordinator.server import load_config
from sortcluster.protocol.messages import WorkerStatus

logger = logging.getLogger(__name__)


class RegistrationError(RuntimeError):
    """Coordinator rejected a registration or departure."""


class WorkerNode:
    """
    Worker node for the sort cluster.

    Responsibilities:
    - Register with the coordinator on startup
    - Re-post its status periodically (registration is an upsert)
    - Report status changes
    - Unregister on shutdown
    """

    def __init__(
        self,
        coordinator_url: str,
        worker_id: Optional[str] = None,
        name: Optional[str] = None,
        refresh_interval: Optional[float] = 30.0,
        timeout_seconds: float = 10.0,
    ):
        """
        Initialize WorkerNode.

        Args:
            coordinator_url: Base URL of the coordinator
            worker_id: Unique worker id (generated if None)
            name: Display name (hostname if None)
            refresh_interval: Seconds between status re-posts (None disables)
            timeout_seconds: Per-request timeout
        """
        self.coordinator_url = coordinator_url.rstrip('/')
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.name = name or socket.gethostname()
        self.refresh_interval = refresh_interval
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        # State
        self.status = WorkerStatus.CONNECTED
        self.coordinator_id: Optional[str] = None
        self.registered = False
        self._running = False
        self._stopped = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._last_success: Optional[float] = None

        logger.info(f"WorkerNode initialized: {self.worker_id}, coordinator {coordinator_url}")

    @property
    def is_coordinator(self) -> bool:
        return self.coordinator_id == self.worker_id

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

        async with self._session.post(f"{self.coordinator_url}{path}", json=payload) as response:
            if response.status != 200:
                error = await response.text()
                raise RegistrationError(f"{path} failed with status {response.status}: {error}")
            data = await response.json()

        self._last_success = time.time()
        self.coordinator_id = data.get("coordinatorId")
        return data

    async def register(self) -> Optional[str]:
        """
        Register (or refresh) this worker with its current status.

        Returns:
            Coordinator id reported by the coordinator
        """
        await self._post("/register", {
            "id": self.worker_id,
            "name": self.name,
            "status": self.status.value,
        })
        self.registered = True
        logger.debug(
            f"{self.worker_id} registered as {self.status.value}, "
            f"coordinator={self.coordinator_id}"
        )
        return self.coordinator_id

    async def set_status(self, status: WorkerStatus) -> Optional[str]:
        """Change this worker's status and report it."""
        self.status = WorkerStatus(status)
        logger.info(f"{self.worker_id} status set to: {self.status.value}")
        return await self.register()

    async def unregister(self) -> Optional[str]:
        """Leave the cluster."""
        data = await self._post("/unregister", {"id": self.worker_id})
        self.registered = False
        logger.info(f"{self.worker_id} unregistered, coordinator={data.get('coordinatorId')}")
        return self.coordinator_id

    async def start(self):
        """Register and start the refresh loop."""
        if self._running:
            logger.warning("Worker already running")
            return

        self._running = True
        self._stopped.clear()
        coordinator_id = await self.register()
        logger.info(f"{self.worker_id} joined cluster, coordinator={coordinator_id}")

        if self.refresh_interval:
            self._task = asyncio.create_task(self._refresh_loop())

    async def stop(self):
        """Stop refreshing, unregister and close the HTTP session."""
        try:
            if self._running:
                self._running = False

                if self._task:
                    self._task.cancel()
                    try:
                        await self._task
                    except asyncio.CancelledError:
                        pass
                    self._task = None

                if self.registered:
                    try:
                        await self.unregister()
                    except (aiohttp.ClientError, RegistrationError, asyncio.TimeoutError) as e:
                        logger.warning(f"{self.worker_id} could not unregister: {e!r}")
        finally:
            if self._session:
                await self._session.close()
                self._session = None

            self._stopped.set()
            logger.info(f"{self.worker_id} stopped")

    async def run(self):
        """Start and stay in the cluster until ``stop`` is called."""
        try:
            await self.start()
        except Exception:
            await self.stop()
            raise
        await self._stopped.wait()

    def get_stats(self) -> Dict[str, Any]:
        """Get registration state."""
        return {
            "worker_id": self.worker_id,
            "running": self._running,
            "registered": self.registered,
            "status": self.status.value,
            "coordinator_id": self.coordinator_id,
            "last_success": self._last_success,
        }

    async def _refresh_loop(self):
        """Re-post the current status every ``refresh_interval`` seconds."""
        while self._running:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.register()
            except (aiohttp.ClientError, RegistrationError, asyncio.TimeoutError) as e:
                logger.warning(f"{self.worker_id} status refresh failed: {e}")


def main():
    """Entry point for worker node."""
    parser = argparse.ArgumentParser(description="sortcluster worker node")
    parser.add_argument("--coordinator-url", type=str, default=None, help="Coordinator URL")
    parser.add_argument("--id", type=str, default=None, help="Worker id")
    parser.add_argument("--name", type=str, default=None, help="Worker display name")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    worker_config = load_config(args.config).get("worker", {})
    coordinator_url = (
        args.coordinator_url
        or worker_config.get("coordinator_url", "http://127.0.0.1:3000")
    )

    # Create worker
    worker = WorkerNode(
        coordinator_url=coordinator_url,
        worker_id=args.id,
        name=args.name,
        refresh_interval=worker_config.get("refresh_interval", 30.0),
    )

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(worker.stop()))

    try:
        loop.run_until_complete(worker.run())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()


if __name__ == "__main__":
    main()
