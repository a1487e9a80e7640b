"""Coordinator server: HTTP API and observer WebSocket.

Workers register over plain HTTP; dashboards and other observers attach to
``/ws`` and receive every state change as a JSON frame.
"""

import asyncio
import json
import logging
import signal
import argparse
import time
import uuid
from typing import Dict, Any, Optional
from pathlib import Path
import yaml
from aiohttp import web

from sortcluster.algorithms import list_algorithms
from sortcluster.coordinator.broadcaster import EventBroadcaster, BroadcasterConfig, Subscription
from sortcluster.coordinator.orchestrator import SortOrchestrator, OrchestratorConfig
from sortcluster.coordinator.registry import WorkerRegistry
from sortcluster.errors import SortClusterError, ValidationError
from sortcluster.protocol.messages import EventType, ObserverMessageType
from sortcluster.protocol.models import (
    CoordinatorSwitchMessage,
    ManualSortRequest,
    ManualUnregisterMessage,
    ManualUpdateMessage,
    RegisterRequest,
    RegisterResponse,
    StartSortRequest,
    StartSortResponse,
    UnregisterRequest,
    dump_model,
    parse_model,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load configuration from file; a missing file means all defaults."""
    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


class CoordinatorServer:
    """
    Coordinator server for the sort cluster.

    Responsibilities:
    - Accept worker registrations and departures
    - Start sort runs against the registered workers
    - Stream membership and sort events to observers
    - Apply observer requests (coordinator switch, manual updates)
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: Optional[int] = None,
        config_path: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize CoordinatorServer.

        Args:
            host: Host to bind to
            port: Port to listen on (config file or 3000 if None)
            config_path: Path to config file
            config: Already loaded configuration, overrides ``config_path``
        """
        self.config = config if config is not None else load_config(config_path)

        coordinator_config = self.config.get("coordinator", {})
        self.host = host
        self.port = port if port is not None else coordinator_config.get("port", DEFAULT_PORT)

        # Setup components
        broadcaster_config = BroadcasterConfig(
            history_limit=self.config.get("broadcaster", {}).get("history_limit"),
        )
        self.broadcaster = EventBroadcaster(broadcaster_config)
        self.registry = WorkerRegistry(self.broadcaster)
        self.orchestrator = SortOrchestrator(
            self.registry,
            self.broadcaster,
            OrchestratorConfig.from_dict(self.config.get("sort", {})),
        )

        # Observer connections (observer id -> ws)
        self._observers: Dict[str, web.WebSocketResponse] = {}

        # HTTP app
        self.app = web.Application()
        self.app.on_shutdown.append(self._close_observers)
        self._setup_routes()

        # State
        self._running = False
        self._start_time = time.time()
        self._runner: Optional[web.AppRunner] = None

        logger.info(f"Coordinator initialized: {self.host}:{self.port}")

    def _setup_routes(self):
        """Setup HTTP routes."""
        self.app.router.add_get("/", self._handle_root)
        self.app.router.add_get("/algorithms", self._handle_algorithms)

        # Worker management
        self.app.router.add_post("/register", self._handle_register)
        self.app.router.add_post("/unregister", self._handle_unregister)
        self.app.router.add_get("/workers", self._handle_list_workers)

        # Sorting
        self.app.router.add_post("/start-sort", self._handle_start_sort)
        self.app.router.add_post("/sort", self._handle_sort)

        # Observers
        self.app.router.add_get("/ws", self._handle_ws)

    async def start(self):
        """Start the coordinator server."""
        logger.info(f"Starting coordinator server on {self.host}:{self.port}")

        self._running = True
        self._start_time = time.time()

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info(f"Coordinator server started on http://{self.host}:{self.port}")
        logger.info(f"Algorithms loaded: {len(list_algorithms())}")

    async def stop(self):
        """Stop the coordinator server."""
        logger.info("Stopping coordinator server")

        self._running = False

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        logger.info("Coordinator server stopped")

    async def _close_observers(self, app: web.Application):
        for ws in list(self._observers.values()):
            await ws.close(code=1001, message=b"Server shutdown")

    @staticmethod
    async def _read_json(request: web.Request) -> Any:
        try:
            return await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError("request body must be valid JSON") from e

    @staticmethod
    def _error_response(error: SortClusterError) -> web.Response:
        return web.json_response({"error": str(error)}, status=error.status)

    # === HTTP Handlers ===

    async def _handle_root(self, request: web.Request) -> web.Response:
        """Handle root endpoint (GET /)."""
        run = self.orchestrator.current_run
        return web.json_response({
            "service": "sortcluster coordinator",
            "status": "running" if self._running else "stopped",
            "uptime_seconds": time.time() - self._start_time,
            "workers": self.registry.worker_count,
            "active_workers": len(self.registry.list_active()),
            "coordinatorId": self.registry.coordinator_id,
            "observers": self.broadcaster.observer_count,
            "run": run.to_dict() if run else None,
        })

    async def _handle_algorithms(self, request: web.Request) -> web.Response:
        """Handle algorithm list request (GET /algorithms)."""
        return web.json_response(list_algorithms())

    async def _handle_register(self, request: web.Request) -> web.Response:
        """Handle worker registration (POST /register)."""
        try:
            body = parse_model(RegisterRequest, await self._read_json(request))
            coordinator_id = await self.registry.register(body.worker_id, body.name, body.status)
            return web.json_response(dump_model(RegisterResponse(coordinator_id=coordinator_id)))
        except SortClusterError as e:
            logger.warning(f"Registration rejected: {e}")
            return self._error_response(e)
        except Exception as e:
            logger.error(f"Registration error: {e}")
            return web.json_response({"error": str(e)}, status=500)

    async def _handle_unregister(self, request: web.Request) -> web.Response:
        """Handle worker departure (POST /unregister)."""
        try:
            body = parse_model(UnregisterRequest, await self._read_json(request))
            coordinator_id = await self.registry.unregister(body.worker_id)
            return web.json_response(dump_model(RegisterResponse(coordinator_id=coordinator_id)))
        except ValidationError:
            return web.json_response({"error": "invalid id"}, status=400)
        except SortClusterError as e:
            return self._error_response(e)
        except Exception as e:
            logger.error(f"Unregister error: {e}")
            return web.json_response({"error": str(e)}, status=500)

    async def _handle_list_workers(self, request: web.Request) -> web.Response:
        """Handle worker list request (GET /workers)."""
        return web.json_response(self.registry.snapshot())

    async def _handle_start_sort(self, request: web.Request) -> web.Response:
        """Handle sort start (POST /start-sort); completion arrives as events."""
        try:
            body = parse_model(StartSortRequest, await self._read_json(request))
            run = await self.orchestrator.start_sort(body.algorithm, body.array_length)
            return web.json_response(dump_model(StartSortResponse(
                message=f"Sorting started with {len(run.worker_ids)} workers.",
                run_id=run.run_id,
            )))
        except SortClusterError as e:
            if e.status >= 500:
                logger.error(f"Start sort failed: {e}")
            else:
                logger.warning(f"Start sort rejected: {e}")
            return self._error_response(e)
        except Exception as e:
            logger.error(f"Start sort error: {e}")
            return web.json_response({"error": str(e)}, status=500)

    async def _handle_sort(self, request: web.Request) -> web.Response:
        """Handle a synchronous sort of an explicit array (POST /sort)."""
        try:
            body = parse_model(ManualSortRequest, await self._read_json(request))
            result = await self.orchestrator.sort_array(body.algorithm, body.array, body.workers)
            return web.json_response({"sorted": result})
        except SortClusterError as e:
            if e.status >= 500:
                logger.error(f"Error while sorting: {e}")
                return web.json_response({"error": "Internal Server Error"}, status=500)
            return self._error_response(e)
        except Exception as e:
            logger.error(f"Error while sorting: {e}")
            return web.json_response({"error": "Internal Server Error"}, status=500)

    # === Observer WebSocket ===

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        """Handle an observer connection (GET /ws).

        The observer receives the initial snapshot, the full event log and
        then live events. Frames it sends are validated exactly like the
        equivalent HTTP requests.
        """
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        observer_id = uuid.uuid4().hex[:8]
        # Snapshot and subscription are taken in the same step.
        subscription = self.broadcaster.subscribe(observer_id, self.registry.snapshot())
        self._observers[observer_id] = ws
        self.broadcaster.log(f"Frontend client connected ({observer_id})")

        sender = asyncio.create_task(self._pump_events(ws, subscription))
        try:
            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    await self._handle_observer_frame(ws, msg.data)
                elif msg.type in (web.WSMsgType.CLOSE, web.WSMsgType.ERROR):
                    break
        finally:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            self.broadcaster.unsubscribe(observer_id)
            self._observers.pop(observer_id, None)
            self.broadcaster.log(f"Frontend client disconnected ({observer_id})")

        return ws

    async def _pump_events(self, ws: web.WebSocketResponse, subscription: Subscription):
        """Forward queued events to one observer in order."""
        try:
            while not ws.closed:
                event = await subscription.get()
                await ws.send_json(event.to_dict())
        except ConnectionResetError:
            logger.debug(f"Observer {subscription.observer_id} went away")

    async def _handle_observer_frame(self, ws: web.WebSocketResponse, raw: str):
        """Apply one observer request; invalid ones get a private error frame."""
        try:
            try:
                frame = json.loads(raw)
                msg_type = ObserverMessageType(frame["event"])
                data = frame.get("data") or {}
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise ValidationError("unrecognised observer message") from e

            if msg_type == ObserverMessageType.REQUEST_COORDINATOR_SWITCH:
                message = parse_model(CoordinatorSwitchMessage, data)
                await self.registry.switch_coordinator(message.new_coordinator_id)

            elif msg_type == ObserverMessageType.MANUAL_UPDATE:
                message = parse_model(ManualUpdateMessage, data)
                if await self.registry.set_status(message.worker_id, message.status):
                    self.broadcaster.log(
                        f"Worker updated (via WS): {message.worker_id} -> "
                        f"status={message.status.value}"
                    )

            elif msg_type == ObserverMessageType.MANUAL_UNREGISTER:
                message = parse_model(ManualUnregisterMessage, data)
                await self.registry.unregister(message.worker_id)

        except SortClusterError as e:
            logger.debug(f"Observer request rejected: {e}")
            if not ws.closed:
                await ws.send_json({"event": EventType.ERROR.value, "data": {"error": str(e)}})


def main():
    """Entry point for coordinator server."""
    parser = argparse.ArgumentParser(description="sortcluster coordinator")
    parser.add_argument("--host", type=str, default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on")
    parser.add_argument("--config", type=str, default="config/default.yaml", help="Path to config file")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = load_config(args.config)
    host = args.host or config.get("coordinator", {}).get("host", "0.0.0.0")

    # Create server
    server = CoordinatorServer(host=host, port=args.port, config=config)

    # Setup event loop
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    async def shutdown():
        await server.stop()
        loop.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(shutdown()))

    try:
        loop.run_until_complete(server.start())
        loop.run_forever()
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
