"""Tests for the worker node client."""

import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from sortcluster.coordinator.server import CoordinatorServer
from sortcluster.protocol.messages import WorkerStatus
from sortcluster.worker.node import RegistrationError, WorkerNode


@pytest_asyncio.fixture
async def server():
    return CoordinatorServer(port=0, config={})


@pytest_asyncio.fixture
async def coordinator_url(server):
    client = TestClient(TestServer(server.app))
    await client.start_server()
    yield str(client.make_url("/"))
    await client.close()


class TestWorkerNode:
    """Tests for WorkerNode."""

    @pytest.mark.asyncio
    async def test_register(self, server, coordinator_url):
        worker = WorkerNode(coordinator_url, worker_id="w1", name="Worker 1", refresh_interval=None)
        try:
            assert await worker.register() == "w1"
            assert worker.is_coordinator
            assert worker.registered
            assert server.registry.get_worker("w1").name == "Worker 1"
        finally:
            await worker.stop()

    @pytest.mark.asyncio
    async def test_second_worker_sees_first_as_coordinator(self, coordinator_url):
        first = WorkerNode(coordinator_url, worker_id="w1", refresh_interval=None)
        second = WorkerNode(coordinator_url, worker_id="w2", refresh_interval=None)
        try:
            await first.start()
            await second.start()

            assert second.coordinator_id == "w1"
            assert not second.is_coordinator
        finally:
            await second.stop()
            await first.stop()

    @pytest.mark.asyncio
    async def test_set_status(self, server, coordinator_url):
        worker = WorkerNode(coordinator_url, worker_id="w1", refresh_interval=None)
        try:
            await worker.start()
            await worker.set_status(WorkerStatus.SUSPENDED)

            assert server.registry.get_worker("w1").status == WorkerStatus.SUSPENDED
            assert server.registry.list_active() == []
        finally:
            await worker.stop()

    @pytest.mark.asyncio
    async def test_stop_unregisters(self, server, coordinator_url):
        worker = WorkerNode(coordinator_url, worker_id="w1", refresh_interval=None)
        await worker.start()

        await worker.stop()

        assert not worker.registered
        assert server.registry.get_worker("w1") is None
        assert worker.get_stats()["running"] is False

    @pytest.mark.asyncio
    async def test_unregister_unknown_is_rejected(self, coordinator_url):
        worker = WorkerNode(coordinator_url, worker_id="ghost", refresh_interval=None)
        try:
            with pytest.raises(RegistrationError):
                await worker.unregister()
        finally:
            await worker.stop()

    @pytest.mark.asyncio
    async def test_refresh_reposts_status(self, server, coordinator_url):
        """Test that the refresh loop restores the worker's own status."""
        worker = WorkerNode(coordinator_url, worker_id="w1", refresh_interval=0.05)
        try:
            await worker.start()
            await server.registry.set_status("w1", WorkerStatus.SUSPENDED)

            await asyncio.sleep(0.3)

            assert server.registry.get_worker("w1").status == WorkerStatus.CONNECTED
            assert worker.get_stats()["last_success"] is not None
        finally:
            await worker.stop()

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, server, coordinator_url):
        worker = WorkerNode(coordinator_url, worker_id="w1", refresh_interval=None)

        task = asyncio.create_task(worker.run())
        for _ in range(100):
            if server.registry.get_worker("w1") is not None:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        await asyncio.wait_for(task, timeout=5)

        assert server.registry.get_worker("w1") is None

    @pytest.mark.asyncio
    async def test_run_fails_without_coordinator(self, unused_tcp_port):
        worker = WorkerNode(f"http://127.0.0.1:{unused_tcp_port}", worker_id="w1")

        with pytest.raises(aiohttp.ClientError):
            await worker.run()

        assert worker.get_stats()["registered"] is False


class TestWorkerShutdown:
    """Tests for stopping a worker whose coordinator stops answering."""

    @pytest.mark.asyncio
    async def test_stop_survives_unregister_timeout(self):
        release = asyncio.Event()

        async def handle_register(request):
            body = await request.json()
            return web.json_response({"success": True, "coordinatorId": body["id"]})

        async def handle_unregister(request):
            await release.wait()
            return web.json_response({"success": True, "coordinatorId": None})

        app = web.Application()
        app.router.add_post("/register", handle_register)
        app.router.add_post("/unregister", handle_unregister)
        client = TestClient(TestServer(app))
        await client.start_server()

        worker = WorkerNode(
            str(client.make_url("/")),
            worker_id="w1",
            refresh_interval=None,
            timeout_seconds=0.2,
        )
        try:
            await worker.start()
            await asyncio.wait_for(worker.stop(), timeout=5)

            assert worker._stopped.is_set()
            assert worker._session is None
            assert worker.get_stats()["running"] is False
        finally:
            release.set()
            await client.close()
