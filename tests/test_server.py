"""Tests for the coordinator HTTP API and observer WebSocket."""

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from sortcluster import algorithms
from sortcluster.algorithms import Algorithm
from sortcluster.algorithms.partition import split_into_chunks
from sortcluster.coordinator.server import CoordinatorServer, load_config
from sortcluster.errors import RunInProgress


async def receive_until(ws, event, limit=200):
    """Read frames until one of type ``event`` arrives."""
    for _ in range(limit):
        frame = await ws.receive_json(timeout=5)
        if frame["event"] == event:
            return frame
    raise AssertionError(f"no {event} frame received")


def failing_factory(chunks, on_progress=None):
    raise RuntimeError("module missing")


@pytest_asyncio.fixture
async def server():
    return CoordinatorServer(port=0, config={"sort": {"seed": 7}})


@pytest_asyncio.fixture
async def client(server):
    client = TestClient(TestServer(server.app))
    await client.start_server()
    yield client
    await client.close()


async def register(client, worker_id, status="connected"):
    return await client.post("/register", json={
        "id": worker_id,
        "name": f"Worker {worker_id}",
        "status": status,
    })


class TestRegistration:
    """Tests for POST /register and POST /unregister."""

    @pytest.mark.asyncio
    async def test_register(self, client):
        response = await register(client, "w1")
        assert response.status == 200
        assert await response.json() == {"success": True, "coordinatorId": "w1"}

        response = await register(client, "w2")
        assert (await response.json())["coordinatorId"] == "w1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"name": "Worker 1", "status": "connected"},
        {"id": "w1", "status": "connected"},
        {"id": "w1", "name": "Worker 1"},
        {"id": "w1", "name": "Worker 1", "status": "sleeping"},
        {"id": "", "name": "Worker 1", "status": "connected"},
    ])
    async def test_register_missing_fields(self, client, server, body):
        response = await client.post("/register", json=body)

        assert response.status == 400
        assert "error" in await response.json()
        assert server.registry.worker_count == 0

    @pytest.mark.asyncio
    async def test_register_invalid_json(self, client):
        response = await client.post("/register", data="not json")

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_unregister(self, client):
        await register(client, "w1")
        await register(client, "w2")

        response = await client.post("/unregister", json={"id": "w1"})

        assert response.status == 200
        assert await response.json() == {"success": True, "coordinatorId": None}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"id": "ghost"}, {}])
    async def test_unregister_invalid_id(self, client, body):
        response = await client.post("/unregister", json=body)

        assert response.status == 400
        assert await response.json() == {"error": "invalid id"}

    @pytest.mark.asyncio
    async def test_list_workers(self, client):
        await register(client, "w1")
        await register(client, "w2", status="suspended")

        response = await client.get("/workers")
        data = await response.json()

        assert data["coordinatorId"] == "w1"
        assert [(w["id"], w["status"]) for w in data["workers"]] == [
            ("w1", "connected"),
            ("w2", "suspended"),
        ]


class TestSorting:
    """Tests for the sort endpoints."""

    @pytest.mark.asyncio
    async def test_algorithms(self, client):
        response = await client.get("/algorithms")

        assert await response.json() == [{
            "name": "Odd-Even Sort",
            "key": "oddevensort",
            "description": "Parallel odd-even sorting",
        }]

    @pytest.mark.asyncio
    async def test_start_sort(self, client, server):
        for worker_id in ("w1", "w2", "w3"):
            await register(client, worker_id)

        response = await client.post("/start-sort", json={
            "algorithm": "oddevensort",
            "arrayLength": 9,
        })
        data = await response.json()

        assert response.status == 200
        assert data["success"] is True
        assert data["message"] == "Sorting started with 3 workers."

        run = await server.orchestrator.wait_for_idle(timeout=5)
        assert run.run_id == data["runId"]
        assert run.result == sorted(run.input_values)

    @pytest.mark.asyncio
    async def test_start_sort_without_workers(self, client):
        response = await client.post("/start-sort", json={
            "algorithm": "oddevensort",
            "arrayLength": 9,
        })

        assert response.status == 400
        assert await response.json() == {"error": "No active workers available for sorting"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"algorithm": "oddevensort"},
        {"arrayLength": 5},
        {"algorithm": "oddevensort", "arrayLength": 0},
        {"algorithm": "oddevensort", "arrayLength": "9"},
        {"algorithm": "bubblesort", "arrayLength": 5},
        [1, 2, 3],
    ])
    async def test_start_sort_rejected(self, client, body):
        await register(client, "w1")

        response = await client.post("/start-sort", json=body)

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_start_sort_in_progress(self, client, server, monkeypatch):
        async def busy(algorithm_key, array_length):
            raise RunInProgress("Sort run abc is still in progress")

        monkeypatch.setattr(server.orchestrator, "start_sort", busy)

        response = await client.post("/start-sort", json={
            "algorithm": "oddevensort",
            "arrayLength": 5,
        })

        assert response.status == 409
        assert await response.json() == {"error": "Sort run abc is still in progress"}

    @pytest.mark.asyncio
    async def test_manual_sort(self, client):
        response = await client.post("/sort", json={
            "algorithm": "oddevensort",
            "array": [5, 3.5, -1, 4, 0],
            "workers": 2,
        })

        assert response.status == 200
        assert await response.json() == {"sorted": [-1, 0, 3.5, 4, 5]}

    @pytest.mark.asyncio
    async def test_manual_sort_default_workers(self, client, server):
        """Test that four chunks are used when workers is omitted."""
        response = await client.post("/sort", json={
            "algorithm": "oddevensort",
            "array": [3, 1, 2],
        })

        assert response.status == 400
        assert server.orchestrator.config.default_workers == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"algorithm": "oddevensort", "array": [1, "2", 3]},
        {"algorithm": "oddevensort", "array": [1, True, 3]},
        {"algorithm": "oddevensort"},
        {"algorithm": "bubblesort", "array": [3, 2, 1]},
        {"algorithm": "oddevensort", "array": [3, 2, 1], "workers": 0},
    ])
    async def test_manual_sort_rejected(self, client, body):
        response = await client.post("/sort", json=body)

        assert response.status == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        '{"algorithm": "oddevensort", "array": [5, NaN, 3, 1, 4, 2], "workers": 2}',
        '{"algorithm": "oddevensort", "array": [5, Infinity, 3], "workers": 2}',
        '{"algorithm": "oddevensort", "array": [5, -Infinity, 3], "workers": 2}',
    ])
    async def test_manual_sort_rejects_non_finite(self, client, raw):
        """Test that values without an ordering never reach the engine."""
        response = await client.post(
            "/sort",
            data=raw,
            headers={"Content-Type": "application/json"},
        )

        assert response.status == 400
        assert "array" in (await response.json())["error"]

    @pytest.mark.asyncio
    async def test_manual_sort_too_long(self, client, server):
        server.orchestrator.config.max_length = 5

        response = await client.post("/sort", json={
            "algorithm": "oddevensort",
            "array": [6, 5, 4, 3, 2, 1],
        })

        assert response.status == 400
        assert await response.json() == {"error": "array length must be at most 5, got 6"}

    @pytest.mark.asyncio
    async def test_start_sort_too_long(self, client, server):
        await register(client, "w1")
        server.orchestrator.config.max_length = 100

        response = await client.post("/start-sort", json={
            "algorithm": "oddevensort",
            "arrayLength": 101,
        })

        assert response.status == 400
        assert await response.json() == {"error": "arrayLength must be at most 100, got 101"}
        assert server.orchestrator.current_run is None

    @pytest.mark.asyncio
    async def test_manual_sort_server_error(self, client, monkeypatch):
        monkeypatch.setitem(algorithms.ALGORITHMS, "missing", Algorithm(
            key="missing",
            name="Missing",
            description="Cannot be loaded",
            partition=split_into_chunks,
            engine_factory=failing_factory,
        ))

        response = await client.post("/sort", json={"algorithm": "missing", "array": [2, 1]})

        assert response.status == 500
        assert await response.json() == {"error": "Internal Server Error"}

    @pytest.mark.asyncio
    async def test_root(self, client):
        await register(client, "w1")

        response = await client.get("/")
        data = await response.json()

        assert data["service"] == "sortcluster coordinator"
        assert data["workers"] == 1
        assert data["coordinatorId"] == "w1"
        assert data["run"] is None


class TestObserverSocket:
    """Tests for the /ws observer channel."""

    @pytest.mark.asyncio
    async def test_late_joiner_replay(self, client):
        """Test snapshot first, then the full log in order."""
        await register(client, "w1")
        await register(client, "w2", status="suspended")

        ws = await client.ws_connect("/ws")
        snapshot = await ws.receive_json(timeout=5)
        first_log = await ws.receive_json(timeout=5)
        second_log = await ws.receive_json(timeout=5)

        assert snapshot["event"] == "initial_snapshot"
        assert snapshot["data"]["coordinatorId"] == "w1"
        assert [w["id"] for w in snapshot["data"]["workers"]] == ["w1", "w2"]
        assert first_log["event"] == "log_update"
        assert first_log["data"]["message"] == "First worker w1 joined and became Coordinator"
        assert second_log["data"]["message"].startswith("Worker registered: w2")
        assert snapshot["seq"] < first_log["seq"] < second_log["seq"]

        connected = await ws.receive_json(timeout=5)
        assert connected["data"]["message"].startswith("Frontend client connected")
        await ws.close()

    @pytest.mark.asyncio
    async def test_live_events(self, client):
        ws = await client.ws_connect("/ws")
        await receive_until(ws, "initial_snapshot")

        await register(client, "w1")
        added = await receive_until(ws, "worker_added")

        assert added["data"]["id"] == "w1"
        assert added["data"]["coordinatorId"] == "w1"
        await ws.close()

    @pytest.mark.asyncio
    async def test_sort_events(self, client):
        """Test the full event stream of a sort run."""
        ws = await client.ws_connect("/ws")
        for worker_id in ("w1", "w2", "w3"):
            await register(client, worker_id)

        await client.post("/start-sort", json={"algorithm": "oddevensort", "arrayLength": 9})

        chunks = [await receive_until(ws, "assign_chunk") for _ in range(3)]
        working = await receive_until(ws, "worker_updated")
        complete = await receive_until(ws, "sort_complete")

        original = [v for frame in chunks for v in frame["data"]["chunk"]]
        assert working["data"] == {"id": "w1", "status": "working"}
        assert complete["data"]["sortedArray"] == sorted(original)
        await ws.close()

    @pytest.mark.asyncio
    async def test_request_coordinator_switch(self, client, server):
        await register(client, "w1")
        await register(client, "w2")
        ws = await client.ws_connect("/ws")
        await receive_until(ws, "initial_snapshot")

        await ws.send_json({
            "event": "request_coordinator_switch",
            "data": {"newCoordinatorId": "w2"},
        })
        switched = await receive_until(ws, "coordinator_switched")

        assert switched["data"] == {"newCoordinatorId": "w2", "oldCoordinatorId": "w1"}
        assert server.registry.coordinator_id == "w2"
        await ws.close()

    @pytest.mark.asyncio
    async def test_manual_update_and_unregister(self, client, server):
        await register(client, "w1")
        ws = await client.ws_connect("/ws")
        await receive_until(ws, "initial_snapshot")

        await ws.send_json({"event": "manual_update", "data": {"id": "w1", "status": "suspended"}})
        updated = await receive_until(ws, "worker_updated")
        assert updated["data"] == {"id": "w1", "status": "suspended"}

        await ws.send_json({"event": "manual_unregister", "data": {"id": "w1"}})
        removed = await receive_until(ws, "worker_removed")
        assert removed["data"] == {"id": "w1", "coordinatorId": None}
        assert server.registry.worker_count == 0
        await ws.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("frame", [
        {"event": "manual_update", "data": {"id": "w1", "status": "sleeping"}},
        {"event": "manual_unregister", "data": {"id": "ghost"}},
        {"event": "shutdown", "data": {}},
        {"data": {}},
    ])
    async def test_invalid_observer_message(self, client, server, frame):
        """Test that a bad request only produces a private error frame."""
        await register(client, "w1")
        ws = await client.ws_connect("/ws")
        await receive_until(ws, "initial_snapshot")

        await ws.send_json(frame)
        error = await receive_until(ws, "error")

        assert "error" in error["data"]
        assert server.registry.get_worker("w1") is not None
        assert server.registry.get_worker("w1").status.value == "connected"
        await ws.close()

    @pytest.mark.asyncio
    async def test_connect_is_logged(self, client, server):
        ws = await client.ws_connect("/ws")
        await receive_until(ws, "initial_snapshot")

        assert server.broadcaster.observer_count == 1
        messages = [entry.message for entry in server.broadcaster.history]
        assert any(m.startswith("Frontend client connected") for m in messages)
        await ws.close()


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yaml")) == {}
        assert load_config(None) == {}

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("coordinator:\n  port: 4000\nsort:\n  default_workers: 2\n")

        config = load_config(str(path))
        server = CoordinatorServer(config_path=str(path))

        assert config["coordinator"]["port"] == 4000
        assert server.port == 4000
        assert server.orchestrator.config.default_workers == 2
