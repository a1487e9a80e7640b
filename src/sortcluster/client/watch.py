#!/usr/bin/env python3
"""Console observer for a sortcluster coordinator."""

import argparse
import asyncio
import json
import sys
from typing import Optional, Dict, Any
import aiohttp
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sortcluster.protocol.messages import EventType, ObserverMessageType

_STYLES = {
    EventType.WORKER_ADDED: "green",
    EventType.WORKER_UPDATED: "cyan",
    EventType.WORKER_REMOVED: "yellow",
    EventType.COORDINATOR_SWITCHED: "magenta",
    EventType.ASSIGN_CHUNK: "blue",
    EventType.SORT_PROGRESS: "dim",
    EventType.SORT_COMPLETE: "bold green",
    EventType.SORT_ERROR: "bold red",
    EventType.ERROR: "red",
}


def format_event(frame: Dict[str, Any]) -> str:
    """Render one push frame as a single line of text."""
    event = frame.get("event", "?")
    data = frame.get("data") or {}

    if event == EventType.LOG_UPDATE.value:
        return data.get("line", data.get("message", ""))
    if event == EventType.INITIAL_SNAPSHOT.value:
        return (
            f"snapshot: {len(data.get('workers', []))} worker(s), "
            f"coordinator={data.get('coordinatorId') or '(none)'}"
        )
    if event == EventType.WORKER_ADDED.value:
        return f"worker added: {data.get('id')} ({data.get('name')}) status={data.get('status')}"
    if event == EventType.WORKER_UPDATED.value:
        return f"worker updated: {data.get('id')} -> {data.get('status')}"
    if event == EventType.WORKER_REMOVED.value:
        return (
            f"worker removed: {data.get('id')}, "
            f"coordinator={data.get('coordinatorId') or '(none)'}"
        )
    if event == EventType.COORDINATOR_SWITCHED.value:
        return (
            f"coordinator switched: {data.get('oldCoordinatorId') or '(none)'} "
            f"-> {data.get('newCoordinatorId')}"
        )
    if event == EventType.ASSIGN_CHUNK.value:
        return (
            f"chunk for {data.get('workerId')}: offset={data.get('offset')} "
            f"values={data.get('chunk')}"
        )
    if event == EventType.SORT_PROGRESS.value:
        return data.get("message", "")
    if event == EventType.SORT_COMPLETE.value:
        return f"sort complete: {data.get('sortedArray')}"
    if event in (EventType.SORT_ERROR.value, EventType.ERROR.value):
        return f"error: {data.get('message') or data.get('error')}"
    return f"{event}: {json.dumps(data)}"


class ClusterWatcher:
    """
    Observer client for a sortcluster coordinator.

    Connects to the coordinator's WebSocket and prints every event.
    """

    def __init__(self, coordinator_url: str, show_progress: bool = True):
        """
        Initialize ClusterWatcher.

        Args:
            coordinator_url: URL of coordinator server
            show_progress: Print sort_progress events (they duplicate log lines)
        """
        self.coordinator_url = coordinator_url.rstrip("/")
        self.show_progress = show_progress
        self.console = Console()
        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def ws_url(self) -> str:
        if self.coordinator_url.startswith("https://"):
            return "wss://" + self.coordinator_url[len("https://"):] + "/ws"
        if self.coordinator_url.startswith("http://"):
            return "ws://" + self.coordinator_url[len("http://"):] + "/ws"
        return self.coordinator_url + "/ws"

    async def connect(self) -> bool:
        """Open the observer WebSocket."""
        self.session = aiohttp.ClientSession()
        try:
            self.ws = await self.session.ws_connect(self.ws_url)
            self.console.print(f"[green]Connected to {self.ws_url}[/green]")
            return True
        except aiohttp.ClientError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return False

    async def disconnect(self):
        """Close the WebSocket and HTTP session."""
        if self.ws and not self.ws.closed:
            await self.ws.close()
        if self.session:
            await self.session.close()

    async def send(self, msg_type: ObserverMessageType, data: Dict[str, Any]):
        """Send an observer request to the coordinator."""
        await self.ws.send_json({"event": msg_type.value, "data": data})

    async def switch_coordinator(self, new_id: str):
        await self.send(ObserverMessageType.REQUEST_COORDINATOR_SWITCH, {"newCoordinatorId": new_id})

    def render_snapshot(self, data: Dict[str, Any]):
        """Print the initial snapshot as a table."""
        table = Table(title="Workers")
        table.add_column("id")
        table.add_column("name")
        table.add_column("status")
        table.add_column("joined")
        coordinator_id = data.get("coordinatorId")
        for worker in data.get("workers", []):
            marker = " *" if worker.get("id") == coordinator_id else ""
            table.add_row(
                f"{worker.get('id')}{marker}",
                str(worker.get("name")),
                str(worker.get("status")),
                str(worker.get("createdAt")),
            )
        self.console.print(table)

    async def watch(self):
        """Print events until the connection closes."""
        async for msg in self.ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                break

            frame = json.loads(msg.data)
            event = frame.get("event")

            if event == EventType.INITIAL_SNAPSHOT.value:
                self.render_snapshot(frame.get("data") or {})
                continue
            if event == EventType.SORT_PROGRESS.value and not self.show_progress:
                continue

            try:
                style = _STYLES.get(EventType(event), "")
            except ValueError:
                style = ""
            line = format_event(frame)
            if style:
                self.console.print(f"[{style}]{line}[/{style}]", highlight=False)
            else:
                self.console.print(line, highlight=False)


async def main_async(args):
    """Async main function."""
    watcher = ClusterWatcher(
        coordinator_url=args.coordinator_url,
        show_progress=not args.quiet,
    )

    try:
        if not await watcher.connect():
            return 1

        watcher.console.print(Panel(
            "Streaming cluster events. Press Ctrl+C to stop.",
            title="sortcluster",
        ))

        if args.switch_coordinator:
            await watcher.switch_coordinator(args.switch_coordinator)

        await watcher.watch()
        return 0

    finally:
        await watcher.disconnect()


def main():
    """Entry point for the observer console."""
    parser = argparse.ArgumentParser(
        description="Watch a sortcluster coordinator"
    )
    parser.add_argument(
        "--coordinator-url",
        type=str,
        default="http://localhost:3000",
        help="Coordinator URL",
    )
    parser.add_argument(
        "--switch-coordinator",
        type=str,
        default=None,
        help="Ask the coordinator to make this worker the coordinator",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Hide per-step sort progress",
    )

    args = parser.parse_args()

    try:
        exit_code = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
