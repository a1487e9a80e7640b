#!/usr/bin/env python3
"""Start one or more simulated sortcluster worker nodes."""

import argparse
import asyncio
import logging
import signal

from sortcluster.worker.node import WorkerNode

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def run_workers(
    coordinator_url: str,
    count: int,
    prefix: str,
    refresh_interval: float,
):
    """Run ``count`` workers until a shutdown signal arrives."""
    workers = [
        WorkerNode(
            coordinator_url=coordinator_url,
            worker_id=f"{prefix}{i}",
            name=f"{prefix}{i}",
            refresh_interval=refresh_interval,
        )
        for i in range(1, count + 1)
    ]

    # Setup shutdown handler
    shutdown_event = asyncio.Event()

    def handle_shutdown():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_event_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_shutdown)

    try:
        # Join one at a time so the first worker becomes coordinator
        for worker in workers:
            await worker.start()

        await shutdown_event.wait()

    finally:
        for worker in reversed(workers):
            await worker.stop()


def main():
    parser = argparse.ArgumentParser(
        description="Start sortcluster workers"
    )
    parser.add_argument(
        "--coordinator-url",
        type=str,
        default="http://localhost:3000",
        help="URL of coordinator (e.g., http://localhost:3000)",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=1,
        help="Number of workers to start",
    )
    parser.add_argument(
        "--prefix",
        type=str,
        default="w",
        help="Worker id prefix (ids are <prefix>1..<prefix>N)",
    )
    parser.add_argument(
        "--refresh-interval",
        type=float,
        default=30.0,
        help="Seconds between status re-posts",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    # Update log level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    logger.info(f"Starting {args.count} sortcluster worker(s)")
    logger.info(f"Coordinator: {args.coordinator_url}")

    asyncio.run(run_workers(
        coordinator_url=args.coordinator_url,
        count=args.count,
        prefix=args.prefix,
        refresh_interval=args.refresh_interval,
    ))


if __name__ == "__main__":
    main()
