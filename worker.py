"""
Temporal Worker — validates the task registry, registers the workflow and
activities, then polls for tasks.

Usage:
    python worker.py
"""

from __future__ import annotations

import asyncio
import logging

from temporalio.worker import Worker

import config
from activities.registry import build_registry, install_registry
from activities.tasks import ALL_ACTIVITIES
from client import connect
from workflows.pipeline import PentestPipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


async def main():
    # Fails fast on a task without an implementation.
    install_registry(build_registry())

    client = await connect()

    log.info("Starting worker on queue: %s", config.TEMPORAL_TASK_QUEUE)
    worker = Worker(
        client,
        task_queue=config.TEMPORAL_TASK_QUEUE,
        workflows=[PentestPipeline],
        activities=ALL_ACTIVITIES,
        max_concurrent_activities=config.MAX_CONCURRENT_ACTIVITIES,
    )

    log.info("Worker ready — listening for tasks")
    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
