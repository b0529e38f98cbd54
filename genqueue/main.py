import asyncio
import logging
from pathlib import Path
from typing import Optional

from genqueue.core.config import settings
from genqueue.core.logging import setup_logging
from genqueue.core.retry import RetryPolicy
from genqueue.storage.job_store import JobStore
from genqueue.tasks.janitor import Janitor
from genqueue.tasks.job_processing import JobProcessor
from genqueue.tasks.scheduler import Scheduler

logger = logging.getLogger(__name__)


def build_scheduler(store: Optional[JobStore] = None) -> Scheduler:
    store = store or JobStore(settings.jobs_dir)
    store.ensure_dirs()
    Path(settings.uploads_dir).mkdir(parents=True, exist_ok=True)

    processor = JobProcessor(store, retry_policy=RetryPolicy.from_settings())
    janitor = Janitor(store, settings.uploads_dir, settings.retention_ms)
    return Scheduler(store, processor, janitor)


async def run_worker(once: bool = False) -> None:
    scheduler = build_scheduler()
    logger.info(
        f"Starting worker (provider={settings.generation_provider}, "
        f"jobs={settings.job_concurrency}, files={settings.file_concurrency})"
    )

    if once:
        await scheduler.tick()
        await scheduler.drain()
        return

    try:
        await scheduler.run_forever()
    finally:
        logger.info("Shutting down worker")


def main() -> None:
    setup_logging()
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
