import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from genqueue.core.config import Settings, settings as default_settings
from genqueue.models.job import JobRecord, now_ms
from genqueue.storage.job_store import JobStore
from genqueue.tasks.janitor import Janitor
from genqueue.tasks.job_processing import JobProcessor
from genqueue.tasks.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class Scheduler:
    """Polls the job store and feeds queued jobs to a bounded worker pool.

    A job is claimed (written back as ``running``) before it is handed to the
    pool, so a later poll never sees it as ``queued`` again.
    """

    def __init__(
        self,
        store: JobStore,
        processor: JobProcessor,
        janitor: Optional[Janitor] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.processor = processor
        self.janitor = janitor
        self.settings = settings or default_settings
        self.pool = WorkerPool(self.settings.job_concurrency)
        self.last_cleanup_at: Optional[int] = None
        self._clock = clock
        self._sleep = sleep
        self._running = False

    def poll_once(self) -> List[JobRecord]:
        """Claim every queued job and dispatch it. Returns the claimed jobs."""
        dispatched = []
        for job_id in self.store.list():
            try:
                job = self.store.claim(job_id, self._clock())
            except (OSError, ValueError) as e:
                logger.warning(f"Could not claim job {job_id}: {e}")
                continue
            if job is None:
                continue

            logger.info(f"[{job.job_id}] Dispatching {len(job.files)} file(s)")
            self.pool.submit(self.processor.process, job)
            logger.debug(f"{self.pool.pending} job(s) in flight")
            dispatched.append(job)
        return dispatched

    def cleanup_due(self, now: int) -> bool:
        if self.janitor is None:
            return False
        if self.last_cleanup_at is None:
            return True
        return now - self.last_cleanup_at > self.settings.cleanup_interval_ms

    async def maybe_cleanup(self) -> bool:
        now = self._clock()
        if not self.cleanup_due(now):
            return False
        try:
            await asyncio.to_thread(self.janitor.sweep, now)
        finally:
            # A failed sweep waits out the interval like a successful one
            self.last_cleanup_at = now
        return True

    async def tick(self) -> List[JobRecord]:
        dispatched = self.poll_once()
        await self.maybe_cleanup()
        return dispatched

    async def run_forever(self) -> None:
        self._running = True
        self.store.ensure_dirs()
        logger.info(f"Worker started. Watching: {self.store.jobs_dir}")

        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception("Worker loop error")
            await self._sleep(self.settings.job_scan_interval_ms / 1000)

    def stop(self) -> None:
        self._running = False

    async def drain(self) -> None:
        await self.pool.join()
