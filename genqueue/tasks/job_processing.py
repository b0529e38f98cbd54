import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from genqueue.core.config import Settings, settings as default_settings
from genqueue.core.exceptions import AuthenticationError
from genqueue.core.logging import mask_secret
from genqueue.core.retry import RetryPolicy
from genqueue.models.job import FileResult, JobRecord, now_ms
from genqueue.services.generation_client_factory import ClientFactory, create_generation_client
from genqueue.services.model_selection import detect_provider_family
from genqueue.storage.job_store import JobStore
from genqueue.tasks.file_processing import FileProcessor
from genqueue.tasks.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class JobProcessor:
    """Runs a claimed (``running``) job to a terminal state and persists it.

    The terminal record is written exactly once. Nothing raised while
    processing escapes ``process``.
    """

    def __init__(
        self,
        store: JobStore,
        client_factory: ClientFactory = create_generation_client,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.client_factory = client_factory
        self.settings = settings or default_settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep
        self._clock = clock

    async def process(self, job: JobRecord) -> JobRecord:
        try:
            final = await self._run(job)
        except Exception as e:
            logger.exception(f"[{job.job_id}] Unexpected error while processing job")
            final = job.mark_failed(str(e) or type(e).__name__, self._clock())

        try:
            self.store.write(final)
        except Exception:
            logger.exception(f"[{job.job_id}] Failed to persist terminal state {final.status.value}")
        else:
            logger.info(f"[{job.job_id}] Finished with status {final.status.value}")
        return final

    async def _run(self, job: JobRecord) -> JobRecord:
        family = detect_provider_family(job)
        client = self.client_factory(family)
        logger.debug(f"[{job.job_id}] Authenticating {job.username} with token {mask_secret(job.user_token)}")

        try:
            try:
                await client.authenticate(job.username, job.user_token, job.refresh_token)
            except AuthenticationError as e:
                logger.error(f"[{job.job_id}] Authentication failed: {e}")
                return job.mark_failed(str(e), self._clock())

            logger.info(f"[{job.job_id}] Session established for {job.username} ({family.value})")

            processor = FileProcessor(
                client,
                family,
                retry_policy=self.retry_policy,
                settings=self.settings,
                sleep=self._sleep,
            )
            outputs = await self._process_files(job, processor)
            return job.mark_completed(outputs, self._clock())
        finally:
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"[{job.job_id}] Error closing generation client: {e}")

    async def _process_files(self, job: JobRecord, processor: FileProcessor) -> List[FileResult]:
        pool = WorkerPool(self.settings.file_concurrency)
        tasks = [pool.submit(processor.process, job, path) for path in job.files]
        # Results keep the order of job.files, whatever order they finish in
        return list(await asyncio.gather(*tasks))
