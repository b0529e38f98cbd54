import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Optional

from genqueue.core.config import Settings, settings as default_settings
from genqueue.core.retry import RetryPolicy
from genqueue.models.job import FileResult, JobRecord
from genqueue.services.generation_client import GenerationClient, GenerationParams
from genqueue.services.image_transform import cover_resize, parse_image_size
from genqueue.services.model_selection import ProviderFamily, candidate_models, select_model
from genqueue.services.output_reference import extract_output_reference

logger = logging.getLogger(__name__)

INPUT_MISSING = "input missing"


class FileProcessor:
    """Turns one input file of a job into one FileResult.

    Never raises: every failure past the existence check is recorded on the
    result so the rest of the job keeps going.
    """

    def __init__(
        self,
        client: GenerationClient,
        family: ProviderFamily,
        retry_policy: Optional[RetryPolicy] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.family = family
        self.settings = settings or default_settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep

    async def process(self, job: JobRecord, path: str) -> FileResult:
        name = Path(path).stem
        logger.info(f"[{job.job_id}] Processing {name}")

        if not os.path.isfile(path):
            logger.warning(f"[{job.job_id}] Missing input: {path}")
            return FileResult.failure(path, INPUT_MISSING)

        try:
            url = await self._generate(job, path)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"[{job.job_id}] Error on {name}: {message}")
            result = FileResult.failure(path, message)
        else:
            logger.info(f"[{job.job_id}] Done: {url}")
            result = FileResult.success(path, url)

        await self._sleep(self.settings.post_success_delay_ms / 1000)
        return result

    async def _generate(self, job: JobRecord, path: str) -> str:
        width, height = parse_image_size(job.image_size, self.settings.default_image_size)
        image = await asyncio.to_thread(cover_resize, path, width, height)

        try:
            available = await self.client.list_available_models(
                candidate_models(job, self.family, self.settings)
            )
        except Exception as e:
            logger.warning(f"[{job.job_id}] Could not list models: {e}")
            available = []

        model_id = select_model(job, self.family, available, self.settings)
        logger.info(f"[{job.job_id}] Using model={model_id}, tokenType={self.family.token_type}")

        params = GenerationParams(**self._param_overrides(job), **{
            "model_id": model_id,
            "positive_prompt": job.prompt,
            "starting_image": image,
            "width": width,
            "height": height,
            "token_type": self.family.token_type,
        })

        handle = await self.retry_policy.run(lambda: self.client.submit(params), label=job.job_id)
        result = await self.client.await_completion(handle)
        return extract_output_reference(result)

    @staticmethod
    def _param_overrides(job: JobRecord) -> dict:
        overrides = {
            "negative_prompt": job.negative_prompt or None,
            "starting_image_strength": job.strength,
            "guidance": job.prompt_strength,
            "steps": job.steps,
        }
        return {key: value for key, value in overrides.items() if value is not None}
