import io
import logging
from typing import Any, Iterable, List, Optional

import replicate
from replicate.exceptions import ReplicateError

from genqueue.core.exceptions import AuthenticationError, GenerationError
from genqueue.services.generation_client import GenerationClient, GenerationParams

logger = logging.getLogger(__name__)


class ReplicateGenerationClient(GenerationClient):
    def __init__(self, network: str = "fast"):
        self.network = network
        self.client: Optional[replicate.Client] = None

    def _require_client(self) -> replicate.Client:
        if self.client is None:
            raise AuthenticationError("Client is not authenticated")
        return self.client

    async def authenticate(
        self,
        username: Optional[str],
        token: Optional[str],
        refresh_token: Optional[str] = None
    ) -> None:
        if not username or not token:
            raise AuthenticationError("Missing userToken/username in job")

        client = replicate.Client(api_token=token)
        try:
            account = await client.accounts.async_current()
        except ReplicateError as e:
            raise AuthenticationError(f"Provider rejected credentials for {username}: {e}") from e

        self.client = client
        logger.info(f"Session restored for {username} as {account.username} [{self.network}]")

    async def list_available_models(self, candidates: Optional[Iterable[str]] = None) -> List[str]:
        client = self._require_client()
        if candidates is not None:
            return [model_id for model_id in candidates if await self._model_exists(client, model_id)]

        model_ids = []
        page = await client.models.async_list()
        while True:
            model_ids.extend(f"{model.owner}/{model.name}" for model in page.results)
            if not page.next:
                return model_ids
            page = await client.models.async_list(cursor=page.next)

    async def _model_exists(self, client: replicate.Client, model_id: str) -> bool:
        # Version pins (owner/name:version) resolve to their model
        reference = model_id.split(":", 1)[0]
        if reference.count("/") != 1:
            return False
        try:
            await client.models.async_get(reference)
        except ReplicateError as e:
            if getattr(e, "status", None) == 404:
                return False
            raise
        return True

    async def submit(self, params: GenerationParams) -> Any:
        input_params = {
            "prompt": params.positive_prompt,
            "negative_prompt": params.negative_prompt,
            "image": io.BytesIO(params.starting_image),
            "prompt_strength": params.starting_image_strength,
            "guidance_scale": params.guidance,
            "num_inference_steps": params.steps,
            "num_outputs": params.number_of_images,
            "output_format": params.output_format,
            "width": params.width,
            "height": params.height,
        }

        logger.info(
            f"Creating prediction with model {params.model_id} "
            f"({params.width}x{params.height}, steps={params.steps})"
        )
        try:
            return await self._require_client().predictions.async_create(
                model=params.model_id,
                input=input_params,
            )
        except ReplicateError as e:
            raise GenerationError(str(e), status_code=getattr(e, "status", None)) from e
        except ValueError as e:
            # Malformed model reference, rejected before any request is made
            raise GenerationError(str(e)) from e

    async def await_completion(self, handle: Any) -> Any:
        await handle.async_wait()

        if handle.status != "succeeded":
            raise GenerationError(f"Prediction {handle.id} {handle.status}: {handle.error or 'no detail'}")

        return handle.output
