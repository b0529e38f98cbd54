import itertools
import logging
from typing import Any, Callable, Iterable, List, Optional, Union

from genqueue.core.exceptions import AuthenticationError
from genqueue.services.generation_client import GenerationClient, GenerationParams

logger = logging.getLogger(__name__)

Outcome = Union[Any, BaseException, Callable[[GenerationParams], Any]]


class FakeGenerationClient(GenerationClient):
    """In-memory provider for testing and development.

    Submissions succeed with a static image URL unless scripted otherwise.
    ``submit_errors`` is a queue of exceptions raised by successive
    ``submit`` calls before they start succeeding; ``completions`` is a queue
    of raw outputs (or exceptions, or callables taking the request) consumed
    by successive ``await_completion`` calls.
    """

    base_url = "http://localhost:8000/static"

    def __init__(
        self,
        network: str = "fast",
        models: Optional[List[str]] = None,
        reject_credentials: bool = False,
        models_error: Optional[BaseException] = None,
    ):
        self.network = network
        self.models = list(models or [])
        self.reject_credentials = reject_credentials
        self.models_error = models_error
        self.submit_errors: List[BaseException] = []
        self.completions: List[Outcome] = []

        self.authenticated_as: Optional[str] = None
        self.submitted: List[GenerationParams] = []
        self.submit_calls = 0
        self.closed = False
        self._counter = itertools.count(1)

    async def authenticate(
        self,
        username: Optional[str],
        token: Optional[str],
        refresh_token: Optional[str] = None
    ) -> None:
        if not username or not token:
            raise AuthenticationError("Missing userToken/username in job")
        if self.reject_credentials:
            raise AuthenticationError(f"Provider rejected credentials for {username}")
        self.authenticated_as = username

    async def list_available_models(self, candidates: Optional[Iterable[str]] = None) -> List[str]:
        if self.models_error is not None:
            raise self.models_error
        if candidates is None:
            return list(self.models)
        return [model for model in candidates if model in self.models]

    async def submit(self, params: GenerationParams) -> Any:
        self.submit_calls += 1
        if self.submit_errors:
            raise self.submit_errors.pop(0)

        self.submitted.append(params)
        logger.info(f"Generating fake image with model {params.model_id}, prompt: {params.positive_prompt}")
        return params

    async def await_completion(self, handle: Any) -> Any:
        params: GenerationParams = handle
        if self.completions:
            outcome = self.completions.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            if callable(outcome):
                return outcome(params)
            return outcome
        return f"{self.base_url}/fake{next(self._counter)}.png"

    async def close(self) -> None:
        self.closed = True
