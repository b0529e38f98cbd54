from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NEGATIVE_PROMPT = "lowres, watermark, bad anatomy"


class GenerationParams(BaseModel):
    """One image-to-image generation request."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    positive_prompt: str
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    starting_image: bytes = Field(..., repr=False)
    starting_image_strength: float = 0.55
    guidance: float = 7.5
    steps: int = 20
    number_of_images: int = 1
    output_format: str = "png"
    width: int
    height: int
    token_type: str


class GenerationClient(ABC):
    """Abstract interface for image generation providers."""

    @abstractmethod
    async def authenticate(
        self,
        username: Optional[str],
        token: Optional[str],
        refresh_token: Optional[str] = None
    ) -> None:
        """
        Establish a session with the provider.

        Raises:
            AuthenticationError: credentials are missing or were rejected
        """
        pass

    @abstractmethod
    async def list_available_models(self, candidates: Optional[Iterable[str]] = None) -> List[str]:
        """
        Return the ids of the models the provider currently serves.

        Args:
            candidates: When given, only these ids are checked and the ones
                the provider serves are returned
        """
        pass

    @abstractmethod
    async def submit(self, params: GenerationParams) -> Any:
        """
        Submit a generation request.

        Returns:
            An opaque handle to pass to await_completion
        """
        pass

    @abstractmethod
    async def await_completion(self, handle: Any) -> Any:
        """
        Wait for a submitted request to finish.

        Returns:
            The provider's raw output; see output_reference.extract_output_reference
        """
        pass

    async def close(self) -> None:
        pass
