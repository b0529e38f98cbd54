import logging
from typing import Callable, Optional

from genqueue.core.config import settings
from genqueue.services.generation_client import GenerationClient
from genqueue.services.fake_generation_client import FakeGenerationClient
from genqueue.services.model_selection import ProviderFamily
from genqueue.services.replicate_client import ReplicateGenerationClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ProviderFamily], GenerationClient]


def create_generation_client(family: ProviderFamily, provider: Optional[str] = None) -> GenerationClient:
    """
    Create a generation client for one job.

    Each job authenticates with its own credentials, so clients are never
    shared between jobs.

    Args:
        family: Provider family inferred from the job's credentials
        provider: Overrides settings.generation_provider

    Returns:
        An unauthenticated GenerationClient
    """
    provider = (provider or settings.generation_provider).lower()

    if provider == "replicate":
        logger.debug(f"Creating ReplicateGenerationClient [{family.network}]")
        return ReplicateGenerationClient(network=family.network)
    elif provider == "fake":
        logger.debug(f"Creating FakeGenerationClient [{family.network}]")
        return FakeGenerationClient(network=family.network)
    else:
        logger.warning(f"Unknown generation provider '{provider}', defaulting to ReplicateGenerationClient")
        return ReplicateGenerationClient(network=family.network)
