import logging
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from genqueue.core.config import Settings, settings as default_settings
from genqueue.models.job import JobRecord

logger = logging.getLogger(__name__)


class ProviderFamily(str, Enum):
    SPARK = "spark"
    SOGNI = "sogni"

    @property
    def network(self) -> str:
        return "spark" if self is ProviderFamily.SPARK else "fast"

    @property
    def token_type(self) -> str:
        return self.value


def detect_provider_family(job: JobRecord) -> ProviderFamily:
    """Infer the provider family from the job's credentials.

    An explicit ``tokenType`` wins; otherwise a "spark" substring in the
    token or username marks a Spark account.
    """
    if job.token_type:
        return ProviderFamily.SPARK if job.token_type.lower() == "spark" else ProviderFamily.SOGNI

    for value in (job.user_token, job.username):
        if value and "spark" in value.lower():
            return ProviderFamily.SPARK
    return ProviderFamily.SOGNI


def family_models(family: ProviderFamily, settings: Optional[Settings] = None) -> Tuple[str, str]:
    """Return the ``(default, fallback)`` model pair configured for a family."""
    settings = settings or default_settings
    if family is ProviderFamily.SPARK:
        return settings.spark_default_model, settings.spark_fallback_model
    return settings.sogni_default_model, settings.sogni_fallback_model


def candidate_models(job: JobRecord, family: ProviderFamily, settings: Optional[Settings] = None) -> List[str]:
    """The only models select_model can return for this job, in preference order."""
    default, fallback = family_models(family, settings)
    candidates = [job.model_id or default]
    if fallback not in candidates:
        candidates.append(fallback)
    return candidates


def select_model(
    job: JobRecord,
    family: ProviderFamily,
    available: Iterable[str],
    settings: Optional[Settings] = None,
) -> str:
    default, fallback = family_models(family, settings)
    available_ids = set(available)

    selected = job.model_id or default
    if selected not in available_ids:
        logger.warning(f"Model {selected} not found, falling back to {fallback}")
        selected = fallback
    return selected
