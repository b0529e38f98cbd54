import logging
import sys
from typing import Optional
from genqueue.core.config import settings


def setup_logging(log_level: Optional[str] = None) -> None:
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

    # Third-party clients are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("replicate").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)

    if settings.debug:
        logging.getLogger("genqueue").setLevel(logging.DEBUG)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {logging.getLevelName(level)} level")


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Render a credential for log output without exposing it."""
    if not value:
        return "<unset>"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * 4 + value[-visible:]
