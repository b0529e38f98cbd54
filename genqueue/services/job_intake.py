import logging
import shutil
import uuid
from pathlib import Path
from typing import Iterable, Optional

from genqueue.core.config import settings
from genqueue.models.job import JobRecord, JobStatus, now_ms
from genqueue.schemas.job import JobSubmitRequest
from genqueue.storage.job_store import JobStore

logger = logging.getLogger(__name__)


def create_job(
    store: JobStore,
    request: JobSubmitRequest,
    files: Iterable[str],
    uploads_dir: Optional[str] = None,
) -> JobRecord:
    """
    Store the input files and enqueue a new job for them.

    Each call gets its own upload directory, which the janitor later removes
    together with the job record.

    Raises:
        ValueError: no input files were given
        FileNotFoundError: an input file does not exist
    """
    sources = [Path(f) for f in files]
    if not sources:
        raise ValueError("A job needs at least one input file")
    for source in sources:
        if not source.is_file():
            raise FileNotFoundError(f"Input file not found: {source}")

    upload_dir = Path(uploads_dir or settings.uploads_dir).resolve() / uuid.uuid4().hex
    upload_dir.mkdir(parents=True, exist_ok=False)

    stored = []
    for index, source in enumerate(sources):
        target = upload_dir / f"{index:03d}_{source.name}"
        shutil.copyfile(source, target)
        stored.append(str(target))

    record = JobRecord(
        job_id=uuid.uuid4().hex,
        status=JobStatus.QUEUED,
        files=stored,
        created_at=now_ms(),
        **request.model_dump(exclude_none=True),
    )

    store.ensure_dirs()
    store.write(record)
    logger.info(f"Created job {record.job_id} with {len(stored)} file(s) for {request.username}")
    return record
