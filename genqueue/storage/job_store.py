"""File-backed job store: one JSON document per job, named ``<jobId>.json``.

Writes go to a sibling temp file that is then ``os.replace``-d over the
target, so readers in other processes never observe a partial record. The
``queued -> running`` admission is a compare-and-swap guarded by an
exclusive lock file, which keeps it single-admission even with several
scheduler processes polling the same directory.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from pydantic import ValidationError

from genqueue.core.config import settings
from genqueue.models.job import JobRecord, JobStatus, now_ms

logger = logging.getLogger(__name__)

JOB_SUFFIX = ".json"
LOCK_SUFFIX = ".lock"
TMP_PREFIX = ".tmp-"


class JobStore:
    def __init__(self, jobs_dir: Optional[str] = None):
        self.jobs_dir = Path(jobs_dir or settings.jobs_dir).resolve()

    def ensure_dirs(self) -> None:
        self.jobs_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, job_id: str) -> Path:
        if not job_id or os.sep in job_id or job_id.startswith("."):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return self.jobs_dir / f"{job_id}{JOB_SUFFIX}"

    def list(self) -> List[str]:
        """Return the ids of all persisted jobs, in no particular order."""
        try:
            entries = os.listdir(self.jobs_dir)
        except FileNotFoundError:
            return []

        job_ids = []
        for name in entries:
            if name.startswith(".") or not name.endswith(JOB_SUFFIX):
                continue
            job_ids.append(name[: -len(JOB_SUFFIX)])
        return job_ids

    def artifacts(self) -> List[Path]:
        """Claim locks and write temp files currently in the jobs directory.

        Normally short-lived; ones that linger were left by a crashed process.
        """
        try:
            entries = os.listdir(self.jobs_dir)
        except FileNotFoundError:
            return []

        return [
            self.jobs_dir / name
            for name in entries
            if name.startswith(TMP_PREFIX) or (name.startswith(".") and name.endswith(LOCK_SUFFIX))
        ]

    def read(self, job_id: str) -> Optional[JobRecord]:
        """Load a job; a missing or malformed record reads as ``None``."""
        path = self.path_for(job_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            logger.warning(f"Ignoring malformed job file {path.name}: {e.reason} at byte {e.start}")
            return None
        except OSError as e:
            logger.warning(f"Could not read job file {path.name}: {e}")
            return None

        try:
            return JobRecord.from_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed job file {path.name}: {e.error_count()} validation error(s)")
            return None

    def write(self, record: JobRecord) -> None:
        path = self.path_for(record.job_id)
        fd, tmp_path = tempfile.mkstemp(prefix=TMP_PREFIX, suffix=JOB_SUFFIX, dir=self.jobs_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record.to_json())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def delete(self, job_id: str) -> bool:
        """Remove a job record. Deleting an absent record is not an error."""
        try:
            self.path_for(job_id).unlink()
            return True
        except FileNotFoundError:
            return False

    def modified_at(self, job_id: str) -> Optional[int]:
        """Filesystem modification time of the record, in epoch milliseconds."""
        try:
            return self.path_for(job_id).stat().st_mtime_ns // 1_000_000
        except FileNotFoundError:
            return None

    def claim(self, job_id: str, now: Optional[int] = None) -> Optional[JobRecord]:
        """Atomically move a job from ``queued`` to ``running``.

        Returns the running record, or ``None`` when the job is absent,
        malformed, not queued, or being claimed by someone else.
        """
        with self._exclusive(job_id) as acquired:
            if not acquired:
                return None
            record = self.read(job_id)
            if record is None or record.status != JobStatus.QUEUED:
                return None
            running = record.mark_running(now if now is not None else now_ms())
            self.write(running)
            return running

    @contextmanager
    def _exclusive(self, job_id: str) -> Iterator[bool]:
        lock_path = self.jobs_dir / f".{job_id}{LOCK_SUFFIX}"
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            logger.debug(f"Job {job_id} is locked by another claimant")
            yield False
            return

        try:
            os.close(fd)
            yield True
        finally:
            try:
                os.unlink(lock_path)
            except FileNotFoundError:
                pass
