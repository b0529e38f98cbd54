import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from genqueue.core.config import settings
from genqueue.models.job import now_ms
from genqueue.storage.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    deleted_jobs: int = 0
    deleted_uploads: int = 0
    deleted_artifacts: int = 0
    failures: int = 0


class Janitor:
    """Deletes job records, upload directories and stale claim locks past
    the retention age.

    Terminal status is irrelevant: a finished job expires like any other.
    """

    def __init__(
        self,
        store: JobStore,
        uploads_dir: Optional[str] = None,
        retention_ms: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.uploads_dir = Path(uploads_dir or settings.uploads_dir).resolve()
        self.retention_ms = settings.retention_ms if retention_ms is None else retention_ms
        self._clock = clock

    def _expired(self, mtime_ms: int, now: int) -> bool:
        return now - mtime_ms > self.retention_ms

    def sweep(self, now: Optional[int] = None) -> SweepReport:
        now = self._clock() if now is None else now
        report = SweepReport()
        self._sweep_jobs(now, report)
        self._sweep_artifacts(now, report)
        self._sweep_uploads(now, report)

        if report.deleted_jobs or report.deleted_uploads or report.deleted_artifacts:
            logger.info(
                f"Cleanup: {report.deleted_jobs} jobs, {report.deleted_uploads} uploads, "
                f"{report.deleted_artifacts} stale lock/temp files deleted"
            )
        return report

    def _sweep_jobs(self, now: int, report: SweepReport) -> None:
        for job_id in self.store.list():
            try:
                mtime = self.store.modified_at(job_id)
                if mtime is not None and self._expired(mtime, now):
                    if self.store.delete(job_id):
                        report.deleted_jobs += 1
            except (OSError, ValueError) as e:
                report.failures += 1
                logger.warning(f"Cleanup of job {job_id} failed: {e}")

    def _sweep_artifacts(self, now: int, report: SweepReport) -> None:
        for path in self.store.artifacts():
            try:
                mtime = path.stat().st_mtime_ns // 1_000_000
                if self._expired(mtime, now):
                    path.unlink()
                    report.deleted_artifacts += 1
            except FileNotFoundError:
                # Released by its owner since the listing
                continue
            except OSError as e:
                report.failures += 1
                logger.warning(f"Cleanup of {path.name} failed: {e}")

    def _sweep_uploads(self, now: int, report: SweepReport) -> None:
        try:
            entries = list(os.scandir(self.uploads_dir))
        except FileNotFoundError:
            return
        except OSError as e:
            report.failures += 1
            logger.warning(f"Cleanup could not list uploads: {e}")
            return

        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                mtime = entry.stat(follow_symlinks=False).st_mtime_ns // 1_000_000
                if self._expired(mtime, now):
                    shutil.rmtree(entry.path)
                    report.deleted_uploads += 1
            except OSError as e:
                report.failures += 1
                logger.warning(f"Cleanup of upload {entry.name} failed: {e}")
