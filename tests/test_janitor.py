import os
import shutil

from genqueue.models.job import JobStatus
from genqueue.tasks.janitor import Janitor

NOW = 1_800_000_000_000
RETENTION = 24 * 60 * 60 * 1000


def set_mtime(path, mtime_ms):
    os.utime(path, ns=(mtime_ms * 1_000_000, mtime_ms * 1_000_000))


def make_upload(uploads_dir, name, mtime_ms):
    upload = uploads_dir / name
    upload.mkdir(parents=True)
    (upload / "input.png").write_bytes(b"png")
    set_mtime(upload, mtime_ms)
    return upload


def test_job_just_past_retention_deleted(store, make_job, test_settings):
    store.write(make_job(["/in/a.png"]))
    set_mtime(store.path_for("job1"), NOW - RETENTION - 1)

    report = Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert report.deleted_jobs == 1
    assert store.read("job1") is None


def test_job_within_retention_kept(store, make_job, test_settings):
    store.write(make_job(["/in/a.png"]))
    set_mtime(store.path_for("job1"), NOW - RETENTION + 1)

    report = Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert report.deleted_jobs == 0
    assert store.read("job1") is not None


def test_terminal_status_does_not_matter(store, make_job, test_settings):
    for job_id, status in (("q", JobStatus.QUEUED), ("d", JobStatus.DONE), ("e", JobStatus.ERROR)):
        store.write(make_job(["/in/a.png"], job_id=job_id, status=status))
        set_mtime(store.path_for(job_id), NOW - RETENTION - 10)

    report = Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert report.deleted_jobs == 3
    assert store.list() == []


def test_malformed_job_files_expire_too(store, test_settings):
    store.path_for("broken").write_text("{")
    set_mtime(store.path_for("broken"), NOW - RETENTION - 1)

    Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert store.list() == []


def test_old_upload_directories_removed_recursively(store, tmp_path, test_settings):
    uploads = tmp_path / "uploads"
    old = make_upload(uploads, "old", NOW - RETENTION - 1)
    fresh = make_upload(uploads, "fresh", NOW - RETENTION + 1)
    stray = uploads / "stray.txt"
    stray.write_text("not a directory")
    set_mtime(stray, NOW - RETENTION - 1)

    report = Janitor(store, str(uploads), RETENTION).sweep(now=NOW)

    assert report.deleted_uploads == 1
    assert not old.exists()
    assert fresh.exists()
    assert stray.exists()


def test_missing_uploads_directory_is_fine(store, tmp_path):
    report = Janitor(store, str(tmp_path / "nowhere"), RETENTION).sweep(now=NOW)
    assert report.deleted_uploads == 0
    assert report.failures == 0


def test_failures_do_not_abort_sweep(store, tmp_path, monkeypatch):
    uploads = tmp_path / "uploads"
    make_upload(uploads, "first", NOW - RETENTION - 1)
    make_upload(uploads, "second", NOW - RETENTION - 1)
    real_rmtree = shutil.rmtree
    attempted = []

    def flaky_rmtree(path, *args, **kwargs):
        attempted.append(os.path.basename(path))
        if len(attempted) == 1:
            raise PermissionError("busy")
        real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr("genqueue.tasks.janitor.shutil.rmtree", flaky_rmtree)

    report = Janitor(store, str(uploads), RETENTION).sweep(now=NOW)

    assert len(attempted) == 2
    assert report.failures == 1
    assert report.deleted_uploads == 1


def test_default_clock_used(store, make_job, test_settings):
    store.write(make_job(["/in/a.png"]))
    set_mtime(store.path_for("job1"), NOW - RETENTION - 1)

    report = Janitor(store, test_settings.uploads_dir, RETENTION, clock=lambda: NOW).sweep()

    assert report.deleted_jobs == 1


def test_stale_claim_lock_removed_and_job_claimable_again(store, make_job, test_settings):
    store.write(make_job(["/in/a.png"]))
    lock = store.jobs_dir / ".job1.lock"
    lock.touch()
    set_mtime(lock, NOW - RETENTION - 1)
    assert store.claim("job1") is None

    report = Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert report.deleted_artifacts == 1
    assert not lock.exists()
    assert store.claim("job1").status == JobStatus.RUNNING


def test_recent_claim_lock_kept(store, make_job, test_settings):
    store.write(make_job(["/in/a.png"]))
    lock = store.jobs_dir / ".job1.lock"
    lock.touch()
    set_mtime(lock, NOW - RETENTION + 1)

    report = Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert report.deleted_artifacts == 0
    assert lock.exists()


def test_leftover_temp_files_removed(store, test_settings):
    leftover = store.jobs_dir / ".tmp-abc123.json"
    leftover.write_text('{"jobId": "half')
    set_mtime(leftover, NOW - RETENTION - 1)
    unrelated = store.jobs_dir / ".keep"
    unrelated.touch()
    set_mtime(unrelated, NOW - RETENTION - 1)

    report = Janitor(store, test_settings.uploads_dir, RETENTION).sweep(now=NOW)

    assert report.deleted_artifacts == 1
    assert not leftover.exists()
    assert unrelated.exists()
