import pytest
from PIL import Image

from genqueue.core.config import Settings
from genqueue.core.retry import RetryPolicy
from genqueue.models.job import JobRecord, JobStatus
from genqueue.services.fake_generation_client import FakeGenerationClient
from genqueue.storage.job_store import JobStore


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        jobs_dir=str(tmp_path / "jobs"),
        uploads_dir=str(tmp_path / "uploads"),
        post_success_delay_ms=600,
        retry_base_delay_ms=500,
        retry_max_delay_ms=15000,
        max_retries=5,
        generation_provider="fake",
        _env_file=None,
    )


@pytest.fixture
def store(test_settings):
    job_store = JobStore(test_settings.jobs_dir)
    job_store.ensure_dirs()
    return job_store


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleeper):
    return RetryPolicy(max_attempts=5, base_delay_ms=500, max_delay_ms=15000, sleep=sleeper)


@pytest.fixture
def fake_client():
    return FakeGenerationClient(models=["stability-ai/sdxl", "black-forest-labs/flux-schnell"])


@pytest.fixture
def client_factory(fake_client):
    """Factory that hands every job the same scripted fake client."""
    families = []

    def factory(family):
        families.append(family)
        fake_client.network = family.network
        return fake_client

    factory.families = families
    return factory


@pytest.fixture
def make_image(tmp_path):
    def _make(name: str = "a.png", size=(64, 48), color=(200, 30, 30)) -> str:
        upload_dir = tmp_path / "uploads" / "upload1"
        upload_dir.mkdir(parents=True, exist_ok=True)
        path = upload_dir / name
        Image.new("RGB", size, color).save(path, format="PNG")
        return str(path)
    return _make


@pytest.fixture
def make_job():
    def _make(files, **overrides) -> JobRecord:
        fields = {
            "job_id": "job1",
            "status": JobStatus.QUEUED,
            "prompt": "a watercolor fox",
            "image_size": "64x64",
            "files": list(files),
            "username": "alice",
            "user_token": "tok-123456",
            "refresh_token": "refresh-abc",
        }
        fields.update(overrides)
        return JobRecord(**fields)
    return _make
