import asyncio

import pytest

from genqueue.models.job import JobStatus
from genqueue.tasks.job_processing import JobProcessor
from genqueue.tasks.scheduler import Scheduler


class BlockingProcessor:
    """Records dispatched jobs and holds them until released."""

    def __init__(self):
        self.seen = []
        self.release = asyncio.Event()
        self.active = 0
        self.peak = 0

    async def process(self, job):
        self.seen.append(job.job_id)
        self.active += 1
        self.peak = max(self.peak, self.active)
        await self.release.wait()
        self.active -= 1
        return job


class RecordingJanitor:
    def __init__(self):
        self.sweeps = []

    def sweep(self, now=None):
        self.sweeps.append(now)


class Clock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def blocking():
    return BlockingProcessor()


class TestPolling:
    async def test_queued_job_claimed_before_dispatch(self, store, blocking, make_job, test_settings):
        store.write(make_job(["/in/a.png"]))
        scheduler = Scheduler(store, blocking, settings=test_settings, clock=Clock(500))

        dispatched = scheduler.poll_once()

        assert [job.job_id for job in dispatched] == ["job1"]
        persisted = store.read("job1")
        assert persisted.status == JobStatus.RUNNING
        assert persisted.started_at == 500

        blocking.release.set()
        await scheduler.drain()
        assert blocking.seen == ["job1"]

    async def test_repeated_polls_dispatch_once(self, store, blocking, make_job, test_settings):
        store.write(make_job(["/in/a.png"], job_id="one"))
        store.write(make_job(["/in/b.png"], job_id="two"))
        scheduler = Scheduler(store, blocking, settings=test_settings)

        first = scheduler.poll_once()
        second = scheduler.poll_once()
        await asyncio.sleep(0)

        assert sorted(job.job_id for job in first) == ["one", "two"]
        assert second == []

        blocking.release.set()
        await scheduler.drain()
        assert sorted(blocking.seen) == ["one", "two"]

    @pytest.mark.parametrize("status", [JobStatus.RUNNING, JobStatus.DONE, JobStatus.ERROR])
    async def test_non_queued_jobs_ignored(self, store, blocking, make_job, test_settings, status):
        store.write(make_job(["/in/a.png"], status=status))
        scheduler = Scheduler(store, blocking, settings=test_settings)

        assert scheduler.poll_once() == []
        await scheduler.drain()
        assert blocking.seen == []
        assert store.read("job1").status == status

    async def test_malformed_records_skipped(self, store, blocking, make_job, test_settings):
        store.path_for("broken").write_text("{oops")
        store.write(make_job(["/in/a.png"]))
        scheduler = Scheduler(store, blocking, settings=test_settings)

        dispatched = scheduler.poll_once()

        assert [job.job_id for job in dispatched] == ["job1"]
        blocking.release.set()
        await scheduler.drain()

    async def test_job_concurrency_bound(self, store, blocking, make_job, test_settings):
        for name in ("a", "b", "c"):
            store.write(make_job([f"/in/{name}.png"], job_id=name))
        settings = test_settings.model_copy(update={"job_concurrency": 2})
        scheduler = Scheduler(store, blocking, settings=settings)

        scheduler.poll_once()
        for _ in range(5):
            await asyncio.sleep(0)

        assert blocking.active == 2
        blocking.release.set()
        await scheduler.drain()
        assert blocking.peak == 2
        assert len(blocking.seen) == 3


class TestCleanupCadence:
    async def test_first_tick_runs_cleanup(self, store, blocking, test_settings):
        janitor = RecordingJanitor()
        scheduler = Scheduler(store, blocking, janitor=janitor, settings=test_settings, clock=Clock(1000))

        assert await scheduler.maybe_cleanup() is True
        assert janitor.sweeps == [1000]
        assert scheduler.last_cleanup_at == 1000

    async def test_cleanup_waits_for_interval(self, store, blocking, test_settings):
        janitor = RecordingJanitor()
        clock = Clock(0)
        settings = test_settings.model_copy(update={"cleanup_interval_ms": 600_000})
        scheduler = Scheduler(store, blocking, janitor=janitor, settings=settings, clock=clock)

        await scheduler.maybe_cleanup()
        clock.now = 600_000
        assert await scheduler.maybe_cleanup() is False
        clock.now = 600_001
        assert await scheduler.maybe_cleanup() is True

        assert janitor.sweeps == [0, 600_001]

    async def test_failed_sweep_still_waits_for_interval(self, store, blocking, test_settings):
        class FailingJanitor:
            def __init__(self):
                self.calls = 0

            def sweep(self, now=None):
                self.calls += 1
                raise PermissionError("uploads not writable")

        janitor = FailingJanitor()
        clock = Clock(0)
        scheduler = Scheduler(store, blocking, janitor=janitor, settings=test_settings, clock=clock)

        with pytest.raises(PermissionError):
            await scheduler.maybe_cleanup()
        clock.now = 2000
        assert await scheduler.maybe_cleanup() is False

        assert janitor.calls == 1
        assert scheduler.last_cleanup_at == 0

    async def test_no_janitor_no_cleanup(self, store, blocking, test_settings):
        scheduler = Scheduler(store, blocking, settings=test_settings)
        assert await scheduler.maybe_cleanup() is False


class TestRunLoop:
    async def test_loop_survives_errors(self, store, blocking, make_job, test_settings, monkeypatch):
        store.write(make_job(["/in/a.png"]))
        ticks = []

        async def fake_sleep(seconds):
            ticks.append(seconds)
            if len(ticks) == 2:
                scheduler.stop()

        scheduler = Scheduler(store, blocking, settings=test_settings, sleep=fake_sleep)
        original_list = store.list
        calls = {"count": 0}

        def flaky_list():
            calls["count"] += 1
            if calls["count"] == 1:
                raise OSError("directory vanished")
            return original_list()

        monkeypatch.setattr(store, "list", flaky_list)

        await scheduler.run_forever()

        assert ticks == [2.0, 2.0]
        assert store.read("job1").status == JobStatus.RUNNING
        blocking.release.set()
        await scheduler.drain()
        assert blocking.seen == ["job1"]


async def test_end_to_end_tick(store, client_factory, fake_client, test_settings, retry_policy, sleeper, make_image, make_job):
    path = make_image("a.png")
    fake_client.completions.append("https://cdn/final.png")
    store.write(make_job([path]))
    processor = JobProcessor(
        store,
        client_factory=client_factory,
        settings=test_settings,
        retry_policy=retry_policy,
        sleep=sleeper,
    )
    scheduler = Scheduler(store, processor, settings=test_settings)

    await scheduler.tick()
    await scheduler.drain()

    persisted = store.read("job1")
    assert persisted.status == JobStatus.DONE
    assert persisted.outputs[0].url == "https://cdn/final.png"
    assert persisted.started_at is not None
    assert persisted.completed_at >= persisted.started_at
