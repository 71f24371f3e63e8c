import uuid
from datetime import datetime, timedelta, timezone

from app.services.job_dispatcher import InMemoryJobDispatcher, backoff_delay

T0 = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


class Handler:
    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = []

    def __call__(self, post_id):
        self.calls.append(post_id)
        if len(self.calls) <= self.failures:
            raise RuntimeError("database went away")


def test_backoff_is_exponential():
    assert [backoff_delay(n, 5).total_seconds() for n in (1, 2, 3)] == [5, 10, 20]


def test_schedule_replaces_existing_job():
    dispatcher = InMemoryJobDispatcher(Handler())
    post_id = uuid.uuid4()

    dispatcher.schedule(post_id, T0)
    dispatcher.schedule(post_id, T0 + timedelta(hours=2))

    assert len(dispatcher.jobs) == 1
    assert dispatcher.get(post_id).fire_at == T0 + timedelta(hours=2)


def test_cancel_is_idempotent():
    dispatcher = InMemoryJobDispatcher(Handler())
    post_id = uuid.uuid4()
    dispatcher.schedule(post_id, T0)

    dispatcher.cancel(post_id)
    dispatcher.cancel(post_id)

    assert not dispatcher.has_job(post_id)


def test_only_due_jobs_run():
    handler = Handler()
    dispatcher = InMemoryJobDispatcher(handler)
    due, later = uuid.uuid4(), uuid.uuid4()
    dispatcher.schedule(due, T0)
    dispatcher.schedule(later, T0 + timedelta(minutes=1))

    assert dispatcher.run_due(T0) == [due]
    assert handler.calls == [due]
    assert dispatcher.has_job(later)


def test_retry_then_success():
    handler = Handler(failures=1)
    dispatcher = InMemoryJobDispatcher(handler, max_attempts=3, backoff_seconds=5)
    post_id = uuid.uuid4()
    dispatcher.schedule(post_id, T0)

    assert dispatcher.run_due(T0) == []
    assert dispatcher.get(post_id).fire_at == T0 + timedelta(seconds=5)
    assert dispatcher.run_due(T0 + timedelta(seconds=4)) == []
    assert dispatcher.run_due(T0 + timedelta(seconds=5)) == [post_id]
    assert not dispatcher.has_job(post_id)


def test_job_abandoned_after_three_attempts(caplog):
    handler = Handler(failures=10)
    dispatcher = InMemoryJobDispatcher(handler, max_attempts=3, backoff_seconds=5)
    post_id = uuid.uuid4()
    dispatcher.schedule(post_id, T0)

    now = T0
    for _ in range(5):
        dispatcher.run_due(now)
        now += timedelta(minutes=1)

    assert len(handler.calls) == 3
    assert not dispatcher.has_job(post_id)
    assert "publish_job_abandoned" in caplog.text


def test_reschedule_during_run_is_kept():
    dispatcher = None
    post_id = uuid.uuid4()

    def handler(pid):
        dispatcher.schedule(pid, T0 + timedelta(days=1))

    dispatcher = InMemoryJobDispatcher(handler)
    dispatcher.schedule(post_id, T0)

    dispatcher.run_due(T0)

    assert dispatcher.get(post_id).fire_at == T0 + timedelta(days=1)
