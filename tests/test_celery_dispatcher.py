import logging
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from celery.exceptions import Retry
from sqlalchemy.exc import OperationalError

from app.db.models.post import PostStatus
from app.services.job_dispatcher import CeleryJobDispatcher
from app.services.publishing import ChainSummary, LinkOutcome
from app.workers.tasks import publish as publish_task
from app.workers.tasks.publish import publish_post


class FakeRedis:
    """The hash commands the job registry uses, kept in a dict."""

    def __init__(self):
        self.hashes = {}

    def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    def hset(self, name, key, value):
        self.hashes.setdefault(name, {})[key] = value
        return 1

    def hdel(self, name, *keys):
        h = self.hashes.get(name, {})
        return sum(1 for k in keys if h.pop(k, None) is not None)

    def hexists(self, name, key):
        return key in self.hashes.get(name, {})


@pytest.fixture
def sent(monkeypatch):
    calls = []
    monkeypatch.setattr(publish_post, "apply_async", lambda **kwargs: calls.append(kwargs))
    return calls


@pytest.fixture
def revoked():
    return []


@pytest.fixture
def jobs(monkeypatch, sent, revoked):
    dispatcher = CeleryJobDispatcher(client=FakeRedis(), registry_key="test:jobs")
    monkeypatch.setattr(dispatcher, "_revoke", revoked.append)
    monkeypatch.setattr(publish_task, "CeleryJobDispatcher", lambda: dispatcher)
    return dispatcher


def _task_id(jobs, post_id):
    return jobs.redis.hget(jobs.registry_key, str(post_id))


def _fire(post_id, task_id, retries=0):
    publish_post.push_request(id=task_id, retries=retries)
    try:
        return publish_post.run(str(post_id))
    finally:
        publish_post.pop_request()


# ---- dispatcher ----


def test_schedule_registers_countdown_task(jobs, sent):
    post_id = uuid.uuid4()

    jobs.schedule(post_id, datetime.now(timezone.utc) + timedelta(hours=1))

    assert jobs.has_job(post_id)
    assert len(sent) == 1
    assert sent[0]["args"] == [str(post_id)]
    assert sent[0]["task_id"] == _task_id(jobs, post_id)
    assert 3500 < sent[0]["countdown"] <= 3600


def test_past_fire_time_runs_immediately(jobs, sent):
    jobs.schedule(uuid.uuid4(), datetime.now(timezone.utc) - timedelta(minutes=1))

    assert sent[0]["countdown"] == 0


def test_reschedule_replaces_registration_and_revokes_old_task(jobs, sent, revoked):
    post_id = uuid.uuid4()
    jobs.schedule(post_id, datetime.now(timezone.utc) + timedelta(hours=1))
    first = _task_id(jobs, post_id)

    jobs.schedule(post_id, datetime.now(timezone.utc) + timedelta(hours=2))

    second = _task_id(jobs, post_id)
    assert second != first
    assert revoked == [first]
    assert [s["task_id"] for s in sent] == [first, second]
    assert jobs.is_current(str(post_id), second)
    assert not jobs.is_current(str(post_id), first)


def test_cancel(jobs, revoked):
    post_id = uuid.uuid4()
    jobs.cancel(post_id)
    assert revoked == []

    jobs.schedule(post_id, datetime.now(timezone.utc) + timedelta(hours=1))
    task_id = _task_id(jobs, post_id)
    jobs.cancel(post_id)

    assert revoked == [task_id]
    assert not jobs.has_job(post_id)


def test_release_keeps_newer_registration(jobs):
    post_id = uuid.uuid4()
    jobs.schedule(post_id, datetime.now(timezone.utc) + timedelta(hours=1))
    first = _task_id(jobs, post_id)
    jobs.schedule(post_id, datetime.now(timezone.utc) + timedelta(hours=2))
    second = _task_id(jobs, post_id)

    jobs.release(str(post_id), first)
    assert jobs.is_current(str(post_id), second)

    jobs.release(str(post_id), second)
    assert not jobs.has_job(post_id)


# ---- worker task ----


def test_stale_task_is_skipped(jobs, monkeypatch):
    post_id = uuid.uuid4()
    jobs.schedule(post_id, datetime.now(timezone.utc))
    calls = []
    monkeypatch.setattr(publish_task, "publish_post_job", calls.append)

    result = _fire(post_id, "replaced-task-id")

    assert result == {"post_id": str(post_id), "status": "stale"}
    assert calls == []
    assert jobs.has_job(post_id)


def test_task_publishes_and_releases(jobs, monkeypatch):
    post_id = uuid.uuid4()
    jobs.schedule(post_id, datetime.now(timezone.utc))
    summary = ChainSummary(root_id=post_id, links=[LinkOutcome(post_id=post_id, status=PostStatus.PUBLISHED)])
    monkeypatch.setattr(publish_task, "publish_post_job", lambda pid: summary)

    result = _fire(post_id, _task_id(jobs, post_id))

    assert result == {"post_id": str(post_id), "status": PostStatus.PUBLISHED, "links": 1}
    assert not jobs.has_job(post_id)


def _failing_job(pid):
    raise OperationalError("COMMIT", {}, Exception("connection lost"))


@pytest.mark.parametrize("retries,countdown", [(0, 5.0), (1, 10.0)])
def test_infrastructure_error_is_retried_with_backoff(jobs, monkeypatch, retries, countdown):
    post_id = uuid.uuid4()
    jobs.schedule(post_id, datetime.now(timezone.utc))
    monkeypatch.setattr(publish_task, "publish_post_job", _failing_job)
    retry_calls = []

    def fake_retry(**kwargs):
        retry_calls.append(kwargs)
        return Retry()

    monkeypatch.setattr(publish_post, "retry", fake_retry)

    with pytest.raises(Retry):
        _fire(post_id, _task_id(jobs, post_id), retries=retries)

    assert retry_calls[0]["countdown"] == countdown
    assert retry_calls[0]["max_retries"] == 2
    assert isinstance(retry_calls[0]["exc"], OperationalError)
    assert jobs.has_job(post_id)


def test_job_abandoned_after_last_attempt(jobs, monkeypatch, caplog):
    post_id = uuid.uuid4()
    jobs.schedule(post_id, datetime.now(timezone.utc))
    monkeypatch.setattr(publish_task, "publish_post_job", _failing_job)
    monkeypatch.setattr(publish_post, "retry", lambda **kwargs: pytest.fail("no retry after the last attempt"))

    with caplog.at_level(logging.ERROR), pytest.raises(OperationalError):
        _fire(post_id, _task_id(jobs, post_id), retries=2)

    assert "publish_job_abandoned" in caplog.text
    assert not jobs.has_job(post_id)
