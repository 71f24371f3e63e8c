import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.db.models import Post, QueueSlot
from app.db.models.post import PostStatus
from app.services.schedule_slots import (
    CollisionPolicy,
    expand_candidates,
    get_next_available_slots,
    parse_time,
    preview_next_slots,
)

# Monday
NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)


def _scheduled(db_session, workspace, author, when, status=PostStatus.SCHEDULED, parent=None):
    post = Post(
        id=uuid.uuid4(),
        workspace_id=workspace.id,
        author_id=author.id,
        parent_post_id=parent,
        content="queued",
        status=status,
        scheduled_at=when,
    )
    db_session.add(post)
    db_session.commit()
    return post


def test_parse_time_rejects_loose_formats():
    assert parse_time("09:30") == (9, 30)
    for bad in ("9:30", "24:00", "09:60", "0930", ""):
        with pytest.raises(ValidationError):
            parse_time(bad)


def test_expand_candidates_uses_workspace_timezone():
    slot = QueueSlot(day_of_week=1, time="09:00", capacity=1)
    out = list(expand_candidates([slot], "America/New_York", NOW, NOW + timedelta(days=2)))
    assert out == [(datetime(2030, 1, 7, 14, 0, tzinfo=timezone.utc), 1)]


def test_next_slots_strictly_increasing_future_and_free(db_session, workspace, author, daily_slots):
    committed = _scheduled(db_session, workspace, author, datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc))

    slots = get_next_available_slots(db_session, workspace.id, 5, now=NOW)

    assert len(slots) == 5
    assert all(s > NOW for s in slots)
    assert all(a < b for a, b in zip(slots, slots[1:]))
    assert committed.scheduled_at not in slots
    assert slots[0] == datetime(2030, 1, 7, 17, 0, tzinfo=timezone.utc)


def test_drafts_and_thread_links_do_not_occupy_slots(db_session, workspace, author, daily_slots):
    nine = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)
    root = _scheduled(db_session, workspace, author, nine, status=PostStatus.DRAFT)
    _scheduled(db_session, workspace, author, nine, parent=root.id)

    assert get_next_available_slots(db_session, workspace.id, 1, now=NOW) == [nine]


def test_slot_capacity_allows_sharing(db_session, workspace, author):
    db_session.add(QueueSlot(id=uuid.uuid4(), workspace_id=workspace.id, day_of_week=1, time="09:00", capacity=2))
    db_session.commit()
    nine = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)
    _scheduled(db_session, workspace, author, nine)

    assert get_next_available_slots(db_session, workspace.id, 1, now=NOW) == [nine]


def test_collision_window_blocks_nearby_posts(db_session, workspace, author, daily_slots):
    _scheduled(db_session, workspace, author, datetime(2030, 1, 7, 9, 10, tzinfo=timezone.utc))

    exact = get_next_available_slots(db_session, workspace.id, 1, now=NOW, policy=CollisionPolicy(0))
    windowed = get_next_available_slots(db_session, workspace.id, 1, now=NOW, policy=CollisionPolicy(15))

    assert exact == [datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)]
    assert windowed == [datetime(2030, 1, 7, 17, 0, tzinfo=timezone.utc)]


def test_horizon_limits_result(db_session, workspace, daily_slots):
    workspace.limits = {"maxAutoScheduleDays": 1}
    db_session.commit()

    slots = get_next_available_slots(db_session, workspace.id, 10, now=NOW)

    assert slots == [
        datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc),
        datetime(2030, 1, 7, 17, 0, tzinfo=timezone.utc),
    ]


def test_queue_depth_budget(db_session, workspace, author, daily_slots):
    workspace.limits = {"maxQueuedPosts": 2}
    db_session.commit()
    _scheduled(db_session, workspace, author, datetime(2030, 2, 1, 9, 0, tzinfo=timezone.utc))

    assert len(get_next_available_slots(db_session, workspace.id, 5, now=NOW)) == 1

    _scheduled(db_session, workspace, author, datetime(2030, 2, 2, 9, 0, tzinfo=timezone.utc))
    assert get_next_available_slots(db_session, workspace.id, 5, now=NOW) == []


def test_no_slots_returns_empty(db_session, workspace):
    assert get_next_available_slots(db_session, workspace.id, 3, now=NOW) == []


def test_platform_specific_slots(db_session, workspace):
    db_session.add_all(
        [
            QueueSlot(id=uuid.uuid4(), workspace_id=workspace.id, day_of_week=1, time="10:00", platform="LINKEDIN"),
            QueueSlot(id=uuid.uuid4(), workspace_id=workspace.id, day_of_week=1, time="11:00"),
        ]
    )
    db_session.commit()

    twitter = get_next_available_slots(db_session, workspace.id, 1, platform="TWITTER", now=NOW)
    linkedin = get_next_available_slots(db_session, workspace.id, 1, platform="LINKEDIN", now=NOW)

    assert twitter == [datetime(2030, 1, 7, 11, 0, tzinfo=timezone.utc)]
    assert linkedin == [datetime(2030, 1, 7, 10, 0, tzinfo=timezone.utc)]


def test_preview_does_not_reserve(db_session, workspace, daily_slots):
    first = preview_next_slots(db_session, workspace.id, count=3, from_=NOW)
    second = preview_next_slots(db_session, workspace.id, count=3, from_=NOW)

    assert first == second
    assert len(first) == 3


def test_preview_without_slots_is_an_error(db_session, workspace):
    with pytest.raises(ValidationError):
        preview_next_slots(db_session, workspace.id, from_=NOW)


def test_post_awaiting_approval_holds_its_slot(db_session, workspace, author, daily_slots):
    nine = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)
    _scheduled(db_session, workspace, author, nine, status=PostStatus.PENDING_APPROVAL)

    assert get_next_available_slots(db_session, workspace.id, 1, now=NOW) == [
        datetime(2030, 1, 7, 17, 0, tzinfo=timezone.utc)
    ]
