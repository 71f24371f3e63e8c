"""Slot allocator: compute future publish instants from a workspace's queue slots."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.db.models.post import Post, PostStatus
from app.db.models.queue_slot import QueueSlot
from app.db.models.workspace import Workspace
from app.services.plan_limits import get_tier_limits

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# a post waiting for approval keeps the time it was given, so it holds its slot too
SLOT_HOLDING_STATUSES = (PostStatus.SCHEDULED, PostStatus.PENDING_APPROVAL)


def parse_time(s: str) -> tuple[int, int]:
    """Parse strict 24h 'HH:MM' to (hour, minute)."""
    m = _TIME_RE.match(s or "")
    if not m:
        raise ValidationError("time must be HH:MM (24h)")
    return int(m.group(1)), int(m.group(2))


def resolve_zone(tz_name: Optional[str]) -> ZoneInfo | timezone:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


@dataclass(frozen=True)
class CollisionPolicy:
    """How close two instants may be before they compete for the same slot.

    window_minutes=0 means only identical timestamps collide.
    """

    window_minutes: int = 0

    @classmethod
    def from_settings(cls) -> "CollisionPolicy":
        return cls(window_minutes=get_settings().slot_collision_window_minutes)

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    def collides(self, candidate: datetime, committed: datetime) -> bool:
        if self.window_minutes == 0:
            return candidate == committed
        return abs(candidate - committed) <= self.window

    def usage(self, candidate: datetime, committed: Iterable[datetime]) -> int:
        return sum(1 for c in committed if self.collides(candidate, c))


def _slots_by_weekday(slots: Iterable[QueueSlot]) -> dict[int, list[tuple[int, int, int]]]:
    """isoweekday -> [(hour, minute, capacity)] sorted by time."""
    out: dict[int, list[tuple[int, int, int]]] = {}
    for slot in slots:
        hour, minute = parse_time(slot.time)
        out.setdefault(slot.day_of_week, []).append((hour, minute, max(slot.capacity or 1, 1)))
    for day_slots in out.values():
        day_slots.sort()
    return out


def expand_candidates(
    slots: Iterable[QueueSlot],
    tz_name: Optional[str],
    start: datetime,
    end: datetime,
) -> Iterator[tuple[datetime, int]]:
    """Yield (instant in UTC, capacity) for every slot occurrence in (start, end), ascending."""
    tz = resolve_zone(tz_name)
    by_day = _slots_by_weekday(slots)
    if not by_day:
        return
    day: date = start.astimezone(tz).date()
    last_day: date = end.astimezone(tz).date()
    while day <= last_day:
        for hour, minute, capacity in by_day.get(day.isoweekday(), []):
            candidate = datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz).astimezone(timezone.utc)
            if candidate <= start or candidate >= end:
                continue
            yield candidate, capacity
        day += timedelta(days=1)


def get_active_slots(db: Session, workspace_id: uuid.UUID, platform: Optional[str] = None) -> list[QueueSlot]:
    q = db.query(QueueSlot).filter(QueueSlot.workspace_id == workspace_id, QueueSlot.is_active.is_(True))
    if platform is not None:
        q = q.filter((QueueSlot.platform == platform) | (QueueSlot.platform.is_(None)))
    return q.all()


def get_committed_times(
    db: Session,
    workspace_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> list[datetime]:
    """scheduledAt of root posts holding a slot in [start, end). Thread links share their root's time."""
    rows = (
        db.query(Post.scheduled_at)
        .filter(
            Post.workspace_id == workspace_id,
            Post.status.in_(SLOT_HOLDING_STATUSES),
            Post.parent_post_id.is_(None),
            Post.scheduled_at.isnot(None),
            Post.scheduled_at >= start,
            Post.scheduled_at < end,
        )
        .all()
    )
    return [r[0] for r in rows]


def count_queued_posts(db: Session, workspace_id: uuid.UUID) -> int:
    return (
        db.query(Post)
        .filter(
            Post.workspace_id == workspace_id,
            Post.status == PostStatus.SCHEDULED,
            Post.parent_post_id.is_(None),
        )
        .count()
    )


def _pick_free(
    candidates: Iterable[tuple[datetime, int]],
    committed: list[datetime],
    count: int,
    policy: CollisionPolicy,
) -> list[datetime]:
    results: list[datetime] = []
    for candidate, capacity in candidates:
        if len(results) >= count:
            break
        if results and candidate <= results[-1]:
            continue
        if policy.usage(candidate, committed) < capacity:
            results.append(candidate)
            # reserve in-memory so the next pick does not reuse it
            committed.append(candidate)
    return results


def _get_workspace(db: Session, workspace_id: uuid.UUID) -> Workspace:
    workspace = db.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace not found")
    return workspace


def get_next_available_slots(
    db: Session,
    workspace_id: uuid.UUID,
    count: int,
    platform: Optional[str] = None,
    now: Optional[datetime] = None,
    policy: Optional[CollisionPolicy] = None,
) -> list[datetime]:
    """
    Return up to `count` strictly increasing future instants (UTC) for auto-scheduling.

    Bounded by the tier's queue depth and look-ahead horizon. A short result means the
    queue is full; callers must fail the request instead of picking a default time.
    """
    if count <= 0:
        return []
    workspace = _get_workspace(db, workspace_id)
    limits = get_tier_limits(workspace)
    policy = policy or CollisionPolicy.from_settings()
    now = now or datetime.now(timezone.utc)

    budget = limits.max_queued_posts - count_queued_posts(db, workspace_id)
    if budget <= 0:
        logger.warning(
            "slot_budget_exhausted workspace_id=%s max_queued_posts=%s",
            workspace_id,
            limits.max_queued_posts,
        )
        return []
    wanted = min(count, budget)

    slots = get_active_slots(db, workspace_id, platform)
    if not slots:
        return []

    end = now + timedelta(days=limits.max_auto_schedule_days)
    committed = get_committed_times(db, workspace_id, now - policy.window, end + policy.window)
    results = _pick_free(expand_candidates(slots, workspace.timezone, now, end), committed, wanted, policy)
    if len(results) < count:
        logger.info(
            "slot_shortfall workspace_id=%s requested=%s found=%s",
            workspace_id,
            count,
            len(results),
        )
    return results


def preview_next_slots(
    db: Session,
    workspace_id: uuid.UUID,
    count: int = 10,
    days: int = 30,
    platform: Optional[str] = None,
    from_: Optional[datetime] = None,
    policy: Optional[CollisionPolicy] = None,
) -> list[datetime]:
    """Candidate times for the UI; ignores queue depth and does not reserve anything."""
    workspace = _get_workspace(db, workspace_id)
    policy = policy or CollisionPolicy.from_settings()
    count = min(max(count, 1), 50)
    days = min(max(days, 1), 90)
    start = from_ or datetime.now(timezone.utc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=resolve_zone(workspace.timezone))
    end = start + timedelta(days=days)

    slots = get_active_slots(db, workspace_id, platform)
    if not slots:
        raise ValidationError("No active queue slots found")
    committed = get_committed_times(db, workspace_id, start - policy.window, end + policy.window)
    return _pick_free(expand_candidates(slots, workspace.timezone, start, end), committed, count, policy)
