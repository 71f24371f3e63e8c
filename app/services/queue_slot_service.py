"""Queue slot CRUD: the recurring weekly times the slot allocator draws from."""

import uuid
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, PlanLimitExceededError, ValidationError
from app.db.models.queue_slot import QueueSlot
from app.db.models.social_profile import PLATFORMS
from app.db.models.workspace import Workspace
from app.services.plan_limits import get_tier_limits
from app.services.schedule_slots import parse_time


def _validate_day(day_of_week: int) -> None:
    if not isinstance(day_of_week, int) or not 1 <= day_of_week <= 7:
        raise ValidationError("dayOfWeek must be 1..7 (Mon..Sun)")


def _validate_platform(platform: Optional[str]) -> Optional[str]:
    if platform is None:
        return None
    platform = platform.upper()
    if platform not in PLATFORMS:
        raise ValidationError(f"Unsupported platform: {platform}")
    return platform


def _find_duplicate(
    db: Session,
    workspace_id: uuid.UUID,
    day_of_week: int,
    time: str,
    platform: Optional[str],
    exclude_id: Optional[uuid.UUID] = None,
) -> Optional[QueueSlot]:
    q = db.query(QueueSlot).filter(
        QueueSlot.workspace_id == workspace_id,
        QueueSlot.day_of_week == day_of_week,
        QueueSlot.time == time,
    )
    q = q.filter(QueueSlot.platform.is_(None)) if platform is None else q.filter(QueueSlot.platform == platform)
    if exclude_id is not None:
        q = q.filter(QueueSlot.id != exclude_id)
    return q.first()


def _check_slot_budget(db: Session, workspace: Workspace, adding: int) -> None:
    limits = get_tier_limits(workspace)
    current = db.query(QueueSlot).filter(QueueSlot.workspace_id == workspace.id).count()
    if current + adding > limits.max_queue_slots:
        raise PlanLimitExceededError(
            f"Plan limit reached: {limits.max_queue_slots} slots max.",
            limit_name="maxQueueSlots",
        )


def create_queue_slot(
    db: Session,
    workspace: Workspace,
    day_of_week: int,
    time: str,
    platform: Optional[str] = None,
    capacity: int = 1,
    is_active: bool = True,
) -> QueueSlot:
    _validate_day(day_of_week)
    parse_time(time)
    platform = _validate_platform(platform)
    _check_slot_budget(db, workspace, 1)
    if _find_duplicate(db, workspace.id, day_of_week, time, platform):
        raise ValidationError("A slot already exists for this day/time/platform")

    slot = QueueSlot(
        id=uuid.uuid4(),
        workspace_id=workspace.id,
        day_of_week=day_of_week,
        time=time,
        platform=platform,
        capacity=max(capacity or 1, 1),
        is_active=is_active,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


def list_queue_slots(db: Session, workspace_id: uuid.UUID) -> list[QueueSlot]:
    return (
        db.query(QueueSlot)
        .filter(QueueSlot.workspace_id == workspace_id)
        .order_by(QueueSlot.day_of_week.asc(), QueueSlot.time.asc())
        .all()
    )


def get_queue_slot(db: Session, workspace_id: uuid.UUID, slot_id: uuid.UUID) -> QueueSlot:
    slot = (
        db.query(QueueSlot)
        .filter(QueueSlot.id == slot_id, QueueSlot.workspace_id == workspace_id)
        .first()
    )
    if not slot:
        raise NotFoundError("Queue slot not found")
    return slot


def update_queue_slot(db: Session, workspace_id: uuid.UUID, slot_id: uuid.UUID, payload: dict) -> QueueSlot:
    slot = get_queue_slot(db, workspace_id, slot_id)
    day_of_week = payload.get("dayOfWeek", slot.day_of_week)
    time = payload.get("time", slot.time)
    platform = _validate_platform(payload["platform"]) if "platform" in payload else slot.platform
    _validate_day(day_of_week)
    parse_time(time)
    if _find_duplicate(db, workspace_id, day_of_week, time, platform, exclude_id=slot.id):
        raise ValidationError("A slot already exists for this day/time/platform")

    slot.day_of_week = day_of_week
    slot.time = time
    slot.platform = platform
    if payload.get("capacity") is not None:
        slot.capacity = max(payload["capacity"], 1)
    if payload.get("isActive") is not None:
        slot.is_active = payload["isActive"]
    db.commit()
    db.refresh(slot)
    return slot


def delete_queue_slot(db: Session, workspace_id: uuid.UUID, slot_id: uuid.UUID) -> None:
    slot = get_queue_slot(db, workspace_id, slot_id)
    db.delete(slot)
    db.commit()


def generate_default_slots(
    db: Session,
    workspace: Workspace,
    times: list[str],
    days: Optional[list[int]] = None,
    platform: Optional[str] = None,
) -> list[QueueSlot]:
    """Create one slot per (day, time); existing duplicates are skipped."""
    days = days or [1, 2, 3, 4, 5]
    for day in days:
        _validate_day(day)
    for t in times:
        parse_time(t)
    platform = _validate_platform(platform)
    _check_slot_budget(db, workspace, len(days) * len(times))

    created = []
    for day in days:
        for t in times:
            if _find_duplicate(db, workspace.id, day, t, platform):
                continue
            slot = QueueSlot(
                id=uuid.uuid4(),
                workspace_id=workspace.id,
                day_of_week=day,
                time=t,
                platform=platform,
                capacity=1,
                is_active=True,
            )
            db.add(slot)
            created.append(slot)
    db.commit()
    return created
