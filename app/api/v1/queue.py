"""Queue slots: recurring weekly publishing times, a preview of the next free ones, and clearing the queue."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentUser, CurrentWorkspace, DbSession, Dispatcher
from app.schemas.queue import (
    GenerateDefaultSlotsBody,
    PreviewQueueBody,
    QueueSlotCreateBody,
    QueueSlotResponse,
    QueueSlotUpdateBody,
    SlotPreviewResponse,
)
from app.services import post_service, queue_slot_service
from app.services.schedule_slots import preview_next_slots

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/slots", response_model=list[QueueSlotResponse], response_model_by_alias=True)
def list_slots(db: DbSession, user: CurrentUser, workspace: CurrentWorkspace):
    return queue_slot_service.list_queue_slots(db, workspace.id)


@router.post(
    "/slots",
    response_model=QueueSlotResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_slot(body: QueueSlotCreateBody, db: DbSession, user: CurrentUser, workspace: CurrentWorkspace):
    return queue_slot_service.create_queue_slot(
        db,
        workspace,
        day_of_week=body.dayOfWeek,
        time=body.time,
        platform=body.platform,
        capacity=body.capacity,
        is_active=body.isActive,
    )


@router.post(
    "/slots/defaults",
    response_model=list[QueueSlotResponse],
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def generate_defaults(
    body: GenerateDefaultSlotsBody,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
):
    """Create a slot for every (weekday, time) pair; existing ones are left alone."""
    return queue_slot_service.generate_default_slots(
        db, workspace, times=body.times, days=body.days, platform=body.platform
    )


@router.get("/slots/{slot_id}", response_model=QueueSlotResponse, response_model_by_alias=True)
def get_slot(slot_id: UUID, db: DbSession, user: CurrentUser, workspace: CurrentWorkspace):
    return queue_slot_service.get_queue_slot(db, workspace.id, slot_id)


@router.patch("/slots/{slot_id}", response_model=QueueSlotResponse, response_model_by_alias=True)
def update_slot(
    slot_id: UUID,
    body: QueueSlotUpdateBody,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
):
    return queue_slot_service.update_queue_slot(db, workspace.id, slot_id, body.model_dump(exclude_unset=True))


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(slot_id: UUID, db: DbSession, user: CurrentUser, workspace: CurrentWorkspace):
    queue_slot_service.delete_queue_slot(db, workspace.id, slot_id)


@router.post("/preview", response_model=SlotPreviewResponse)
def preview(body: PreviewQueueBody, db: DbSession, user: CurrentUser, workspace: CurrentWorkspace):
    """Next free slot times; nothing is reserved."""
    results = preview_next_slots(
        db,
        workspace.id,
        count=body.count,
        days=body.days,
        platform=body.platform.upper() if body.platform else None,
        from_=body.from_,
    )
    return SlotPreviewResponse(timezone=workspace.timezone, results=results)


@router.post("/clear")
def clear_queue(
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
    platform: Optional[str] = Query(None),
):
    """Move every future scheduled post back to draft, optionally only those targeting one platform."""
    cleared = post_service.clear_queue(db, dispatcher, workspace.id, platform=platform)
    return {"cleared": cleared}
