"""Approval queue: list pending requests, review them, or withdraw your own."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from app.dependencies import CurrentUser, CurrentWorkspace, DbSession, Dispatcher
from app.db.models.approval import PostApproval
from app.schemas.post import ApprovalListResponse, ApprovalResponse, ApprovalReviewBody, PageMeta
from app.services import post_service

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _approval_response(approval: PostApproval) -> ApprovalResponse:
    post = approval.post
    return ApprovalResponse(
        id=approval.id,
        postId=approval.post_id,
        requesterId=approval.requester_id,
        approverId=approval.approver_id,
        status=approval.status,
        notes=approval.notes,
        requestedAt=approval.requested_at,
        reviewedAt=approval.reviewed_at,
        postContent=post.content if post else None,
        postScheduledAt=post.scheduled_at if post else None,
        postContentType=post.content_type if post else None,
    )


@router.get("", response_model=ApprovalListResponse)
def list_pending_approvals(
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
):
    result = post_service.list_pending_approvals(db, workspace.id, page=page, limit=limit)
    return ApprovalListResponse(
        data=[_approval_response(a) for a in result.items],
        meta=PageMeta(page=result.page, limit=result.limit, total=result.total, totalPages=result.total_pages),
    )


@router.post("/{approval_id}/review")
def review_approval(
    approval_id: UUID,
    body: ApprovalReviewBody,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
):
    """Approve (schedules the post, picking a queue slot if its time is missing or stale) or reject (back to draft)."""
    post = post_service.review_approval(db, dispatcher, user, workspace, approval_id, body.status, body.notes)
    return {
        "postId": str(post.id),
        "status": post.status,
        "scheduledAt": post.scheduled_at.isoformat() if post.scheduled_at else None,
    }


@router.delete("/{approval_id}")
def cancel_approval(
    approval_id: UUID,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
):
    post = post_service.cancel_approval(db, dispatcher, user, workspace.id, approval_id)
    return {"postId": str(post.id), "status": post.status}
