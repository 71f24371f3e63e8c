"""
Post lifecycle: create, bulk create, edit, delete, list, and the approval review flow.

Every write commits the whole aggregate in one transaction; publish jobs are
scheduled or cancelled only after that commit succeeds.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from app.config import get_settings
from app.core.exceptions import (
    CapacityError,
    ConflictError,
    FeatureLockedError,
    NotFoundError,
    PermissionDeniedError,
    PlanLimitExceededError,
    ValidationError,
)
from app.db.models.approval import ApprovalStatus, PostApproval
from app.db.models.post import Post, PostDestination, PostMedia, PostStatus
from app.db.models.social_profile import SocialProfile
from app.db.models.user import User
from app.db.models.workspace import Workspace
from app.schemas.post import BulkCreateBody, PostCreateBody, PostUpdateBody
from app.services.destination_builder import DestinationPayload, prepare_payloads
from app.services.job_dispatcher import JobDispatcher
from app.services.plan_limits import WorkspaceCapabilities, get_capabilities, get_tier_limits
from app.services.post_factory import attach_media, build_post_aggregate, validate_media, validate_references
from app.services.schedule_slots import get_next_available_slots, resolve_zone

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PreparedPost:
    body: PostCreateBody
    payloads: list[DestinationPayload]
    status: str
    scheduled_at: Optional[datetime]


@dataclass
class Page:
    items: list
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


# ---- scheduling rules ----


def resolve_schedule(
    scheduled_at: Optional[datetime],
    tz_name: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Normalize a caller-supplied time to UTC.

    A naive value is wall-clock time in `tz_name` (UTC when absent). Anything earlier
    than now minus the configured tolerance is rejected.
    """
    if scheduled_at is None:
        return None
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=resolve_zone(tz_name))
    scheduled_at = scheduled_at.astimezone(timezone.utc)
    now = now or _utcnow()
    tolerance = timedelta(minutes=get_settings().past_schedule_tolerance_minutes)
    if scheduled_at < now - tolerance:
        raise ValidationError("Scheduled time is in the past.", scheduledAt=scheduled_at.isoformat())
    return scheduled_at


def decide_status(needs_approval: bool, scheduled_at: Optional[datetime]) -> str:
    if needs_approval:
        return PostStatus.PENDING_APPROVAL
    if scheduled_at is not None:
        return PostStatus.SCHEDULED
    return PostStatus.DRAFT


def check_capabilities(body: PostCreateBody, capabilities: WorkspaceCapabilities) -> None:
    if body.needsApproval and not capabilities.approval_workflow:
        raise FeatureLockedError(
            "Upgrade to Business Plan to use Approval Workflows",
            required_plan="BUSINESS",
            current_plan=capabilities.tier,
        )
    if body.campaignId and not capabilities.campaigns:
        raise FeatureLockedError(
            "Upgrade to Rocket Plan to use Campaigns",
            required_plan="ROCKET",
            current_plan=capabilities.tier,
        )


def sync_job(dispatcher: JobDispatcher, post: Post) -> None:
    """Make the job store agree with a committed root post."""
    if post.parent_post_id is not None:
        return
    if post.status == PostStatus.SCHEDULED and post.scheduled_at is not None:
        dispatcher.schedule(post.id, post.scheduled_at)
    else:
        dispatcher.cancel(post.id)


def _prepare(
    db: Session,
    workspace: Workspace,
    body: PostCreateBody,
    scheduled_at: Optional[datetime],
) -> PreparedPost:
    validate_references(db, workspace.id, body)
    payloads = prepare_payloads(db, workspace.id, body.profileIds, body.overrides)
    return PreparedPost(
        body=body,
        payloads=payloads,
        status=decide_status(body.needsApproval, scheduled_at),
        scheduled_at=scheduled_at,
    )


# ---- create ----


def create_post(
    db: Session,
    dispatcher: JobDispatcher,
    actor: User,
    workspace: Workspace,
    body: PostCreateBody,
    now: Optional[datetime] = None,
) -> Post:
    capabilities = get_capabilities(workspace)
    now = now or _utcnow()
    check_capabilities(body, capabilities)

    if body.isAutoSchedule:
        slots = get_next_available_slots(db, workspace.id, 1, now=now)
        if not slots:
            raise CapacityError("No available queue slots found.")
        scheduled_at = slots[0]
    else:
        scheduled_at = resolve_schedule(body.scheduledAt, body.timezone, now)

    prepared = _prepare(db, workspace, body, scheduled_at)
    try:
        created = build_post_aggregate(
            db, actor.id, workspace.id, body, prepared.payloads, prepared.status, scheduled_at
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    root = created[0]
    logger.info(
        "post_created post_id=%s workspace_id=%s status=%s links=%s destinations=%s",
        root.id,
        workspace.id,
        root.status,
        len(created),
        len(prepared.payloads),
    )
    sync_job(dispatcher, root)
    return root


def bulk_create_posts(
    db: Session,
    dispatcher: JobDispatcher,
    actor: User,
    workspace: Workspace,
    body: BulkCreateBody,
    now: Optional[datetime] = None,
) -> list[Post]:
    """All-or-nothing: every post is shaped before anything is written."""
    capabilities = get_capabilities(workspace)
    now = now or _utcnow()
    limits = get_tier_limits(workspace)
    if len(body.posts) > limits.max_bulk_posts:
        raise PlanLimitExceededError(
            f"Bulk scheduling is limited to {limits.max_bulk_posts} posts on your plan.",
            limit_name="maxBulkPosts",
        )
    for item in body.posts:
        check_capabilities(item, capabilities)

    auto_count = sum(1 for p in body.posts if p.isAutoSchedule)
    slots: list[datetime] = []
    if auto_count:
        slots = get_next_available_slots(db, workspace.id, auto_count, now=now)
        if len(slots) < auto_count:
            raise CapacityError(
                f"Queue is full: requested {auto_count} auto-slots but only got {len(slots)}.",
                requested=auto_count,
                available=len(slots),
            )

    prepared: list[PreparedPost] = []
    slot_iter = iter(slots)
    for index, item in enumerate(body.posts):
        try:
            scheduled_at = (
                next(slot_iter) if item.isAutoSchedule else resolve_schedule(item.scheduledAt, item.timezone, now)
            )
            prepared.append(_prepare(db, workspace, item, scheduled_at))
        except ValidationError as e:
            e.extra.setdefault("index", index)
            raise

    roots: list[Post] = []
    try:
        for item in prepared:
            created = build_post_aggregate(
                db, actor.id, workspace.id, item.body, item.payloads, item.status, item.scheduled_at
            )
            roots.append(created[0])
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("posts_bulk_created workspace_id=%s count=%s auto=%s", workspace.id, len(roots), auto_count)
    for root in roots:
        sync_job(dispatcher, root)
    return roots


# ---- read ----


def get_post(db: Session, workspace_id: uuid.UUID, post_id: uuid.UUID) -> Post:
    post = (
        db.query(Post)
        .options(
            selectinload(Post.destinations).joinedload(PostDestination.profile),
            selectinload(Post.media).joinedload(PostMedia.media_file),
        )
        .filter(Post.id == post_id, Post.workspace_id == workspace_id)
        .first()
    )
    if post is None:
        raise NotFoundError("Post not found")
    return post


def _page_args(page: int, limit: Optional[int]) -> tuple[int, int]:
    settings = get_settings()
    page = max(page, 1)
    limit = min(max(limit or settings.default_page_size, 1), settings.max_page_size)
    return page, limit


def list_posts(
    db: Session,
    workspace_id: uuid.UUID,
    page: int = 1,
    limit: Optional[int] = None,
    status: Optional[str] = None,
    content_type: Optional[str] = None,
    search: Optional[str] = None,
) -> Page:
    page, limit = _page_args(page, limit)
    q = db.query(Post).filter(Post.workspace_id == workspace_id)
    if status:
        status = status.upper()
        if status not in PostStatus.ALL:
            raise ValidationError(f"Unknown status: {status}")
        q = q.filter(Post.status == status)
    if content_type:
        q = q.filter(Post.content_type == content_type.upper())
    if search:
        q = q.filter(Post.content.ilike(f"%{search}%"))
    total = q.count()
    items = (
        q.options(
            selectinload(Post.destinations).joinedload(PostDestination.profile),
            selectinload(Post.media).joinedload(PostMedia.media_file),
        )
        .order_by(Post.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, page=page, limit=limit, total=total)


# ---- update / delete ----


def _descendant_ids(db: Session, root_id: uuid.UUID) -> list[uuid.UUID]:
    """Root plus every chain link below it, breadth-first."""
    ids = [root_id]
    frontier = deque([root_id])
    while frontier:
        parent_id = frontier.popleft()
        children = [r[0] for r in db.query(Post.id).filter(Post.parent_post_id == parent_id).all()]
        ids.extend(children)
        frontier.extend(children)
    return ids


def update_post(
    db: Session,
    dispatcher: JobDispatcher,
    workspace: Workspace,
    post_id: uuid.UUID,
    body: PostUpdateBody,
    now: Optional[datetime] = None,
) -> Post:
    post = db.query(Post).filter(Post.id == post_id, Post.workspace_id == workspace.id).first()
    if post is None:
        raise NotFoundError("Post not found")
    if post.status in PostStatus.LOCKED:
        raise ConflictError("Cannot edit a post in progress")

    reschedules = body.isAutoSchedule or body.scheduledAt is not None
    if post.parent_post_id is not None and reschedules:
        raise ValidationError("Thread replies follow the schedule of their first post")

    now = now or _utcnow()
    scheduled_at = post.scheduled_at
    if body.isAutoSchedule:
        slots = get_next_available_slots(db, workspace.id, 1, now=now)
        if not slots:
            raise CapacityError("No available queue slots.")
        scheduled_at = slots[0]
    elif body.scheduledAt is not None:
        scheduled_at = resolve_schedule(body.scheduledAt, body.timezone or post.timezone, now)

    if body.mediaIds is not None:
        validate_media(db, workspace.id, body.mediaIds)

    try:
        if body.content is not None:
            post.content = body.content
        if body.timezone is not None:
            post.timezone = body.timezone
        post.scheduled_at = scheduled_at
        # approval gate: an edit never moves a post out of review
        if post.status != PostStatus.PENDING_APPROVAL and reschedules:
            post.status = PostStatus.SCHEDULED

        if body.mediaIds is not None:
            db.query(PostMedia).filter(PostMedia.post_id == post.id).delete(synchronize_session="fetch")
            attach_media(db, post.id, body.mediaIds)

        if post.parent_post_id is None:
            child_ids = _descendant_ids(db, post.id)[1:]
            if child_ids:
                db.query(Post).filter(Post.id.in_(child_ids)).update(
                    {Post.scheduled_at: post.scheduled_at, Post.status: post.status},
                    synchronize_session="fetch",
                )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.expire(post, ["media"])
    logger.info("post_updated post_id=%s status=%s scheduled_at=%s", post.id, post.status, post.scheduled_at)
    sync_job(dispatcher, post)
    return post


def delete_post(db: Session, dispatcher: JobDispatcher, workspace_id: uuid.UUID, post_id: uuid.UUID) -> int:
    """Deleting any link deletes the whole thread from its root. Returns the number of posts removed."""
    post = db.query(Post).filter(Post.id == post_id, Post.workspace_id == workspace_id).first()
    if post is None:
        raise NotFoundError("Post not found")

    root_id = post.id
    while post.parent_post_id is not None:
        post = db.get(Post, post.parent_post_id)
        root_id = post.id

    ids = _descendant_ids(db, root_id)
    try:
        db.query(Post).filter(Post.workspace_id == workspace_id, Post.id.in_(ids)).delete(
            synchronize_session="fetch"
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    dispatcher.cancel(root_id)
    logger.info("post_deleted root_id=%s removed=%s", root_id, len(ids))
    return len(ids)


def clear_queue(
    db: Session,
    dispatcher: JobDispatcher,
    workspace_id: uuid.UUID,
    platform: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Move every future SCHEDULED thread back to DRAFT and drop its job. Returns the roots cleared."""
    now = now or _utcnow()
    q = db.query(Post.id).filter(
        Post.workspace_id == workspace_id,
        Post.parent_post_id.is_(None),
        Post.status == PostStatus.SCHEDULED,
        Post.scheduled_at >= now,
    )
    if platform:
        q = q.filter(Post.destinations.any(PostDestination.profile.has(SocialProfile.platform == platform.upper())))
    root_ids = [r[0] for r in q.all()]
    if not root_ids:
        return 0

    ids = [i for root_id in root_ids for i in _descendant_ids(db, root_id)]
    try:
        db.query(Post).filter(Post.id.in_(ids), Post.status == PostStatus.SCHEDULED).update(
            {Post.status: PostStatus.DRAFT, Post.scheduled_at: None},
            synchronize_session="fetch",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    for root_id in root_ids:
        dispatcher.cancel(root_id)
    logger.info(
        "queue_cleared workspace_id=%s platform=%s roots=%s posts=%s",
        workspace_id,
        platform,
        len(root_ids),
        len(ids),
    )
    return len(root_ids)


# ---- approvals ----


def list_pending_approvals(
    db: Session,
    workspace_id: uuid.UUID,
    page: int = 1,
    limit: Optional[int] = None,
) -> Page:
    page, limit = _page_args(page, limit)
    q = (
        db.query(PostApproval)
        .join(Post, PostApproval.post_id == Post.id)
        .filter(Post.workspace_id == workspace_id, PostApproval.status == ApprovalStatus.PENDING)
    )
    total = q.count()
    items = (
        q.options(joinedload(PostApproval.post))
        .order_by(PostApproval.requested_at.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, page=page, limit=limit, total=total)


def _get_approval(db: Session, workspace_id: uuid.UUID, approval_id: uuid.UUID) -> PostApproval:
    approval = (
        db.query(PostApproval)
        .join(Post, PostApproval.post_id == Post.id)
        .filter(PostApproval.id == approval_id, Post.workspace_id == workspace_id)
        .first()
    )
    if approval is None:
        raise NotFoundError("Approval request not found")
    return approval


def review_approval(
    db: Session,
    dispatcher: JobDispatcher,
    approver: User,
    workspace: Workspace,
    approval_id: uuid.UUID,
    status: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Post:
    approval = _get_approval(db, workspace.id, approval_id)
    if approval.status != ApprovalStatus.PENDING:
        raise ConflictError("Already reviewed")
    if status not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
        raise ValidationError("status must be APPROVED or REJECTED")

    now = now or _utcnow()
    post = approval.post
    scheduled_at = post.scheduled_at
    if status == ApprovalStatus.APPROVED:
        missing = scheduled_at is None
        stale = not missing and scheduled_at < now
        if missing or stale:
            slots = get_next_available_slots(db, workspace.id, 1, now=now)
            if slots:
                scheduled_at = slots[0]
            elif missing:
                raise CapacityError("No available queue slots to schedule this post.")
            else:
                scheduled_at = now

    try:
        approval.status = status
        approval.approver_id = approver.id
        approval.reviewed_at = now
        approval.notes = notes
        if status == ApprovalStatus.APPROVED:
            post.status = PostStatus.SCHEDULED
            post.scheduled_at = scheduled_at
        else:
            post.status = PostStatus.DRAFT
        child_ids = _descendant_ids(db, post.id)[1:]
        if child_ids:
            db.query(Post).filter(Post.id.in_(child_ids)).update(
                {Post.scheduled_at: post.scheduled_at, Post.status: post.status},
                synchronize_session="fetch",
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "approval_reviewed approval_id=%s post_id=%s status=%s scheduled_at=%s",
        approval.id,
        post.id,
        status,
        post.scheduled_at,
    )
    sync_job(dispatcher, post)
    return post


def cancel_approval(
    db: Session,
    dispatcher: JobDispatcher,
    actor: User,
    workspace_id: uuid.UUID,
    approval_id: uuid.UUID,
) -> Post:
    approval = _get_approval(db, workspace_id, approval_id)
    if approval.requester_id != actor.id:
        raise PermissionDeniedError("You are not authorized to cancel this request.")
    if approval.status != ApprovalStatus.PENDING:
        raise ConflictError("Already reviewed")

    post = approval.post
    try:
        db.delete(approval)
        post.status = PostStatus.DRAFT
        child_ids = _descendant_ids(db, post.id)[1:]
        if child_ids:
            db.query(Post).filter(Post.id.in_(child_ids)).update(
                {Post.status: PostStatus.DRAFT},
                synchronize_session="fetch",
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("approval_cancelled approval_id=%s post_id=%s", approval_id, post.id)
    sync_job(dispatcher, post)
    return post
