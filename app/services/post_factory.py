"""Post aggregate factory: post + media + destinations + approval + thread chain."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.db.models.approval import ApprovalStatus, PostApproval
from app.db.models.campaign import Campaign
from app.db.models.media_file import MediaFile
from app.db.models.post import Post, PostMedia
from app.schemas.post import PostCreateBody, ThreadItemSchema
from app.services.destination_builder import DestinationPayload, save_destinations, thread_payloads


def validate_media(db: Session, workspace_id: uuid.UUID, media_ids: Iterable[uuid.UUID]) -> None:
    ids = set(media_ids)
    if not ids:
        return
    found = {
        r[0]
        for r in db.query(MediaFile.id)
        .filter(MediaFile.id.in_(ids), MediaFile.workspace_id == workspace_id)
        .all()
    }
    missing = ids - found
    if missing:
        raise ValidationError(
            "Unknown media file(s) for this workspace",
            mediaIds=sorted(str(m) for m in missing),
        )


def validate_campaign(db: Session, workspace_id: uuid.UUID, campaign_id: Optional[uuid.UUID]) -> None:
    if campaign_id is None:
        return
    exists = (
        db.query(Campaign.id)
        .filter(Campaign.id == campaign_id, Campaign.workspace_id == workspace_id)
        .first()
    )
    if not exists:
        raise ValidationError("Campaign not found in this workspace")


def validate_references(db: Session, workspace_id: uuid.UUID, body: PostCreateBody) -> None:
    """Everything the aggregate points at must belong to the workspace."""
    media_ids = list(body.mediaIds)
    for item in body.threads:
        media_ids.extend(item.mediaIds)
    validate_media(db, workspace_id, media_ids)
    validate_campaign(db, workspace_id, body.campaignId)


def attach_media(db: Session, post_id: uuid.UUID, media_ids: Iterable[uuid.UUID]) -> None:
    for order, media_id in enumerate(media_ids):
        db.add(PostMedia(id=uuid.uuid4(), post_id=post_id, media_file_id=media_id, order=order))


def create_master_post(
    db: Session,
    author_id: uuid.UUID,
    workspace_id: uuid.UUID,
    body: PostCreateBody,
    status: str,
    scheduled_at: Optional[datetime],
) -> Post:
    post = Post(
        id=uuid.uuid4(),
        workspace_id=workspace_id,
        author_id=author_id,
        campaign_id=body.campaignId,
        content=body.content,
        content_type=body.contentType,
        status=status,
        scheduled_at=scheduled_at,
        timezone=body.timezone,
    )
    db.add(post)
    db.flush()
    attach_media(db, post.id, body.mediaIds)
    return post


def create_thread_post(
    db: Session,
    parent: Post,
    item: ThreadItemSchema,
) -> Post:
    """Chain link: replies to `parent` and inherits its status, time, timezone and campaign."""
    post = Post(
        id=uuid.uuid4(),
        workspace_id=parent.workspace_id,
        author_id=parent.author_id,
        campaign_id=parent.campaign_id,
        parent_post_id=parent.id,
        content=item.content,
        content_type="THREAD",
        status=parent.status,
        scheduled_at=parent.scheduled_at,
        timezone=parent.timezone,
    )
    db.add(post)
    db.flush()
    attach_media(db, post.id, item.mediaIds)
    return post


def create_approval(db: Session, post_id: uuid.UUID, requester_id: uuid.UUID) -> PostApproval:
    approval = PostApproval(
        id=uuid.uuid4(),
        post_id=post_id,
        requester_id=requester_id,
        status=ApprovalStatus.PENDING,
    )
    db.add(approval)
    return approval


def build_post_aggregate(
    db: Session,
    author_id: uuid.UUID,
    workspace_id: uuid.UUID,
    body: PostCreateBody,
    payloads: list[DestinationPayload],
    status: str,
    scheduled_at: Optional[datetime],
) -> list[Post]:
    """
    Stage the full aggregate in the session; returns [root, *chain].
    Does not commit: the caller commits once so the aggregate is all-or-nothing.
    """
    root = create_master_post(db, author_id, workspace_id, body, status, scheduled_at)
    save_destinations(db, root.id, payloads)
    if body.needsApproval:
        create_approval(db, root.id, author_id)

    created = [root]
    chain_targets = thread_payloads(payloads)
    if chain_targets and body.threads:
        previous = root
        for item in body.threads:
            link = create_thread_post(db, previous, item)
            save_destinations(db, link.id, chain_targets)
            created.append(link)
            previous = link
    return created
