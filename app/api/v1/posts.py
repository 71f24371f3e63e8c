"""Post endpoints: create (single and bulk), list, detail, edit, delete."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentUser, CurrentWorkspace, DbSession, Dispatcher
from app.db.models.post import Post
from app.schemas.post import (
    BulkCreateBody,
    DestinationResponse,
    MediaResponse,
    PageMeta,
    PostCreateBody,
    PostListResponse,
    PostResponse,
    PostUpdateBody,
    ProfileSummary,
)
from app.services import post_service

router = APIRouter(prefix="/posts", tags=["posts"])


def _post_response(post: Post) -> PostResponse:
    destinations = []
    for d in post.destinations:
        profile = d.profile
        destinations.append(
            DestinationResponse(
                id=d.id,
                postId=d.post_id,
                profileId=d.profile_id,
                contentOverride=d.content_override,
                status=d.status,
                platformPostId=d.platform_post_id,
                publishedAt=d.published_at,
                error=d.error,
                thread=(d.metadata_ or {}).get("thread", []),
                profile=ProfileSummary(
                    id=profile.id,
                    platform=profile.platform,
                    name=profile.name,
                    username=profile.username,
                    picture=profile.picture,
                    type=profile.type,
                )
                if profile
                else None,
            )
        )
    return PostResponse(
        id=post.id,
        workspaceId=post.workspace_id,
        authorId=post.author_id,
        campaignId=post.campaign_id,
        parentPostId=post.parent_post_id,
        content=post.content,
        contentType=post.content_type,
        status=post.status,
        scheduledAt=post.scheduled_at,
        timezone=post.timezone,
        publishedAt=post.published_at,
        createdAt=post.created_at,
        destinations=destinations,
        media=[
            MediaResponse(
                id=m.id,
                order=m.order,
                mediaFileId=m.media_file_id,
                url=m.media_file.url,
                mimeType=m.media_file.mime_type,
                width=m.media_file.width,
                height=m.media_file.height,
                size=str(m.media_file.size),
            )
            for m in post.media
        ],
    )


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    body: PostCreateBody,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
):
    """Create a post with its destinations, optional approval and thread chain."""
    post = post_service.create_post(db, dispatcher, user, workspace, body)
    return _post_response(post)


@router.post("/bulk", response_model=list[PostResponse], status_code=status.HTTP_201_CREATED)
def bulk_create_posts(
    body: BulkCreateBody,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
):
    """Create many posts at once; the whole batch fails if any post is invalid or the queue is full."""
    posts = post_service.bulk_create_posts(db, dispatcher, user, workspace, body)
    return [_post_response(p) for p in posts]


@router.get("", response_model=PostListResponse)
def list_posts(
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status_: Optional[str] = Query(None, alias="status"),
    contentType: Optional[str] = None,
    search: Optional[str] = None,
):
    result = post_service.list_posts(
        db,
        workspace.id,
        page=page,
        limit=limit,
        status=status_,
        content_type=contentType,
        search=search,
    )
    return PostListResponse(
        data=[_post_response(p) for p in result.items],
        meta=PageMeta(page=result.page, limit=result.limit, total=result.total, totalPages=result.total_pages),
    )


@router.get("/{post_id}", response_model=PostResponse)
def get_post(post_id: UUID, db: DbSession, user: CurrentUser, workspace: CurrentWorkspace):
    return _post_response(post_service.get_post(db, workspace.id, post_id))


@router.patch("/{post_id}", response_model=PostResponse)
def update_post(
    post_id: UUID,
    body: PostUpdateBody,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
):
    post = post_service.update_post(db, dispatcher, workspace, post_id, body)
    return _post_response(post)


@router.delete("/{post_id}")
def delete_post(
    post_id: UUID,
    db: DbSession,
    user: CurrentUser,
    workspace: CurrentWorkspace,
    dispatcher: Dispatcher,
):
    """Delete the post's whole thread, starting from its root."""
    deleted = post_service.delete_post(db, dispatcher, workspace.id, post_id)
    return {"deleted": deleted}
