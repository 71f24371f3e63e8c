"""Post, destination and approval schemas (camelCase for the FE contract)."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from app.db.models.post import CONTENT_TYPES


def _check_timezone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {v}")
    return v


class ThreadItemSchema(BaseModel):
    content: str
    mediaIds: list[UUID] = Field(default_factory=list)


class PostCreateBody(BaseModel):
    content: str = ""
    contentType: str = "POST"
    profileIds: list[UUID] = Field(min_length=1)
    # keyed by platform (e.g. "LINKEDIN") or by profile id; profile id wins
    overrides: Optional[dict[str, str]] = None
    mediaIds: list[UUID] = Field(default_factory=list)
    scheduledAt: Optional[datetime] = None
    timezone: Optional[str] = None  # interprets a naive scheduledAt
    isAutoSchedule: bool = False
    needsApproval: bool = False
    campaignId: Optional[UUID] = None
    threads: list[ThreadItemSchema] = Field(default_factory=list)

    @field_validator("contentType")
    @classmethod
    def check_content_type(cls, v: str) -> str:
        v = v.upper()
        if v not in CONTENT_TYPES:
            raise ValueError(f"contentType must be one of {', '.join(CONTENT_TYPES)}")
        return v

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class BulkCreateBody(BaseModel):
    posts: list[PostCreateBody] = Field(min_length=1)


class PostUpdateBody(BaseModel):
    content: Optional[str] = None
    scheduledAt: Optional[datetime] = None
    timezone: Optional[str] = None
    isAutoSchedule: bool = False
    mediaIds: Optional[list[UUID]] = None

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class ApprovalReviewBody(BaseModel):
    status: Literal["APPROVED", "REJECTED"]
    notes: Optional[str] = None


class MediaResponse(BaseModel):
    id: UUID
    order: int
    mediaFileId: UUID
    url: str
    mimeType: str
    width: Optional[int] = None
    height: Optional[int] = None
    size: str  # BigInteger as string for JS clients


class ProfileSummary(BaseModel):
    id: UUID
    platform: str
    name: Optional[str] = None
    username: Optional[str] = None
    picture: Optional[str] = None
    type: str


class DestinationResponse(BaseModel):
    id: UUID
    postId: UUID
    profileId: UUID
    contentOverride: Optional[str] = None
    status: str
    platformPostId: Optional[str] = None
    publishedAt: Optional[datetime] = None
    error: Optional[dict[str, Any]] = None
    thread: list[dict[str, Any]] = Field(default_factory=list)
    profile: Optional[ProfileSummary] = None


class PostResponse(BaseModel):
    id: UUID
    workspaceId: UUID
    authorId: UUID
    campaignId: Optional[UUID] = None
    parentPostId: Optional[UUID] = None
    content: str
    contentType: str
    status: str
    scheduledAt: Optional[datetime] = None
    timezone: Optional[str] = None
    publishedAt: Optional[datetime] = None
    createdAt: datetime
    destinations: list[DestinationResponse] = Field(default_factory=list)
    media: list[MediaResponse] = Field(default_factory=list)


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class PostListResponse(BaseModel):
    data: list[PostResponse]
    meta: PageMeta


class ApprovalResponse(BaseModel):
    id: UUID
    postId: UUID
    requesterId: UUID
    approverId: Optional[UUID] = None
    status: str
    notes: Optional[str] = None
    requestedAt: datetime
    reviewedAt: Optional[datetime] = None
    postContent: Optional[str] = None
    postScheduledAt: Optional[datetime] = None
    postContentType: Optional[str] = None


class ApprovalListResponse(BaseModel):
    data: list[ApprovalResponse]
    meta: PageMeta
