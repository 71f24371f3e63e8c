"""Post aggregate: Post, its ordered media links and per-profile destinations."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, JSONType, UTCDateTime

if TYPE_CHECKING:
    from app.db.models.approval import PostApproval
    from app.db.models.media_file import MediaFile
    from app.db.models.social_profile import SocialProfile
    from app.db.models.user import User


class PostStatus:
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    SCHEDULED = "SCHEDULED"
    PUBLISHING = "PUBLISHING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"

    ALL = (DRAFT, PENDING_APPROVAL, SCHEDULED, PUBLISHING, PUBLISHED, FAILED)
    LOCKED = (PUBLISHING, PUBLISHED)


class DestinationStatus:
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


CONTENT_TYPES = ("POST", "STORY", "REEL", "THREAD", "CAROUSEL")


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        "workspaceId",
        UUID(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        "authorId",
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    campaign_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        "campaignId",
        UUID(as_uuid=True),
        ForeignKey("campaigns.id", ondelete="SET NULL"),
        nullable=True,
    )
    parent_post_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        "parentPostId",
        UUID(as_uuid=True),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    content_type: Mapped[str] = mapped_column("contentType", String(20), default="POST", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=PostStatus.DRAFT,
        nullable=False,
        index=True,
    )
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(
        "scheduledAt",
        UTCDateTime(),
        nullable=True,
    )
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        "publishedAt",
        UTCDateTime(),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        "createdAt",
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        "updatedAt",
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    author: Mapped["User"] = relationship("User", foreign_keys=[author_id])
    parent_post: Mapped[Optional["Post"]] = relationship(
        "Post", remote_side=[id], back_populates="child_posts"
    )
    child_posts: Mapped[List["Post"]] = relationship(
        "Post", back_populates="parent_post", passive_deletes=True
    )
    media: Mapped[List["PostMedia"]] = relationship(
        "PostMedia",
        back_populates="post",
        order_by="PostMedia.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    destinations: Mapped[List["PostDestination"]] = relationship(
        "PostDestination",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    approvals: Mapped[List["PostApproval"]] = relationship(
        "PostApproval",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PostMedia(Base):
    __tablename__ = "post_media"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        "postId",
        UUID(as_uuid=True),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
    )
    media_file_id: Mapped[uuid.UUID] = mapped_column(
        "mediaFileId",
        UUID(as_uuid=True),
        ForeignKey("media_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    post: Mapped["Post"] = relationship("Post", back_populates="media")
    media_file: Mapped["MediaFile"] = relationship("MediaFile")


class PostDestination(Base):
    __tablename__ = "post_destinations"
    __table_args__ = (UniqueConstraint("postId", "profileId", name="uq_post_destinations_post_profile"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        "postId",
        UUID(as_uuid=True),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    profile_id: Mapped[uuid.UUID] = mapped_column(
        "profileId",
        UUID(as_uuid=True),
        ForeignKey("social_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    content_override: Mapped[Optional[str]] = mapped_column("contentOverride", Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=DestinationStatus.PENDING,
        nullable=False,
    )  # PENDING, SUCCESS, FAILED
    platform_post_id: Mapped[Optional[str]] = mapped_column(
        "platformPostId",
        String(255),
        nullable=True,
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        "publishedAt",
        UTCDateTime(),
        nullable=True,
    )
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )
    error: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    post: Mapped["Post"] = relationship("Post", back_populates="destinations")
    profile: Mapped["SocialProfile"] = relationship("SocialProfile")
