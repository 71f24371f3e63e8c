"""Workspace and Member models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, JSONType, UTCDateTime

if TYPE_CHECKING:
    from app.db.models.user import User
    from app.db.models.queue_slot import QueueSlot
    from app.db.models.social_profile import SocialProfile


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        "ownerId",
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), default="My Workspace", nullable=False)
    plan: Mapped[str] = mapped_column(
        String(50),
        default="CREATOR",
        nullable=False,
    )  # CREATOR, BUSINESS, ROCKET, ENTERPRISE
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)
    limits: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    # per-workspace overrides of the tier table, e.g. {"maxQueuedPosts": 500}
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

    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])
    members: Mapped[List["Member"]] = relationship(
        "Member", back_populates="workspace", foreign_keys="Member.workspace_id"
    )
    queue_slots: Mapped[List["QueueSlot"]] = relationship("QueueSlot", back_populates="workspace")
    social_profiles: Mapped[List["SocialProfile"]] = relationship(
        "SocialProfile", back_populates="workspace"
    )


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (UniqueConstraint("workspaceId", "userId", name="uq_members_workspace_user"),)

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
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        "userId",
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), default="member", nullable=False)  # owner, member

    workspace: Mapped["Workspace"] = relationship(
        "Workspace", back_populates="members", foreign_keys=[workspace_id]
    )
    user: Mapped["User"] = relationship(
        "User", back_populates="memberships", foreign_keys=[user_id]
    )
