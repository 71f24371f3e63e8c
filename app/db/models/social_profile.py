"""SocialConnection and SocialProfile models for connected platforms."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, UTCDateTime

if TYPE_CHECKING:
    from app.db.models.workspace import Workspace

PLATFORMS = ("TWITTER", "LINKEDIN", "FACEBOOK", "INSTAGRAM", "THREADS")


class SocialConnection(Base):
    """One OAuth grant; a connection can expose several publishable profiles (pages, orgs)."""

    __tablename__ = "social_connections"

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
    platform: Mapped[str] = mapped_column(String(30), nullable=False)
    access_token: Mapped[Optional[str]] = mapped_column(
        "accessToken",
        Text,
        nullable=True,
    )  # encrypted at rest
    refresh_token: Mapped[Optional[str]] = mapped_column(
        "refreshToken",
        Text,
        nullable=True,
    )  # encrypted at rest; OAuth1 platforms keep the token secret here
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        "expiresAt",
        UTCDateTime(),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        "createdAt",
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
    )

    profiles: Mapped[List["SocialProfile"]] = relationship(
        "SocialProfile", back_populates="connection"
    )


class SocialProfile(Base):
    __tablename__ = "social_profiles"

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
    connection_id: Mapped[uuid.UUID] = mapped_column(
        "connectionId",
        UUID(as_uuid=True),
        ForeignKey("social_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    platform: Mapped[str] = mapped_column(String(30), nullable=False)  # see PLATFORMS
    platform_id: Mapped[str] = mapped_column("platformId", String(255), nullable=False)
    # page id, person/organization URN, IG business account id
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    picture: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    type: Mapped[str] = mapped_column(String(20), default="PROFILE", nullable=False)  # PROFILE, PAGE
    access_token: Mapped[Optional[str]] = mapped_column(
        "accessToken",
        Text,
        nullable=True,
    )  # page-level token, encrypted at rest
    created_at: Mapped[datetime] = mapped_column(
        "createdAt",
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
    )

    workspace: Mapped["Workspace"] = relationship(
        "Workspace", back_populates="social_profiles", foreign_keys=[workspace_id]
    )
    connection: Mapped["SocialConnection"] = relationship(
        "SocialConnection", back_populates="profiles", foreign_keys=[connection_id]
    )
