"""QueueSlot model: recurring weekly publishing slots used for auto-scheduling."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

if TYPE_CHECKING:
    from app.db.models.workspace import Workspace


class QueueSlot(Base):
    __tablename__ = "queue_slots"

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
    day_of_week: Mapped[int] = mapped_column("dayOfWeek", Integer, nullable=False)  # 1=Mon..7=Sun
    time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM, workspace timezone
    platform: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # None = any platform
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column("isActive", Boolean, default=True, nullable=False)

    workspace: Mapped["Workspace"] = relationship(
        "Workspace", back_populates="queue_slots", foreign_keys=[workspace_id]
    )
