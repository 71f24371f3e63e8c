"""SQLAlchemy models - import all for Alembic and relationships."""

from app.db.base import Base
from app.db.models.user import User
from app.db.models.workspace import Workspace, Member
from app.db.models.social_profile import SocialConnection, SocialProfile
from app.db.models.media_file import MediaFile
from app.db.models.campaign import Campaign
from app.db.models.queue_slot import QueueSlot
from app.db.models.post import Post, PostDestination, PostMedia
from app.db.models.approval import PostApproval

__all__ = [
    "Base",
    "User",
    "Workspace",
    "Member",
    "SocialConnection",
    "SocialProfile",
    "MediaFile",
    "Campaign",
    "QueueSlot",
    "Post",
    "PostMedia",
    "PostDestination",
    "PostApproval",
]
