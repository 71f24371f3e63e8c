"""initial

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "workspaces",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("ownerId", _uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("plan", sa.String(50), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("limits", postgresql.JSONB(), nullable=True),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["ownerId"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "members",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("userId", _uuid(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.ForeignKeyConstraint(["userId"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workspaceId", "userId", name="uq_members_workspace_user"),
    )

    op.create_table(
        "social_connections",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("platform", sa.String(30), nullable=False),
        sa.Column("accessToken", sa.Text(), nullable=True),
        sa.Column("refreshToken", sa.Text(), nullable=True),
        sa.Column("expiresAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "social_profiles",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("connectionId", _uuid(), nullable=False),
        sa.Column("platform", sa.String(30), nullable=False),
        sa.Column("platformId", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("picture", sa.String(2048), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("accessToken", sa.Text(), nullable=True),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["connectionId"], ["social_connections.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_social_profiles_workspaceId", "social_profiles", ["workspaceId"])

    op.create_table(
        "media_files",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("mimeType", sa.String(100), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "campaigns",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "queue_slots",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("dayOfWeek", sa.Integer(), nullable=False),
        sa.Column("time", sa.String(5), nullable=False),
        sa.Column("platform", sa.String(30), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("isActive", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_queue_slots_workspaceId", "queue_slots", ["workspaceId"])

    op.create_table(
        "posts",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("workspaceId", _uuid(), nullable=False),
        sa.Column("authorId", _uuid(), nullable=False),
        sa.Column("campaignId", _uuid(), nullable=True),
        sa.Column("parentPostId", _uuid(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("contentType", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("scheduledAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("publishedAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updatedAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["authorId"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["campaignId"], ["campaigns.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["parentPostId"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspaceId"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_posts_workspaceId", "posts", ["workspaceId"])
    op.create_index("ix_posts_parentPostId", "posts", ["parentPostId"])
    op.create_index("ix_posts_status", "posts", ["status"])

    op.create_table(
        "post_media",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("postId", _uuid(), nullable=False),
        sa.Column("mediaFileId", _uuid(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["mediaFileId"], ["media_files.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["postId"], ["posts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "post_destinations",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("postId", _uuid(), nullable=False),
        sa.Column("profileId", _uuid(), nullable=False),
        sa.Column("contentOverride", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("platformPostId", sa.String(255), nullable=True),
        sa.Column("publishedAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("error", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(["postId"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["profileId"], ["social_profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("postId", "profileId", name="uq_post_destinations_post_profile"),
    )
    op.create_index("ix_post_destinations_postId", "post_destinations", ["postId"])

    op.create_table(
        "post_approvals",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("postId", _uuid(), nullable=False),
        sa.Column("requesterId", _uuid(), nullable=False),
        sa.Column("approverId", _uuid(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("requestedAt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewedAt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["approverId"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["postId"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requesterId"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_post_approvals_postId", "post_approvals", ["postId"])
    op.create_index(
        "uq_post_approvals_pending",
        "post_approvals",
        ["postId"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )


def downgrade() -> None:
    op.drop_table("post_approvals")
    op.drop_table("post_destinations")
    op.drop_table("post_media")
    op.drop_table("posts")
    op.drop_table("queue_slots")
    op.drop_table("campaigns")
    op.drop_table("media_files")
    op.drop_table("social_profiles")
    op.drop_table("social_connections")
    op.drop_table("members")
    op.drop_table("workspaces")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
