"""Plan tiers: queue/scheduling limits and the feature capabilities they unlock."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from app.db.models.workspace import Workspace

TIER_ORDER = ("CREATOR", "BUSINESS", "ROCKET", "ENTERPRISE")
DEFAULT_TIER = "CREATOR"


@dataclass(frozen=True)
class TierLimits:
    max_queue_slots: int  # recurring slots per workspace
    max_queued_posts: int  # SCHEDULED root posts at any time
    max_auto_schedule_days: int  # look-ahead horizon for the slot allocator
    max_bulk_posts: int  # posts per bulk request


TIER_LIMITS: dict[str, TierLimits] = {
    "CREATOR": TierLimits(
        max_queue_slots=10,
        max_queued_posts=30,
        max_auto_schedule_days=30,
        max_bulk_posts=20,
    ),
    "BUSINESS": TierLimits(
        max_queue_slots=50,
        max_queued_posts=150,
        max_auto_schedule_days=60,
        max_bulk_posts=100,
    ),
    "ROCKET": TierLimits(
        max_queue_slots=200,
        max_queued_posts=600,
        max_auto_schedule_days=90,
        max_bulk_posts=500,
    ),
    "ENTERPRISE": TierLimits(
        max_queue_slots=1000,
        max_queued_posts=5000,
        max_auto_schedule_days=180,
        max_bulk_posts=2000,
    ),
}

# camelCase keys accepted in Workspace.limits overrides
_OVERRIDE_KEYS = {
    "maxQueueSlots": "max_queue_slots",
    "maxQueuedPosts": "max_queued_posts",
    "maxAutoScheduleDays": "max_auto_schedule_days",
    "maxBulkPosts": "max_bulk_posts",
}


@dataclass(frozen=True)
class WorkspaceCapabilities:
    """Plan-derived feature switches consulted by the scheduling state machine."""

    tier: str
    approval_workflow: bool
    campaigns: bool

    @classmethod
    def for_tier(cls, tier: Optional[str]) -> "WorkspaceCapabilities":
        tier = normalize_tier(tier)
        rank = TIER_ORDER.index(tier)
        return cls(
            tier=tier,
            approval_workflow=rank >= TIER_ORDER.index("BUSINESS"),
            campaigns=rank >= TIER_ORDER.index("ROCKET"),
        )


def normalize_tier(tier: Optional[str]) -> str:
    tier = (tier or DEFAULT_TIER).upper()
    return tier if tier in TIER_LIMITS else DEFAULT_TIER


def get_tier_limits(workspace: Workspace) -> TierLimits:
    """Tier limits for the workspace plan, with per-workspace overrides applied."""
    limits = TIER_LIMITS[normalize_tier(workspace.plan)]
    overrides = {}
    for key, value in (workspace.limits or {}).items():
        field = _OVERRIDE_KEYS.get(key)
        if field is not None and isinstance(value, int) and value >= 0:
            overrides[field] = value
    return replace(limits, **overrides) if overrides else limits


def get_capabilities(workspace: Workspace) -> WorkspaceCapabilities:
    return WorkspaceCapabilities.for_tier(workspace.plan)
