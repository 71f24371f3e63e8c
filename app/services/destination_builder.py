"""Destination builder: resolve target profiles into per-platform payload specs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.db.models.post import PostDestination
from app.db.models.social_profile import SocialProfile

# Platforms whose posts can reply to a previous post of the same author
THREAD_PLATFORMS = ("TWITTER", "THREADS")


@dataclass(frozen=True)
class DestinationPayload:
    profile_id: uuid.UUID
    platform: str
    content_override: Optional[str] = None


def _unique(ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    seen: set[uuid.UUID] = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def prepare_payloads(
    db: Session,
    workspace_id: uuid.UUID,
    profile_ids: Iterable[uuid.UUID],
    overrides: Optional[dict[str, str]] = None,
) -> list[DestinationPayload]:
    """
    Validate that every profile belongs to the workspace and bind it to its platform.
    Read-only: nothing is written, so a failure here leaves no partial state.
    """
    wanted = _unique(profile_ids)
    if not wanted:
        raise ValidationError("At least one destination profile is required")

    profiles = (
        db.query(SocialProfile)
        .filter(SocialProfile.id.in_(wanted), SocialProfile.workspace_id == workspace_id)
        .all()
    )
    by_id = {p.id: p for p in profiles}
    missing = [str(i) for i in wanted if i not in by_id]
    if missing:
        raise ValidationError(
            "Unknown social profile(s) for this workspace",
            profileIds=missing,
        )

    overrides = {str(k).upper(): v for k, v in (overrides or {}).items()}
    payloads = []
    for profile_id in wanted:
        profile = by_id[profile_id]
        platform = profile.platform.upper()
        override = overrides.get(str(profile_id).upper(), overrides.get(platform))
        payloads.append(
            DestinationPayload(
                profile_id=profile_id,
                platform=platform,
                content_override=override or None,
            )
        )
    return payloads


def thread_payloads(payloads: Iterable[DestinationPayload]) -> list[DestinationPayload]:
    return [p for p in payloads if p.platform in THREAD_PLATFORMS]


def save_destinations(
    db: Session,
    post_id: uuid.UUID,
    payloads: Iterable[DestinationPayload],
) -> list[PostDestination]:
    """Add one destination row per payload; the caller owns the transaction."""
    rows = []
    for payload in payloads:
        row = PostDestination(
            id=uuid.uuid4(),
            post_id=post_id,
            profile_id=payload.profile_id,
            content_override=payload.content_override,
        )
        db.add(row)
        rows.append(row)
    return rows
