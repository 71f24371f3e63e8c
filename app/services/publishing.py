"""
Publishing orchestrator: publish a due root post and then walk its thread chain.

Each link is published to all of its destinations concurrently. Destination failures
are recorded on the destination row and never raised; anything else (database,
programming errors) propagates so the dispatcher can retry the job.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import httpx
from sqlalchemy.orm import Session, joinedload, selectinload

from app.config import get_settings
from app.core.token_encryption import TokenDecryptionError, decrypt_token
from app.db.base import SessionLocal
from app.db.models.post import DestinationStatus, Post, PostDestination, PostMedia, PostStatus
from app.db.models.social_profile import SocialProfile
from app.services.platform_publish import (
    MediaPayload,
    PlatformCredentials,
    PlatformPublishError,
    PublisherRegistry,
    PublishResult,
    PublishTarget,
    build_default_registry,
)

logger = logging.getLogger(__name__)

# Root statuses a fired job may act on; PUBLISHED covers a retried job whose root already went out
RUNNABLE_STATUSES = (PostStatus.SCHEDULED, PostStatus.PUBLISHING, PostStatus.PUBLISHED)


@dataclass
class PublishRequest:
    destination_id: uuid.UUID
    profile_id: uuid.UUID
    platform: str
    credentials: PlatformCredentials
    content: str
    media: list[MediaPayload]
    target: PublishTarget


@dataclass
class LinkOutcome:
    post_id: uuid.UUID
    status: str
    succeeded: int = 0
    failed: int = 0
    # profile id -> platform post id, used as reply targets by the next link
    reply_targets: dict[uuid.UUID, str] = field(default_factory=dict)
    last_platform_post_id: Optional[str] = None


@dataclass
class ChainSummary:
    root_id: uuid.UUID
    skipped: bool = False
    links: list[LinkOutcome] = field(default_factory=list)

    @property
    def status(self) -> Optional[str]:
        return self.links[0].status if self.links else None


Outcome = Union[PublishResult, Exception]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_dict(exc: Exception) -> dict:
    if isinstance(exc, PlatformPublishError):
        return exc.to_dict()
    return {"message": str(exc) or type(exc).__name__, "type": type(exc).__name__}


class PublishingOrchestrator:
    def __init__(
        self,
        db: Session,
        registry: PublisherRegistry,
        max_workers: Optional[int] = None,
    ):
        self.db = db
        self.registry = registry
        self.max_workers = max_workers or get_settings().publish_fanout_workers

    def run(self, post_id: uuid.UUID) -> ChainSummary:
        summary = ChainSummary(root_id=post_id)
        root = self.db.get(Post, post_id)
        if root is None or root.status not in RUNNABLE_STATUSES:
            logger.info(
                "publish_skipped post_id=%s status=%s",
                post_id,
                root.status if root is not None else "missing",
            )
            summary.skipped = True
            return summary

        current: Optional[Post] = root
        reply_targets: dict[uuid.UUID, str] = {}
        last_reply: Optional[str] = None
        while current is not None:
            if current.status == PostStatus.PUBLISHED:
                outcome = self._reuse(current)
            else:
                outcome = self._publish_link(root, current, reply_targets, last_reply)
            summary.links.append(outcome)

            if outcome.succeeded == 0 or not outcome.last_platform_post_id:
                break
            reply_targets = outcome.reply_targets
            last_reply = outcome.last_platform_post_id
            current = self._next_link(current.id)

        logger.info(
            "publish_chain_done post_id=%s status=%s links=%s",
            post_id,
            summary.status,
            len(summary.links),
        )
        return summary

    def _next_link(self, post_id: uuid.UUID) -> Optional[Post]:
        return (
            self.db.query(Post)
            .filter(Post.parent_post_id == post_id)
            .order_by(Post.created_at.asc())
            .first()
        )

    def _load_destinations(self, post_id: uuid.UUID) -> list[PostDestination]:
        return (
            self.db.query(PostDestination)
            .options(joinedload(PostDestination.profile).joinedload(SocialProfile.connection))
            .filter(PostDestination.post_id == post_id)
            .order_by(PostDestination.id)
            .all()
        )

    def _load_media(self, post_id: uuid.UUID) -> list[MediaPayload]:
        links = (
            self.db.query(PostMedia)
            .options(selectinload(PostMedia.media_file))
            .filter(PostMedia.post_id == post_id)
            .order_by(PostMedia.order.asc())
            .all()
        )
        return [
            MediaPayload(
                url=link.media_file.url,
                mime_type=link.media_file.mime_type,
                width=link.media_file.width,
                height=link.media_file.height,
            )
            for link in links
        ]

    def _reuse(self, post: Post) -> LinkOutcome:
        """A link published by an earlier attempt: reuse its stored platform ids."""
        outcome = LinkOutcome(post_id=post.id, status=post.status)
        for dest in self._load_destinations(post.id):
            if dest.status == DestinationStatus.SUCCESS and dest.platform_post_id:
                outcome.succeeded += 1
                outcome.reply_targets[dest.profile_id] = dest.platform_post_id
                outcome.last_platform_post_id = dest.platform_post_id
            else:
                outcome.failed += 1
        return outcome

    @staticmethod
    def _credentials(profile: SocialProfile) -> PlatformCredentials:
        connection = profile.connection
        token = decrypt_token(profile.access_token or "") or decrypt_token(
            (connection.access_token if connection else None) or ""
        )
        if not token:
            raise PlatformPublishError(profile.platform, "No access token for profile")
        return PlatformCredentials(access_token=token)

    def _build_request(
        self,
        post: Post,
        dest: PostDestination,
        media: list[MediaPayload],
        reply_targets: dict[uuid.UUID, str],
        last_reply: Optional[str],
    ) -> PublishRequest:
        profile = dest.profile
        reply_to = reply_targets.get(dest.profile_id, last_reply) if post.parent_post_id else None
        return PublishRequest(
            destination_id=dest.id,
            profile_id=dest.profile_id,
            platform=profile.platform,
            credentials=self._credentials(profile),
            content=dest.content_override or post.content,
            media=media,
            target=PublishTarget(target_id=profile.platform_id, reply_to_id=reply_to),
        )

    def _send(self, request: PublishRequest) -> Outcome:
        try:
            publisher = self.registry.get(request.platform)
            return publisher.publish(request.credentials, request.content, request.media, request.target)
        except Exception as e:
            return e

    def _fan_out(self, requests: list[PublishRequest]) -> dict[uuid.UUID, Outcome]:
        if not requests:
            return {}
        workers = min(self.max_workers, len(requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="publish") as pool:
            futures = {r.destination_id: pool.submit(self._send, r) for r in requests}
            return {dest_id: f.result() for dest_id, f in futures.items()}

    def _record_thread_ref(self, root: Post, post: Post, dest: PostDestination, published_at: datetime) -> None:
        root_dest = (
            self.db.query(PostDestination)
            .filter(PostDestination.post_id == root.id, PostDestination.profile_id == dest.profile_id)
            .first()
        )
        if root_dest is None:
            return
        meta = dict(root_dest.metadata_ or {})
        thread = [ref for ref in meta.get("thread", []) if ref.get("postId") != str(post.id)]
        thread.append(
            {
                "postId": str(post.id),
                "platformPostId": dest.platform_post_id,
                "publishedAt": published_at.isoformat(),
            }
        )
        meta["thread"] = thread
        root_dest.metadata_ = meta

    def _publish_link(
        self,
        root: Post,
        post: Post,
        reply_targets: dict[uuid.UUID, str],
        last_reply: Optional[str],
    ) -> LinkOutcome:
        post.status = PostStatus.PUBLISHING
        self.db.commit()

        destinations = self._load_destinations(post.id)
        media = self._load_media(post.id)
        outcome = LinkOutcome(post_id=post.id, status=PostStatus.PUBLISHING)

        requests: list[PublishRequest] = []
        results: dict[uuid.UUID, Outcome] = {}
        for dest in destinations:
            if dest.status == DestinationStatus.SUCCESS and dest.platform_post_id:
                continue
            try:
                requests.append(self._build_request(post, dest, media, reply_targets, last_reply))
            except (PlatformPublishError, TokenDecryptionError) as e:
                results[dest.id] = e
        results.update(self._fan_out(requests))
        targets = {r.destination_id: r.target for r in requests}

        now = _utcnow()
        for dest in destinations:
            result = results.get(dest.id)
            if result is None:
                # SUCCESS from an earlier attempt
                outcome.succeeded += 1
            elif isinstance(result, PublishResult):
                dest.status = DestinationStatus.SUCCESS
                dest.platform_post_id = result.platform_post_id
                dest.published_at = now
                dest.error = None
                reply_to = targets[dest.id].reply_to_id
                if reply_to:
                    dest.metadata_ = {**(dest.metadata_ or {}), "replyToId": reply_to}
                outcome.succeeded += 1
                if post.parent_post_id:
                    self._record_thread_ref(root, post, dest, now)
            else:
                dest.status = DestinationStatus.FAILED
                dest.error = _error_dict(result)
                outcome.failed += 1
                logger.error(
                    "publish_destination_failed post_id=%s destination_id=%s platform=%s error=%s",
                    post.id,
                    dest.id,
                    dest.profile.platform if dest.profile else None,
                    result,
                )
            if dest.status == DestinationStatus.SUCCESS and dest.platform_post_id:
                outcome.reply_targets[dest.profile_id] = dest.platform_post_id
                if result is not None:
                    outcome.last_platform_post_id = dest.platform_post_id
                elif outcome.last_platform_post_id is None:
                    outcome.last_platform_post_id = dest.platform_post_id

        post.status = PostStatus.PUBLISHED if outcome.succeeded > 0 else PostStatus.FAILED
        post.published_at = now
        self.db.commit()
        outcome.status = post.status

        logger.info(
            "publish_link_done post_id=%s status=%s succeeded=%s failed=%s",
            post.id,
            post.status,
            outcome.succeeded,
            outcome.failed,
        )
        return outcome


def _run_job(post_id: uuid.UUID, session_factory: Callable[[], Session], registry: PublisherRegistry) -> ChainSummary:
    db = session_factory()
    try:
        return PublishingOrchestrator(db, registry).run(post_id)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def publish_post_job(
    post_id: uuid.UUID,
    session_factory: Callable[[], Session] = SessionLocal,
    registry: Optional[PublisherRegistry] = None,
) -> ChainSummary:
    """Entry point for a fired job: own session; default publishers share one client closed on exit."""
    if registry is not None:
        return _run_job(post_id, session_factory, registry)
    with httpx.Client(timeout=get_settings().platform_http_timeout_seconds) as client:
        return _run_job(post_id, session_factory, build_default_registry(client))
