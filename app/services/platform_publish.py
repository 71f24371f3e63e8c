"""Platform publish capability: one publisher per platform behind a uniform `publish` call."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformCredentials:
    access_token: str


@dataclass(frozen=True)
class MediaPayload:
    url: str
    mime_type: str
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")


@dataclass(frozen=True)
class PublishTarget:
    target_id: str  # page id, author URN, IG/Threads user id
    reply_to_id: Optional[str] = None  # platform id of the previous chain link


@dataclass(frozen=True)
class PublishResult:
    platform_post_id: str


class PlatformPublishError(Exception):
    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{platform}: {message}")
        self.platform = platform
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"platform": self.platform, "message": self.message, "statusCode": self.status_code}


class PlatformPublisher(Protocol):
    platform: str

    def publish(
        self,
        credentials: PlatformCredentials,
        content: str,
        media: Sequence[MediaPayload],
        target: PublishTarget,
    ) -> PublishResult: ...


def _check(response: httpx.Response, platform: str) -> dict:
    if response.is_error:
        raise PlatformPublishError(platform, response.text[:500] or response.reason_phrase, response.status_code)
    try:
        return response.json()
    except ValueError:
        return {}


class _HttpPublisher:
    platform = ""

    def __init__(self, client: httpx.Client):
        self.client = client

    def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            return self.client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise PlatformPublishError(self.platform, f"request failed: {e}") from e

    def _get(self, url: str, **kwargs) -> httpx.Response:
        try:
            return self.client.get(url, **kwargs)
        except httpx.HTTPError as e:
            raise PlatformPublishError(self.platform, f"request failed: {e}") from e


class TwitterPublisher(_HttpPublisher):
    """X API v2: upload media, then create the tweet (optionally as a reply)."""

    platform = "TWITTER"
    api_base = "https://api.x.com/2"

    def _upload_media(self, credentials: PlatformCredentials, item: MediaPayload) -> str:
        source = self._get(item.url)
        if source.is_error:
            raise PlatformPublishError(self.platform, f"media download failed: {item.url}", source.status_code)
        category = "tweet_video" if item.is_video else "tweet_image"
        r = self._post(
            f"{self.api_base}/media/upload",
            headers={"Authorization": f"Bearer {credentials.access_token}"},
            data={"media_category": category},
            files={"media": ("media", source.content, item.mime_type)},
        )
        data = _check(r, self.platform)
        media_id = (data.get("data") or {}).get("id") or data.get("media_id_string")
        if not media_id:
            raise PlatformPublishError(self.platform, "No media id from upload")
        return str(media_id)

    def publish(self, credentials, content, media, target) -> PublishResult:
        body: dict = {"text": content}
        if media:
            body["media"] = {"media_ids": [self._upload_media(credentials, m) for m in media[:4]]}
        if target.reply_to_id:
            body["reply"] = {"in_reply_to_tweet_id": target.reply_to_id}
        r = self._post(
            f"{self.api_base}/tweets",
            headers={"Authorization": f"Bearer {credentials.access_token}"},
            json=body,
        )
        tweet_id = (_check(r, self.platform).get("data") or {}).get("id")
        if not tweet_id:
            raise PlatformPublishError(self.platform, "No tweet id in response")
        return PublishResult(platform_post_id=str(tweet_id))


class LinkedInPublisher(_HttpPublisher):
    """LinkedIn Posts API for a person or organization URN. Text and link posts only."""

    platform = "LINKEDIN"
    api_version = "202405"

    def publish(self, credentials, content, media, target) -> PublishResult:
        if media:
            raise PlatformPublishError(self.platform, "Media posts require the LinkedIn asset upload flow")
        r = self._post(
            "https://api.linkedin.com/rest/posts",
            headers={
                "Authorization": f"Bearer {credentials.access_token}",
                "LinkedIn-Version": self.api_version,
                "X-Restli-Protocol-Version": "2.0.0",
            },
            json={
                "author": target.target_id,
                "commentary": (content or "")[:3000],
                "visibility": "PUBLIC",
                "distribution": {
                    "feedDistribution": "MAIN_FEED",
                    "targetEntities": [],
                    "thirdPartyDistributionChannels": [],
                },
                "lifecycleState": "PUBLISHED",
            },
        )
        _check(r, self.platform)
        post_urn = r.headers.get("x-restli-id")
        if not post_urn:
            raise PlatformPublishError(self.platform, "No post URN in response headers")
        return PublishResult(platform_post_id=post_urn)


class FacebookPublisher(_HttpPublisher):
    """Facebook Graph: page feed post, photo or video."""

    platform = "FACEBOOK"

    def publish(self, credentials, content, media, target) -> PublishResult:
        graph = f"https://graph.facebook.com/{get_settings().graph_api_version}"
        params = {"access_token": credentials.access_token}
        if not media:
            r = self._post(f"{graph}/{target.target_id}/feed", params=params, data={"message": content})
        elif media[0].is_video:
            r = self._post(
                f"{graph}/{target.target_id}/videos",
                params=params,
                data={"file_url": media[0].url, "description": (content or "")[:5000]},
            )
        else:
            r = self._post(
                f"{graph}/{target.target_id}/photos",
                params=params,
                data={"url": media[0].url, "caption": content},
            )
        data = _check(r, self.platform)
        post_id = data.get("post_id") or data.get("id")
        if not post_id:
            raise PlatformPublishError(self.platform, "No post id in response")
        return PublishResult(platform_post_id=str(post_id))


class InstagramPublisher(_HttpPublisher):
    """Instagram Graph API: create media container, wait until ready, then publish."""

    platform = "INSTAGRAM"
    poll_attempts = 30
    poll_interval_seconds = 2.0

    def _wait_until_ready(self, graph: str, container_id: str, access_token: str) -> None:
        for _ in range(self.poll_attempts):
            check = self._get(
                f"{graph}/{container_id}",
                params={"access_token": access_token, "fields": "status_code"},
            )
            status = _check(check, self.platform).get("status_code")
            if status == "FINISHED":
                return
            if status == "ERROR":
                raise PlatformPublishError(self.platform, "Container processing failed")
            time.sleep(self.poll_interval_seconds)
        raise PlatformPublishError(self.platform, "Container not ready in time")

    def publish(self, credentials, content, media, target) -> PublishResult:
        if not media:
            raise PlatformPublishError(self.platform, "Instagram posts need at least one media file")
        graph = f"https://graph.facebook.com/{get_settings().graph_api_version}"
        first = media[0]
        container = {"caption": (content or "")[:2200]}
        if first.is_video:
            container.update({"media_type": "REELS", "video_url": first.url})
        else:
            container["image_url"] = first.url
        r = self._post(
            f"{graph}/{target.target_id}/media",
            params={"access_token": credentials.access_token},
            json=container,
        )
        container_id = _check(r, self.platform).get("id")
        if not container_id:
            raise PlatformPublishError(self.platform, "No container id from Instagram")
        if first.is_video:
            self._wait_until_ready(graph, container_id, credentials.access_token)

        pub = self._post(
            f"{graph}/{target.target_id}/media_publish",
            params={"access_token": credentials.access_token, "creation_id": container_id},
        )
        media_id = _check(pub, self.platform).get("id")
        return PublishResult(platform_post_id=str(media_id or container_id))


class ThreadsPublisher(_HttpPublisher):
    """Threads API: two-step container/publish, replies via reply_to_id."""

    platform = "THREADS"
    api_base = "https://graph.threads.net/v1.0"

    def publish(self, credentials, content, media, target) -> PublishResult:
        container: dict = {"text": (content or "")[:500], "media_type": "TEXT"}
        if media:
            first = media[0]
            if first.is_video:
                container.update({"media_type": "VIDEO", "video_url": first.url})
            else:
                container.update({"media_type": "IMAGE", "image_url": first.url})
        if target.reply_to_id:
            container["reply_to_id"] = target.reply_to_id
        r = self._post(
            f"{self.api_base}/{target.target_id}/threads",
            params={"access_token": credentials.access_token},
            data=container,
        )
        creation_id = _check(r, self.platform).get("id")
        if not creation_id:
            raise PlatformPublishError(self.platform, "No creation id from Threads")
        pub = self._post(
            f"{self.api_base}/{target.target_id}/threads_publish",
            params={"access_token": credentials.access_token, "creation_id": creation_id},
        )
        post_id = _check(pub, self.platform).get("id")
        if not post_id:
            raise PlatformPublishError(self.platform, "No post id from Threads")
        return PublishResult(platform_post_id=str(post_id))


class PublisherRegistry:
    def __init__(self, publishers: Sequence[PlatformPublisher] = ()):
        self._publishers = {p.platform.upper(): p for p in publishers}

    def register(self, publisher: PlatformPublisher) -> None:
        self._publishers[publisher.platform.upper()] = publisher

    def get(self, platform: str) -> PlatformPublisher:
        publisher = self._publishers.get((platform or "").upper())
        if publisher is None:
            raise PlatformPublishError(platform or "UNKNOWN", f"Platform {platform} is not supported yet.")
        return publisher


def build_default_registry(client: httpx.Client) -> PublisherRegistry:
    """All platforms over one shared client; the caller owns (and closes) the client."""
    return PublisherRegistry(
        [
            TwitterPublisher(client),
            LinkedInPublisher(client),
            FacebookPublisher(client),
            InstagramPublisher(client),
            ThreadsPublisher(client),
        ]
    )
