import json

import httpx
import pytest

from app.services.platform_publish import (
    LinkedInPublisher,
    MediaPayload,
    PlatformCredentials,
    PlatformPublishError,
    PublishTarget,
    ThreadsPublisher,
    TwitterPublisher,
    build_default_registry,
)

CREDS = PlatformCredentials(access_token="abc")


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_twitter_reply_payload():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"data": {"id": "1799"}})

    result = TwitterPublisher(_client(handler)).publish(
        CREDS, "hello", [], PublishTarget(target_id="me", reply_to_id="1700")
    )

    assert result.platform_post_id == "1799"
    assert seen["url"] == "https://api.x.com/2/tweets"
    assert seen["auth"] == "Bearer abc"
    assert seen["body"] == {"text": "hello", "reply": {"in_reply_to_tweet_id": "1700"}}


def test_twitter_uploads_media_first():
    paths = []

    def handler(request: httpx.Request):
        paths.append(request.url.path)
        if request.url.host == "cdn.example.com":
            return httpx.Response(200, content=b"jpeg-bytes")
        if request.url.path.endswith("/media/upload"):
            return httpx.Response(200, json={"data": {"id": "m1"}})
        assert json.loads(request.content)["media"] == {"media_ids": ["m1"]}
        return httpx.Response(201, json={"data": {"id": "t1"}})

    media = [MediaPayload(url="https://cdn.example.com/a.jpg", mime_type="image/jpeg")]
    result = TwitterPublisher(_client(handler)).publish(CREDS, "pic", media, PublishTarget(target_id="me"))

    assert result.platform_post_id == "t1"
    assert paths == ["/a.jpg", "/2/media/upload", "/2/tweets"]


def test_http_error_becomes_publish_error():
    def handler(request):
        return httpx.Response(403, text="duplicate content")

    with pytest.raises(PlatformPublishError) as exc:
        TwitterPublisher(_client(handler)).publish(CREDS, "x", [], PublishTarget(target_id="me"))

    assert exc.value.status_code == 403
    assert exc.value.to_dict() == {"platform": "TWITTER", "message": "duplicate content", "statusCode": 403}


def test_transport_error_becomes_publish_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(PlatformPublishError):
        TwitterPublisher(_client(handler)).publish(CREDS, "x", [], PublishTarget(target_id="me"))


def test_linkedin_reads_urn_header():
    def handler(request):
        body = json.loads(request.content)
        assert body["author"] == "urn:li:organization:42"
        return httpx.Response(201, headers={"x-restli-id": "urn:li:share:9"})

    result = LinkedInPublisher(_client(handler)).publish(
        CREDS, "hi", [], PublishTarget(target_id="urn:li:organization:42")
    )
    assert result.platform_post_id == "urn:li:share:9"


def test_threads_container_then_publish():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request.url.path)
        if request.url.path.endswith("/threads"):
            assert b"reply_to_id=555" in request.content
            return httpx.Response(200, json={"id": "container"})
        assert request.url.params["creation_id"] == "container"
        return httpx.Response(200, json={"id": "777"})

    result = ThreadsPublisher(_client(handler)).publish(
        CREDS, "reply", [], PublishTarget(target_id="u1", reply_to_id="555")
    )

    assert result.platform_post_id == "777"
    assert calls == ["/v1.0/u1/threads", "/v1.0/u1/threads_publish"]


def test_default_registry_covers_platforms():
    registry = build_default_registry(_client(lambda r: httpx.Response(200)))
    for platform in ("TWITTER", "LINKEDIN", "FACEBOOK", "INSTAGRAM", "THREADS", "twitter"):
        assert registry.get(platform).platform == platform.upper()
    with pytest.raises(PlatformPublishError):
        registry.get("MYSPACE")
