from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app.db.models.post import PostStatus


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def test_requires_bearer_token(client: TestClient):
    assert client.get("/api/v1/posts").status_code == 401


def test_me_reports_plan_features(client: TestClient, auth_headers):
    r = client.get("/api/v1/me", headers=auth_headers)

    assert r.status_code == 200
    body = r.json()
    assert body["workspace"]["plan"] == "BUSINESS"
    assert body["workspace"]["features"] == {"approvalWorkflow": True, "campaigns": False}


def test_post_lifecycle(client: TestClient, auth_headers, profiles, dispatcher, in_one_hour):
    r = client.post(
        "/api/v1/posts",
        headers=auth_headers,
        json={
            "content": "Hello",
            "profileIds": [str(profiles["TWITTER"].id), str(profiles["LINKEDIN"].id)],
            "overrides": {"LINKEDIN": "Hello, network"},
            "scheduledAt": _iso(in_one_hour),
        },
    )
    assert r.status_code == 201, r.text
    created = r.json()
    post_id = created["id"]
    assert created["status"] == PostStatus.SCHEDULED
    assert len(created["destinations"]) == 2
    assert len(dispatcher.jobs) == 1

    listed = client.get("/api/v1/posts", headers=auth_headers, params={"status": "SCHEDULED"}).json()
    assert listed["meta"]["total"] == 1
    assert listed["data"][0]["id"] == post_id

    later = in_one_hour + timedelta(days=1)
    r = client.patch(f"/api/v1/posts/{post_id}", headers=auth_headers, json={"scheduledAt": _iso(later)})
    assert r.status_code == 200
    assert datetime.fromisoformat(r.json()["scheduledAt"].replace("Z", "+00:00")) == later
    assert next(iter(dispatcher.jobs.values())).fire_at == later

    dispatcher.run_due(later)
    detail = client.get(f"/api/v1/posts/{post_id}", headers=auth_headers).json()
    assert detail["status"] == PostStatus.PUBLISHED
    assert {d["status"] for d in detail["destinations"]} == {"SUCCESS"}

    r = client.patch(f"/api/v1/posts/{post_id}", headers=auth_headers, json={"content": "too late"})
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "CONFLICT"

    r = client.delete(f"/api/v1/posts/{post_id}", headers=auth_headers)
    assert r.status_code == 200
    assert client.get(f"/api/v1/posts/{post_id}", headers=auth_headers).status_code == 404


def test_past_time_is_422(client: TestClient, auth_headers, profiles):
    past = datetime.now(timezone.utc) - timedelta(minutes=10)
    r = client.post(
        "/api/v1/posts",
        headers=auth_headers,
        json={"content": "late", "profileIds": [str(profiles["TWITTER"].id)], "scheduledAt": _iso(past)},
    )

    assert r.status_code == 422
    assert r.json()["detail"]["message"] == "Scheduled time is in the past."


def test_bulk_queue_full(client: TestClient, auth_headers, profiles):
    r = client.post(
        "/api/v1/posts/bulk",
        headers=auth_headers,
        json={"posts": [{"content": "a", "profileIds": [str(profiles["TWITTER"].id)], "isAutoSchedule": True}]},
    )

    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "QUEUE_FULL"


def test_approval_flow(client: TestClient, auth_headers, profiles, in_one_hour):
    r = client.post(
        "/api/v1/posts",
        headers=auth_headers,
        json={
            "content": "Needs a look",
            "profileIds": [str(profiles["TWITTER"].id)],
            "scheduledAt": _iso(in_one_hour),
            "needsApproval": True,
        },
    )
    assert r.json()["status"] == PostStatus.PENDING_APPROVAL

    approvals = client.get("/api/v1/approvals", headers=auth_headers).json()
    assert approvals["meta"]["total"] == 1
    approval = approvals["data"][0]
    assert approval["postContent"] == "Needs a look"

    r = client.post(
        f"/api/v1/approvals/{approval['id']}/review",
        headers=auth_headers,
        json={"status": "APPROVED", "notes": "ship it"},
    )
    assert r.status_code == 200
    assert r.json()["status"] == PostStatus.SCHEDULED

    r = client.post(f"/api/v1/approvals/{approval['id']}/review", headers=auth_headers, json={"status": "REJECTED"})
    assert r.status_code == 409


def test_queue_routes(client: TestClient, auth_headers):
    r = client.post("/api/v1/queue/slots", headers=auth_headers, json={"dayOfWeek": 1, "time": "09:00"})
    assert r.status_code == 201
    slot = r.json()
    assert slot["dayOfWeek"] == 1 and slot["isActive"] is True

    r = client.patch(f"/api/v1/queue/slots/{slot['id']}", headers=auth_headers, json={"time": "10:00"})
    assert r.json()["time"] == "10:00"

    r = client.post("/api/v1/queue/slots/defaults", headers=auth_headers, json={"times": ["18:00"], "days": [6, 7]})
    assert len(r.json()) == 2

    preview = client.post("/api/v1/queue/preview", headers=auth_headers, json={"count": 3}).json()
    assert preview["timezone"] == "UTC"
    assert len(preview["results"]) == 3

    assert client.delete(f"/api/v1/queue/slots/{slot['id']}", headers=auth_headers).status_code == 204
    assert len(client.get("/api/v1/queue/slots", headers=auth_headers).json()) == 2


def test_clear_queue_route(client: TestClient, auth_headers, profiles, dispatcher, in_one_hour):
    for profile in ("TWITTER", "LINKEDIN"):
        client.post(
            "/api/v1/posts",
            headers=auth_headers,
            json={"content": profile, "profileIds": [str(profiles[profile].id)], "scheduledAt": _iso(in_one_hour)},
        )

    r = client.post("/api/v1/queue/clear", headers=auth_headers, params={"platform": "TWITTER"})
    assert r.json() == {"cleared": 1}
    assert len(dispatcher.jobs) == 1

    r = client.post("/api/v1/queue/clear", headers=auth_headers)
    assert r.json() == {"cleared": 1}
    assert dispatcher.jobs == {}
    drafts = client.get("/api/v1/posts", headers=auth_headers, params={"status": "DRAFT"}).json()
    assert drafts["meta"]["total"] == 2
