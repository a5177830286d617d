from orgcal.config import settings

from conftest import auth

EVENT = {"title": "Planning", "startAt": "2099-05-04T10:00:00", "endAt": "2099-05-04T11:00:00"}


async def test_update_fans_out_to_the_department_inbox(client, org, delivered):
    created = await client.post("/v1/events", json=EVENT, headers=auth(org.alice))
    event_id = created.json()["data"]["id"]
    await client.put(f"/v1/events/{event_id}", json={"content": "Agenda attached"}, headers=auth(org.alice))

    inbox = await client.get("/v1/notifications", headers=auth(org.bob))
    items = inbox.json()["data"]
    assert [(i["type"], i["relatedEventId"], i["isRead"]) for i in items] == [("EVENT_UPDATED", event_id, False)]
    assert "metadata" in items[0]
    # alice made the change, carol is in another department
    for other in (org.alice, org.carol):
        assert (await client.get("/v1/notifications", headers=auth(other))).json()["data"] == []
    assert len(delivered) == 2  # bob and the department lead

    count = await client.get("/v1/notifications/unread-count", headers=auth(org.bob))
    assert count.json()["data"] == {"count": 1}
    read = await client.patch(f"/v1/notifications/{items[0]['id']}/read", headers=auth(org.bob))
    assert read.json()["data"]["isRead"] is True
    unread = await client.get("/v1/notifications", params={"isRead": "false"}, headers=auth(org.bob))
    assert unread.json()["data"] == []

    stolen = await client.delete(f"/v1/notifications/{items[0]['id']}", headers=auth(org.alice))
    assert stolen.status_code == 404
    removed = await client.delete(f"/v1/notifications/{items[0]['id']}", headers=auth(org.bob))
    assert removed.json() == {"success": True, "data": {"id": items[0]["id"]}}


async def test_read_all(client, org):
    created = await client.post("/v1/events", json=EVENT, headers=auth(org.alice))
    event_id = created.json()["data"]["id"]
    await client.post(f"/v1/events/{event_id}/complete", headers=auth(org.alice))
    await client.delete(f"/v1/events/{event_id}", headers=auth(org.alice))

    marked = await client.post("/v1/notifications/read-all", headers=auth(org.bob))
    assert marked.json()["data"] == {"updated": 2}
    count = await client.get("/v1/notifications/unread-count", headers=auth(org.bob))
    assert count.json()["data"] == {"count": 0}


async def test_check_reminders_runs_the_sweep(client, org):
    response = await client.post("/v1/notifications/check-reminders", headers=auth(org.alice))
    assert response.status_code == 200
    assert response.json()["data"] == {"events": 0, "series": 0}


async def test_settings_read_and_admin_update(client, org, job_queue):
    current = await client.get("/v1/settings", headers=auth(org.alice))
    assert current.json()["data"]["reminder_times"] == ["1hour"]

    denied = await client.put("/v1/settings", json={"overdue_enabled": False}, headers=auth(org.alice))
    assert denied.status_code == 403

    invalid = await client.put("/v1/settings", json={"reminder_times": ["2days"]}, headers=auth(org.admin))
    assert invalid.status_code == 400

    created = await client.post("/v1/events", json=EVENT, headers=auth(org.alice))
    event_id = created.json()["data"]["id"]
    updated = await client.put(
        "/v1/settings", json={"reminder_times": ["30min"], "email_enabled": False}, headers=auth(org.admin)
    )
    body = updated.json()
    assert body["changed"] == ["reminder_times"]
    assert body["data"]["reminder_times"] == ["30min"]
    # the reminder change re-armed the existing event in the background
    assert f"event:{event_id}:REMINDER:30" in job_queue.keys
    assert len(job_queue.revoked) == 3


async def test_admin_reschedule(client, org):
    denied = await client.post("/v1/reminders/reschedule-all", headers=auth(org.bob))
    assert denied.status_code == 403
    allowed = await client.post("/v1/reminders/reschedule-all", headers=auth(org.admin))
    assert allowed.json()["data"] == {"events": 0, "series": 0, "cancelled": 0}


async def test_test_login(client, org, monkeypatch):
    issued = await client.post("/v1/auth/login/test", json={"user_id": org.bob.id})
    token = issued.json()["access_token"]
    me = await client.get("/v1/notifications/unread-count", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    # the live stream takes the token as a query parameter as well
    assert (await client.get("/v1/notifications/unread-count", params={"token": token})).status_code == 200

    assert (await client.post("/v1/auth/login/test", json={"user_id": 999})).status_code == 404
    monkeypatch.setattr(settings, "ENVIRONMENT", "prod")
    assert (await client.post("/v1/auth/login/test", json={"user_id": org.bob.id})).status_code == 404


async def test_inactive_user_is_rejected(client, org, db_session):
    from orgcal.core.users.models import User

    user = await db_session.get(User, org.carol.id)
    user.approval_status = "PENDING"
    await db_session.commit()
    response = await client.get("/v1/notifications", headers=auth(org.carol))
    assert response.status_code == 403


async def test_health(client, org):
    assert (await client.get("/healthz")).json()["status"] == "ok"
    response = await client.get("/v1/health", params={"redis_check": "false"})
    assert response.status_code == 200


def test_healthz_with_sync_client():
    from fastapi.testclient import TestClient

    from orgcal.main import app

    with TestClient(app) as sync_client:
        response = sync_client.get("/healthz")
    assert response.json() == {"status": "ok", "environment": "test"}
