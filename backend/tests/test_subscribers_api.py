import pytest
from httpx import ASGITransport, AsyncClient

from callrelay.main import app
from callrelay.schemas.pydantic_schemas import SubscriberCreate


@pytest.mark.asyncio
async def test_subscriber_crud(memory_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        created = await ac.post(
            "/api/subscribers/",
            json={"url": "https://hooks.example.com/a", "secret": "s", "agent_ids": ["asst-1"]},
        )
        assert created.status_code == 201
        body = created.json()
        sid = body["id"]
        assert body["events"] == ["call.started", "call.ended"]
        assert body["agent_ids"] == ["asst-1"]
        assert body["is_active"] is True

        updated = await ac.put(f"/api/subscribers/{sid}", json={"is_active": False, "agent_ids": []})
        assert updated.status_code == 200
        assert updated.json()["is_active"] is False
        assert updated.json()["agent_ids"] == []
        assert updated.json()["url"] == "https://hooks.example.com/a"

        listed = await ac.get("/api/subscribers/")
        assert [s["id"] for s in listed.json()] == [sid]

        deliveries = await ac.get(f"/api/subscribers/{sid}/deliveries")
        assert deliveries.status_code == 200
        assert deliveries.json() == []

        deleted = await ac.delete(f"/api/subscribers/{sid}")
        assert deleted.json() == {"deleted": True}
        gone = await ac.delete(f"/api/subscribers/{sid}")
        assert gone.status_code == 404

    assert memory_db.webhook_agents == []


@pytest.mark.asyncio
async def test_unknown_subscriber_is_404(memory_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        put = await ac.put("/api/subscribers/missing", json={"url": "https://x.example.com"})
        logs = await ac.get("/api/subscribers/missing/deliveries")

    assert put.status_code == 404
    assert logs.status_code == 404


@pytest.mark.asyncio
async def test_deliveries_listed_newest_first(memory_db):
    sub = memory_db.create_subscriber(SubscriberCreate(url="https://hooks.example.com/a"))
    for status in (200, 500):
        memory_db.insert_delivery_log({
            "webhook_id": sub["id"],
            "event_type": "call.ended",
            "payload": {"event": "call.ended"},
            "response_status": status,
            "error_message": None,
        })

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.get(f"/api/subscribers/{sub['id']}/deliveries")

    assert [d["response_status"] for d in resp.json()] == [500, 200]
