import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_orphan_reclaimer, get_tracking_engine
from app.main import app
from app.services.orphan_reclaimer import OrphanReclaimer


@pytest_asyncio.fixture
async def client(tracking_engine):
    app.dependency_overrides[get_tracking_engine] = lambda: tracking_engine
    app.dependency_overrides[get_orphan_reclaimer] = lambda: OrphanReclaimer(tracking_engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _scan(workstation_id, lote="TEST001", start="2026-02-20T10:00:00Z", **extra):
    return {
        "workstation_id": workstation_id,
        "lote": lote,
        "instancia": 1,
        "version": 1,
        "start_time": start,
        **extra,
    }


@pytest.mark.asyncio
async def test_scan_chain_and_history(client):
    r1 = await client.post("/api/v1/trackings/", json=_scan(1, user_id=9))
    assert r1.status_code == 201
    first = r1.json()
    assert first["workstation_id"] == 1
    assert first["end_time"] is None
    assert first["user_id"] == 9

    r2 = await client.post("/api/v1/trackings/", json=_scan(2, start="2026-02-20T10:30:00Z"))
    assert r2.status_code == 201

    rg = await client.get(f"/api/v1/trackings/{first['id']}")
    assert rg.status_code == 200
    assert rg.json()["closure_reason"] == "CHAIN_TRANSITION"

    rh = await client.get("/api/v1/trackings/windows/TEST001/1/1")
    assert rh.status_code == 200
    assert [t["workstation_id"] for t in rh.json()] == [1, 2]

    ro = await client.get("/api/v1/trackings/overlaps")
    assert ro.status_code == 200
    assert ro.json() == []


@pytest.mark.asyncio
async def test_occupied_workstation_returns_409(client):
    r1 = await client.post("/api/v1/trackings/", json=_scan(1))
    assert r1.status_code == 201

    r2 = await client.post("/api/v1/trackings/", json=_scan(1, lote="TEST002"))
    assert r2.status_code == 409
    detail = r2.json()["detail"]
    assert detail["code"] == "WORKSTATION_OCCUPIED"
    assert detail["retryable"] is False
    assert detail["conflicting_tracking_id"] == r1.json()["id"]
    assert detail["occupying_window"] == {"lote": "TEST001", "instancia": 1, "version": 1}


@pytest.mark.asyncio
async def test_invalid_payload_returns_422(client):
    r = await client.post("/api/v1/trackings/", json=_scan(0))
    assert r.status_code == 422

    r = await client.post("/api/v1/trackings/", json=_scan(1, lote="   "))
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_scan_before_open_interval_returns_422(client):
    await client.post("/api/v1/trackings/", json=_scan(1, start="2026-02-20T11:00:00Z"))

    r = await client.post("/api/v1/trackings/", json=_scan(2, start="2026-02-20T10:00:00Z"))
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_manual_close(client):
    created = (await client.post("/api/v1/trackings/", json=_scan(1))).json()

    rc = await client.post(
        f"/api/v1/trackings/{created['id']}/close",
        json={"end_time": "2026-02-20T12:00:00Z"},
    )
    assert rc.status_code == 204

    body = (await client.get(f"/api/v1/trackings/{created['id']}")).json()
    assert body["closure_reason"] == "MANUAL_CLOSE"
    assert body["end_time"].startswith("2026-02-20T12:00:00")


@pytest.mark.asyncio
async def test_missing_tracking_returns_404(client):
    assert (await client.get("/api/v1/trackings/999")).status_code == 404

    rc = await client.post(
        "/api/v1/trackings/999/close",
        json={"end_time": "2026-02-20T12:00:00Z"},
    )
    assert rc.status_code == 404


@pytest.mark.asyncio
async def test_orphans_preview(client):
    created = (await client.post("/api/v1/trackings/", json=_scan(1, start="2020-01-01T00:00:00Z"))).json()

    r = await client.get("/api/v1/trackings/orphans")
    assert r.status_code == 200
    body = r.json()
    assert [c["interval"]["id"] for c in body] == [created["id"]]
    assert body[0]["has_continuation"] is False
    assert body[0]["proposed_end_time"] is not None


@pytest.mark.asyncio
async def test_health():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
