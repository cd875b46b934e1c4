"""HTTP surface, with the database and renderer swapped for test doubles."""

import pytest
from httpx import ASGITransport, AsyncClient

from raffle_tickets.api.deps import get_db, get_orchestrator
from raffle_tickets.main import app
from raffle_tickets.services.print_service import PrintJobOrchestrator


@pytest.fixture
async def client(session_factory, catalog, codec, renderer):
    async def _db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    orchestrator = PrintJobOrchestrator(
        session_factory, renderer, catalog=catalog, codec=codec, timeout=1.0
    )
    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _pool(client, category="A", start=1, end=10):
    resp = await client.post(
        "/api/v1/tickets/pool", json={"category": category, "start": start, "end": end}
    )
    assert resp.status_code == 201
    return resp.json()


class TestTicketsApi:

    async def test_pool_and_lookup(self, client):
        assert (await _pool(client))["created"] == 10

        resp = await client.get("/api/v1/tickets/A-000003")
        assert resp.status_code == 200
        assert resp.json()["sequence"] == 3

        resp = await client.get("/api/v1/tickets/A-000099")
        assert resp.status_code == 404

    async def test_pool_outside_capacity(self, client):
        resp = await client.post(
            "/api/v1/tickets/pool", json={"category": "A", "start": 1, "end": 400000}
        )
        assert resp.status_code == 400

    async def test_barcode_stats_and_migration(self, client):
        await _pool(client, "B", 1, 3)

        stats = (await client.get("/api/v1/tickets/barcode-stats")).json()
        assert stats["missing"] == 3

        report = (await client.post("/api/v1/tickets/migrate-legacy", json={})).json()
        assert report["converted"] == 0
        assert report["missing"] == 3


class TestTemplatesApi:

    async def test_list(self, client):
        resp = await client.get("/api/v1/templates")
        names = {t["name"] for t in resp.json()}
        assert names == {"AVERY_16145", "PRINTWORKS", "LETTER_8_TICKETS"}

    async def test_unknown(self, client):
        resp = await client.get("/api/v1/templates/NOPE")
        assert resp.status_code == 404


class TestPrintJobsApi:

    async def test_create_runs_job(self, client, renderer):
        await _pool(client)
        resp = await client.post(
            "/api/v1/print-jobs", json={"category": "A", "start": 1, "end": 10}
        )
        assert resp.status_code == 201
        job_id = resp.json()["id"]
        assert resp.json()["total_pages"] == 1

        detail = (await client.get(f"/api/v1/print-jobs/{job_id}")).json()
        assert detail["status"] == "completed"
        assert detail["items"]["printed"] == 10
        assert len(renderer.calls) == 20

        listed = (await client.get("/api/v1/print-jobs", params={"status": "completed"})).json()
        assert [j["id"] for j in listed] == [job_id]

        resp = await client.post(f"/api/v1/print-jobs/{job_id}/cancel")
        assert resp.status_code == 409
        resp = await client.post(f"/api/v1/print-jobs/{job_id}/retry")
        assert resp.status_code == 409

    async def test_bad_requests(self, client):
        await _pool(client)
        resp = await client.post(
            "/api/v1/print-jobs",
            json={"category": "A", "start": 1, "end": 10, "template": "NOPE"},
        )
        assert resp.status_code == 400

        resp = await client.post(
            "/api/v1/print-jobs", json={"category": "A", "start": 50, "end": 60}
        )
        assert resp.status_code == 400

        resp = await client.get("/api/v1/print-jobs/404")
        assert resp.status_code == 404


class TestSalesApi:

    async def test_validate_and_sell(self, client, codec):
        await _pool(client, "C", 1, 1)
        barcode = codec.encode("C", 1)

        resp = await client.post("/api/v1/sales/validate", json={"barcode": barcode})
        assert resp.json()["accepted"] is True

        resp = await client.post("/api/v1/sales", json={"barcode": barcode})
        assert resp.json()["accepted"] is True
        assert resp.json()["ticket"]["status"] == "SOLD"

        resp = await client.post("/api/v1/sales", json={"barcode": barcode})
        assert resp.json()["reason"] == "ALREADY_SOLD"

    async def test_malformed_scan(self, client):
        resp = await client.post("/api/v1/sales/validate", json={"barcode": "9780011234567"})
        body = resp.json()
        assert resp.status_code == 200
        assert body["accepted"] is False
        assert body["reason"] == "INVALID_FORMAT"

    async def test_sale_with_clashing_barcode_is_a_conflict(self, client, set_ticket, codec):
        await _pool(client, "A", 1, 1)
        await _pool(client, "B", 1, 1)
        await set_ticket("B", 1, barcode=codec.encode("A", 1))

        resp = await client.post("/api/v1/sales", json={"barcode": codec.encode("A", 1)})
        assert resp.status_code == 409
        assert "held by" in resp.json()["detail"]

        resp = await client.get("/api/v1/tickets/A-000001")
        assert resp.json()["status"] == "AVAILABLE"

    async def test_scans_are_recorded(self, client, codec):
        await _pool(client, "D", 1, 1)
        barcode = codec.encode("D", 1)
        await client.post(
            "/api/v1/sales/validate", json={"barcode": barcode, "scanned_by": "gate-1"}
        )
        await client.post("/api/v1/sales", json={"barcode": barcode, "scan_method": "manual"})

        resp = await client.get("/api/v1/tickets/D-000001/scans")
        assert resp.status_code == 200
        scans = resp.json()
        assert [(s["scan_type"], s["accepted"]) for s in scans] == [
            ("sale", True), ("validate", True),
        ]
        assert scans[1]["scanned_by"] == "gate-1"
        assert scans[0]["scan_method"] == "manual"

        resp = await client.get("/api/v1/tickets/D-999999/scans")
        assert resp.status_code == 404
