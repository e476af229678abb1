"""Payroll HTTP API test suite — end-to-end flow, RFC 7807 envelopes, rate limits.

All requests go through the ASGI app with the DB and mail gateway overridden.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from tests.conftest import create_employee

BASE = "/api/v1/payroll"


async def _seed(db) -> None:
    await create_employee(db, employee_id="EMP-001", email="a@example.com")
    await create_employee(db, employee_id="EMP-002", email=None)
    await db.commit()


async def _calculated(client, db, period: str = "2026-01") -> None:
    await _seed(db)
    resp = await client.post(f"{BASE}/periods", json={"period": period})
    assert resp.status_code == 201, resp.text
    resp = await client.post(f"{BASE}/periods/{period}/calculate")
    assert resp.status_code == 200, resp.text


def _assert_problem(resp, status: int, error_type: str) -> dict:
    assert resp.status_code == status, resp.text
    assert resp.headers["content-type"].startswith("application/problem+json")
    body = resp.json()
    assert body["status"] == status
    assert body["type"].endswith(f"/{error_type}")
    return body


# ═════════════════════════════════════════════════════════════════════
# Health
# ═════════════════════════════════════════════════════════════════════


async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ═════════════════════════════════════════════════════════════════════
# Full flow
# ═════════════════════════════════════════════════════════════════════


class TestPayrollFlow:

    async def test_create_calculate_close(self, client, db, gateway):
        await _seed(db)

        resp = await client.post(f"{BASE}/periods", json={"period": "2026-01"})
        assert resp.status_code == 201
        assert resp.json()["status"] == "draft"
        assert resp.json()["label"] == "January 2026"

        resp = await client.post(f"{BASE}/periods/2026-01/calculate")
        assert resp.status_code == 200
        body = resp.json()
        assert body["employee_count"] == 2
        assert body["errors"] == []
        assert Decimal(body["summary"]["total_net"]) == Decimal("1444.00")

        resp = await client.post(
            f"{BASE}/periods/2026-01/mark-paid", headers={"X-Actor-Id": "hr-admin"},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["status"] == "paid"
        assert body["paid_by"] == "hr-admin"
        assert body["emails"] == {"sent": 1, "failed": 1, "success_rate": 100.0}
        assert body["failed"][0]["reason"] == "no address"
        assert [m.to for m in gateway.sent] == ["a@example.com"]

        resp = await client.get(f"{BASE}/periods/2026-01")
        detail = resp.json()
        assert detail["status"] == "paid"
        assert detail["payment_count"] == 2
        assert detail["emails_sent"] + detail["emails_failed"] == detail["email_details"]["total_attempted"]

        resp = await client.get(f"{BASE}/periods/2026-01/payments")
        assert resp.json()["total"] == 2
        assert {p["payment_status"] for p in resp.json()["data"]} == {"paid"}

    async def test_payment_endpoints(self, client, db):
        await _calculated(client, db)

        resp = await client.get(f"{BASE}/payments/EMP-001/2026-01")
        assert resp.status_code == 200
        payment = resp.json()
        assert Decimal(payment["net_salary"]) == Decimal("722.00")
        assert payment["email_status"] == "unsent"

        resp = await client.post(f"{BASE}/payments/{payment['id']}/approve")
        assert resp.json()["payment_status"] == "approved"

        resp = await client.get(f"{BASE}/employees/EMP-001/payments")
        assert resp.json()["total"] == 1

    async def test_resend_and_send_payslip(self, client, db, gateway):
        await _calculated(client, db)
        gateway.fail_for.add("a@example.com")
        resp = await client.post(f"{BASE}/periods/2026-01/mark-paid")
        assert resp.json()["emails"]["sent"] == 0

        gateway.fail_for.clear()
        resp = await client.post(f"{BASE}/periods/2026-01/resend-failed")
        assert resp.status_code == 200
        assert resp.json()["resent"] == 1
        assert resp.json()["failed"] == 1

        resp = await client.post(f"{BASE}/payments/EMP-001/2026-01/send-payslip")
        assert resp.status_code == 200
        assert resp.json()["message_id"]

    async def test_list_periods(self, client):
        for key in ("2025-11", "2025-12"):
            await client.post(f"{BASE}/periods", json={"period": key})
        resp = await client.get(f"{BASE}/periods")
        assert [p["period"] for p in resp.json()["data"]] == ["2025-12", "2025-11"]


# ═════════════════════════════════════════════════════════════════════
# Error envelopes
# ═════════════════════════════════════════════════════════════════════


class TestErrors:

    async def test_duplicate_period(self, client):
        await client.post(f"{BASE}/periods", json={"period": "2026-01"})
        resp = await client.post(f"{BASE}/periods", json={"period": "2026-01"})
        _assert_problem(resp, 409, "duplicate")

    async def test_invalid_month(self, client):
        resp = await client.post(f"{BASE}/periods", json={"period": "2026-13"})
        body = _assert_problem(resp, 422, "validation-error")
        assert "period" in body["errors"]

    async def test_malformed_body(self, client):
        resp = await client.post(f"{BASE}/periods", json={"period": "Jan 2026"})
        _assert_problem(resp, 422, "validation-error")

    async def test_unknown_period(self, client):
        resp = await client.get(f"{BASE}/periods/2030-01")
        _assert_problem(resp, 404, "not-found")

    async def test_mark_paid_on_draft(self, client, db):
        await _seed(db)
        await client.post(f"{BASE}/periods", json={"period": "2026-01"})
        resp = await client.post(f"{BASE}/periods/2026-01/mark-paid")
        body = _assert_problem(resp, 422, "invalid-status")
        assert body["errors"]["status"] == ["draft"]

    async def test_mark_paid_twice(self, client, db):
        await _calculated(client, db)
        await client.post(f"{BASE}/periods/2026-01/mark-paid")
        resp = await client.post(f"{BASE}/periods/2026-01/mark-paid")
        _assert_problem(resp, 409, "already-paid")

    async def test_calculate_paid_period(self, client, db):
        await _calculated(client, db)
        await client.post(f"{BASE}/periods/2026-01/mark-paid")
        resp = await client.post(f"{BASE}/periods/2026-01/calculate")
        _assert_problem(resp, 409, "already-paid")

    async def test_transport_unavailable(self, client, db, gateway):
        await _calculated(client, db)
        gateway.verify_error = "Cannot connect to mail server smtp.test:587"

        resp = await client.post(f"{BASE}/periods/2026-01/mark-paid")
        _assert_problem(resp, 503, "mail-transport-unavailable")

        resp = await client.get(f"{BASE}/periods/2026-01")
        assert resp.json()["status"] == "calculated"

    async def test_approve_unknown_payment(self, client):
        resp = await client.post(f"{BASE}/payments/{uuid.uuid4()}/approve")
        _assert_problem(resp, 404, "not-found")

    async def test_close_endpoint_is_rate_limited(self, client, db):
        await _calculated(client, db)
        statuses = [
            (await client.post(f"{BASE}/periods/2026-01/mark-paid")).status_code
            for _ in range(6)
        ]
        assert statuses[0] == 200
        assert statuses[-1] == 429


# ═════════════════════════════════════════════════════════════════════
# Stats
# ═════════════════════════════════════════════════════════════════════


async def test_stats_after_close(client, db):
    await _calculated(client, db)
    resp = await client.post(f"{BASE}/periods/2026-01/mark-paid")
    assert resp.status_code == 200, resp.text

    resp = await client.get(f"{BASE}/stats")

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["total_periods"] == 1
    assert body["periods_by_status"]["paid"] == 1
    assert body["payments_by_status"]["paid"] == 2
    assert Decimal(body["total_paid_amount"]) == Decimal(body["paid_net_total"])
    assert body["active_employees"] == 2
    assert body["config_rate"] == 100
    assert body["latest_period"]["period"] == "2026-01"
