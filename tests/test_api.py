"""HTTP API tests — auth, role gates, RFC 7807 error bodies and the full
submit / approve round trip through the routers.
"""

from __future__ import annotations

import uuid

from httpx import AsyncClient

from leavepro.common.constants import UserRole
from tests.conftest import auth_headers_for, create_access_token


APPLICATION = {
    "start_date": "2026-01-01",
    "end_date": "2026-01-05",
    "reason": "Family function out of town",
}


async def _submit(client: AsyncClient, org, **overrides) -> dict:
    body = {"leave_type_id": str(org.leave_type.id), **APPLICATION, **overrides}
    resp = await client.post(
        "/api/v1/leave/applications", json=body, headers=auth_headers_for(org.employee),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["application"]


class TestHealth:

    async def test_health_needs_no_auth(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestAuth:

    async def test_missing_token(self, client: AsyncClient, org):
        resp = await client.get("/api/v1/leave/balances")
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient, org):
        token = create_access_token(org.employee.id, expired=True)
        resp = await client.get(
            "/api/v1/leave/balances", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired."

    async def test_token_for_unknown_account(self, client: AsyncClient, org):
        token = create_access_token(uuid.uuid4())
        resp = await client.get(
            "/api/v1/leave/balances", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_tampered_token(self, client: AsyncClient, org):
        token = create_access_token(org.employee.id) + "x"
        resp = await client.get(
            "/api/v1/leave/balances", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_employee_cannot_approve(self, client: AsyncClient, org):
        resp = await client.put(
            f"/api/v1/leave/applications/{uuid.uuid4()}/approve",
            headers=auth_headers_for(org.employee),
        )
        assert resp.status_code == 403
        assert resp.headers["content-type"].startswith("application/problem+json")
        assert resp.json()["type"].endswith("/forbidden")

    async def test_only_admins_manage_leave_types(self, client: AsyncClient, org):
        token = create_access_token(org.manager.id, UserRole.manager)
        resp = await client.post(
            "/api/v1/leave/types",
            json={"name": "Sick Leave", "max_per_year": 6},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 403


class TestWorkflowApi:

    async def test_submit_and_approve_round_trip(self, client: AsyncClient, org):
        app = await _submit(client, org)
        assert app["status"] == "pending"
        assert app["total_days"] == 5

        pending = await client.get(
            "/api/v1/leave/applications/pending", headers=auth_headers_for(org.manager),
        )
        assert [a["id"] for a in pending.json()] == [app["id"]]

        resp = await client.put(
            f"/api/v1/leave/applications/{app['id']}/approve",
            json={"comment": "Enjoy"},
            headers=auth_headers_for(org.manager),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["application"]["status"] == "approved"
        assert body["application"]["version"] == 2
        assert body["notifications"][0]["kind"] == "approved"

        balances = await client.get(
            "/api/v1/leave/balances", headers=auth_headers_for(org.employee),
        )
        [balance] = balances.json()
        assert (balance["used"], balance["remaining"]) == (5, 7)

    async def test_overlap_is_a_problem_detail(self, client: AsyncClient, org):
        await _submit(client, org)

        resp = await client.post(
            "/api/v1/leave/applications",
            json={
                "leave_type_id": str(org.leave_type.id),
                **APPLICATION,
                "start_date": "2026-01-03",
                "end_date": "2026-01-04",
            },
            headers=auth_headers_for(org.employee),
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["type"].endswith("/conflict")
        assert body["instance"] == "/api/v1/leave/applications"
        assert "start_date" in body["errors"]

    async def test_bad_dates_are_422(self, client: AsyncClient, org):
        resp = await client.post(
            "/api/v1/leave/applications",
            json={
                "leave_type_id": str(org.leave_type.id),
                "start_date": "2026-01-05",
                "end_date": "2026-01-01",
                "reason": "Family function out of town",
            },
            headers=auth_headers_for(org.employee),
        )
        assert resp.status_code == 422
        assert "end_date" in resp.json()["errors"]

    async def test_malformed_body_is_422_problem(self, client: AsyncClient, org):
        resp = await client.post(
            "/api/v1/leave/applications",
            json={"leave_type_id": "not-a-uuid"},
            headers=auth_headers_for(org.employee),
        )
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        assert "leave_type_id" in resp.json()["errors"]

    async def test_reject_twice_is_409(self, client: AsyncClient, org):
        app = await _submit(client, org)
        url = f"/api/v1/leave/applications/{app['id']}/reject"

        first = await client.put(url, headers=auth_headers_for(org.manager))
        assert first.status_code == 200
        second = await client.put(url, headers=auth_headers_for(org.manager))
        assert second.status_code == 409
        assert second.json()["type"].endswith("/invalid-transition")

    async def test_cancel_and_list_mine(self, client: AsyncClient, org):
        app = await _submit(client, org)

        resp = await client.put(
            f"/api/v1/leave/applications/{app['id']}/cancel",
            headers=auth_headers_for(org.employee),
        )
        assert resp.json()["application"]["status"] == "cancelled"

        mine = await client.get(
            "/api/v1/leave/applications/mine",
            params={"status": "cancelled"},
            headers=auth_headers_for(org.employee),
        )
        assert mine.json()["meta"]["total"] == 1

    async def test_conflict_probe(self, client: AsyncClient, org):
        app = await _submit(client, org)

        resp = await client.get(
            "/api/v1/leave/conflicts",
            params={"start_date": "2026-01-05", "end_date": "2026-01-07"},
            headers=auth_headers_for(org.employee),
        )
        assert resp.json() == {"has_conflict": True, "conflicting_ids": [app["id"]]}

    async def test_manager_is_notified_over_http(self, client: AsyncClient, org):
        await _submit(client, org)

        count = await client.get(
            "/api/v1/notifications/unread-count", headers=auth_headers_for(org.manager),
        )
        assert count.json()["data"]["count"] == 1

        listing = await client.get(
            "/api/v1/notifications", headers=auth_headers_for(org.manager),
        )
        note = listing.json()["data"][0]
        assert note["title"] == "New Leave Application"

        read = await client.put(
            f"/api/v1/notifications/{note['id']}/read",
            headers=auth_headers_for(org.manager),
        )
        assert read.json()["data"]["is_read"] is True

        read_all = await client.put(
            "/api/v1/notifications/read-all", headers=auth_headers_for(org.manager),
        )
        assert read_all.json()["data"]["count"] == 0


class TestLeaveTypeApi:

    async def test_admin_creates_updates_and_deletes(self, client: AsyncClient, org):
        headers = auth_headers_for(org.admin)

        created = await client.post(
            "/api/v1/leave/types", json={"name": "Sick Leave", "max_per_year": 6},
            headers=headers,
        )
        assert created.status_code == 201
        type_id = created.json()["id"]

        updated = await client.put(
            f"/api/v1/leave/types/{type_id}", json={"max_per_year": 4}, headers=headers,
        )
        assert updated.json()["adjustment"]["balances_updated"] == 3

        deleted = await client.delete(f"/api/v1/leave/types/{type_id}", headers=headers)
        assert deleted.status_code == 204

        listing = await client.get("/api/v1/leave/types", headers=headers)
        assert [t["name"] for t in listing.json()] == ["Casual Leave"]
