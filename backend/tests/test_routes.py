# Overview: Pytest coverage for the HTTP API (auth, error mapping, end-to-end flow).

"""
API Route Tests

- Every route except /api/health requires a bearer token
- Domain errors map to HTTP status plus a stable error code
- A bill can be driven from creation to settlement over HTTP
"""

import pytest
from datetime import datetime

from splitledger.services import identity_service, membership_service


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/groups"),
        ("post", "/api/groups"),
        ("post", "/api/bills"),
        ("get", "/api/bills"),
        ("post", "/api/splits/1/confirm"),
        ("get", "/api/balances"),
        ("get", "/api/notifications"),
    ])
    def test_requires_auth(self, client, db_session, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401

    def test_revoked_token_rejected(self, client, db_session, admin):
        _, token = identity_service.issue_token(admin.id)
        identity_service.revoke_token(token)
        response = client.get("/api/groups", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_expired_token_rejected(self, client, db_session, admin):
        _, token = identity_service.issue_token(admin.id, ttl_hours=-1)
        response = client.get("/api/groups", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_health_is_public(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"


class TestGroupsApi:

    def test_create_and_join(self, client, db_session, admin, outsider, token_for):
        response = client.post("/api/groups", json={"name": "Trip"}, headers=token_for(admin))
        assert response.status_code == 201
        code = response.json["group"]["invite_code"]

        response = client.post("/api/groups/join", json={"invite_code": code}, headers=token_for(outsider))
        assert response.status_code == 201
        assert response.json["member"]["role"] == "member"

        response = client.post("/api/groups/join", json={"invite_code": code}, headers=token_for(outsider))
        assert response.status_code == 409
        assert response.json["code"] == "DuplicateMember"

    def test_members_forbidden_to_outsider(self, client, db_session, group, outsider, token_for):
        response = client.get(f"/api/groups/{group.id}/members", headers=token_for(outsider))
        assert response.status_code == 403
        assert response.json["code"] == "Unauthorized"

    def test_remove_member(self, client, db_session, group, admin, m3, token_for):
        response = client.delete(f"/api/groups/{group.id}/members/{m3.id}", headers=token_for(admin))
        assert response.status_code == 200
        assert response.json["member"]["removed_at"] is not None


class TestBillsApi:

    def test_negative_rate_is_400(self, client, db_session, group, admin, token_for):
        headers = token_for(admin)
        bill = client.post("/api/bills", json={"group_id": group.id, "title": "Lunch"}, headers=headers).json["bill"]

        response = client.post(
            f"/api/bills/{bill['id']}/items",
            json={"name": "Refund", "rate_cents": -5},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json["code"] == "InvalidAmount"

        response = client.get(f"/api/bills/{bill['id']}", headers=headers)
        assert response.json["bill"]["items"] == []

    def test_unknown_bill_is_404(self, client, db_session, admin, token_for):
        response = client.get("/api/bills/999999", headers=token_for(admin))
        assert response.status_code == 404
        assert response.json["code"] == "BillNotFound"

    def test_approve_by_member_is_403(self, client, db_session, make_bill, m2, token_for):
        bill = make_bill(status="pending")
        response = client.post(f"/api/bills/{bill.id}/approve", headers=token_for(m2))
        assert response.status_code == 403

    def test_approve_twice_is_409(self, client, db_session, make_bill, admin, token_for):
        bill = make_bill(status="approved")
        response = client.post(f"/api/bills/{bill.id}/approve", headers=token_for(admin))
        assert response.status_code == 409
        assert response.json["code"] == "AlreadyProcessed"

    def test_locked_bill_is_409(self, client, db_session, make_bill, admin, token_for):
        bill = make_bill(status="pending")
        response = client.post(
            f"/api/bills/{bill.id}/items",
            json={"name": "Late", "rate_cents": 100},
            headers=token_for(admin),
        )
        assert response.status_code == 409
        assert response.json["code"] == "BillLocked"

    def test_patch_configures_split(self, client, db_session, make_bill, admin, m2, token_for):
        bill = make_bill(items=[("Taxi", 1000)])
        response = client.patch(
            f"/api/bills/{bill.id}",
            json={
                "tip_cents": 100,
                "split_method": "custom",
                "participant_ids": [admin.id, m2.id],
                "custom_amounts": {str(admin.id): 600, str(m2.id): 500},
            },
            headers=token_for(admin),
        )
        assert response.status_code == 200
        body = response.json["bill"]
        assert body["total_cents"] == 1100
        assert body["split_method"] == "custom"
        assert body["participant_user_ids"] == [admin.id, m2.id]

    def test_patch_rejects_unknown_field(self, client, db_session, make_bill, admin, token_for):
        bill = make_bill()
        response = client.patch(f"/api/bills/{bill.id}", json={"status": "settled"}, headers=token_for(admin))
        assert response.status_code == 400


class TestEndToEnd:

    def test_bill_to_settlement_over_http(self, client, db_session, group, admin, m2, m3, token_for):
        admin_h, m2_h, m3_h = token_for(admin), token_for(m2), token_for(m3)

        response = client.post("/api/bills", json={
            "group_id": group.id,
            "title": "Dinner",
            "items": [{"name": "Dinner", "rate_cents": 30000}],
        }, headers=admin_h)
        assert response.status_code == 201
        bill_id = response.json["bill"]["id"]

        assert client.post(f"/api/bills/{bill_id}/submit", headers=admin_h).status_code == 200
        response = client.post(f"/api/bills/{bill_id}/approve", headers=admin_h)
        assert response.status_code == 200
        splits = {s["user_id"]: s for s in response.json["bill"]["splits"]}
        assert {s["amount_cents"] for s in splits.values()} == {10000}

        assert client.get("/api/balances", headers=m2_h).json["owing_cents"] == 10000
        assert client.get("/api/balances", headers=admin_h).json["owed_cents"] == 20000

        m2_split, m3_split = splits[m2.id]["id"], splits[m3.id]["id"]

        response = client.post(f"/api/splits/{m2_split}/proof", json={}, headers=m2_h)
        assert response.status_code == 400
        assert response.json["code"] == "MissingProof"

        response = client.post(f"/api/splits/{m2_split}/proof", json={"upi_reference": "TXN1"}, headers=m2_h)
        assert response.json["split"]["payment_status"] == "submitted"

        response = client.post(f"/api/splits/{m2_split}/confirm", headers=m2_h)
        assert response.status_code == 403
        assert response.json["code"] == "SelfConfirmationDenied"

        pending = client.get("/api/splits/pending-verification", headers=admin_h).json["splits"]
        assert [s["id"] for s in pending] == [m2_split]

        response = client.post(f"/api/splits/{m2_split}/confirm", headers=admin_h)
        assert response.status_code == 200
        assert response.json["bill_status"] == "approved"

        client.post(f"/api/splits/{m3_split}/proof", json={"proof_image_url": "https://m/1.png"}, headers=m3_h)
        response = client.post(f"/api/splits/{m3_split}/reject", json={"reason": ""}, headers=admin_h)
        assert response.status_code == 400
        assert response.json["code"] == "MissingReason"

        response = client.post(f"/api/splits/{m3_split}/confirm", headers=admin_h)
        assert response.status_code == 200
        assert response.json["bill_status"] == "settled"

        bill = client.get(f"/api/bills/{bill_id}", headers=admin_h).json["bill"]
        assert bill["status"] == "settled"
        assert bill["settled_at"] is not None

        assert client.get("/api/balances", headers=admin_h).json == {
            "owed_cents": 0,
            "owing_cents": 0,
            "net_cents": 0,
            "groups": {},
        }

        history = client.get("/api/splits/history", headers=m2_h).json["splits"]
        assert [s["id"] for s in history] == [m2_split]

        assert client.get("/api/notifications/unread-count", headers=m2_h).json["count"] >= 2
        assert client.post("/api/notifications/read-all", headers=m2_h).status_code == 200
        assert client.get("/api/notifications/unread-count", headers=m2_h).json["count"] == 0

    def test_bill_list_respects_eligibility(self, client, db_session, make_bill, group, outsider, token_for):
        make_bill(created_at=datetime(2024, 1, 10))
        membership_service.add_member(group.id, outsider.id, joined_at=datetime(2024, 1, 15))

        response = client.get("/api/bills", headers=token_for(outsider))
        assert response.status_code == 200
        assert response.json["bills"] == []

        response = client.get(f"/api/groups/{group.id}/bills", headers=token_for(outsider))
        assert len(response.json["bills"]) == 1
