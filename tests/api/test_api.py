"""
HTTP API tests through FastAPI's TestClient.

Bodies are camelCase on the wire and decimals travel as strings.  The
caller identity comes from the X-Actor-Id / X-Actor-Role headers.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal
from threading import Barrier

import pytest
from fastapi.testclient import TestClient

from procurement_api.app import CORRELATION_HEADER, create_app
from procurement_kernel.domain.roles import Actor, Role
from tests.factories import (
    ADMIN,
    CREW,
    FINANCE,
    NOW,
    PM,
    SUPERINTENDENT,
    VESSEL_ATLANTIC,
)


def as_actor(actor: Actor) -> dict[str, str]:
    return {"X-Actor-Id": actor.user_id, "X-Actor-Role": actor.role.value}


def requisition_body(**overrides):
    body = {
        "vesselId": VESSEL_ATLANTIC,
        "urgency": "ROUTINE",
        "currency": "USD",
        "lineItems": [{
            "name": "Fuel injector",
            "quantity": "2",
            "unitPrice": "1500",
            "criticality": "ROUTINE",
            "category": "ENGINE",
        }],
    }
    body.update(overrides)
    return body


@pytest.fixture
def client(container):
    return TestClient(create_app(container=container))


@pytest.fixture
def created(client):
    response = client.post("/requisitions", json=requisition_body(), headers=as_actor(CREW))
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def approved(client, created):
    client.post(f"/requisitions/{created['id']}/submit", headers=as_actor(CREW))
    response = client.post(
        f"/requisitions/{created['id']}/approve",
        json={"comments": "Needed for next passage", "expectedVersion": 2},
        headers=as_actor(SUPERINTENDENT),
    )
    assert response.status_code == 200
    return response.json()


class TestHealthAndIdentity:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "0.1.0", "configId": "defaults"}

    def test_missing_identity(self, client):
        response = client.post("/requisitions", json=requisition_body())
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    @pytest.mark.parametrize("role", ["SYSTEM", "BOSUN"])
    def test_unusable_role(self, client, role):
        response = client.post(
            "/requisitions",
            json=requisition_body(),
            headers={"X-Actor-Id": "someone", "X-Actor-Role": role},
        )
        assert response.status_code == 401

    def test_role_header_is_case_insensitive(self, client):
        response = client.post(
            "/requisitions",
            json=requisition_body(),
            headers={"X-Actor-Id": "crew-1", "X-Actor-Role": Role.CREW.value.lower()},
        )
        assert response.status_code == 201

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={CORRELATION_HEADER: "corr-123"})
        assert response.headers[CORRELATION_HEADER] == "corr-123"

    def test_correlation_id_generated(self, client):
        assert client.get("/health").headers[CORRELATION_HEADER]


class TestRequisitionEndpoints:

    def test_create(self, created):
        assert created["requisitionNumber"] == "ATL-2024-0001"
        assert created["status"] == "DRAFT"
        assert created["totalAmount"] == "3000"
        assert created["version"] == 1
        assert created["lineItems"][0]["totalPrice"] == "3000"
        assert created["warnings"] == []

    def test_get(self, client, created):
        response = client.get(f"/requisitions/{created['id']}", headers=as_actor(CREW))
        assert response.json()["id"] == created["id"]

    def test_unknown_requisition(self, client):
        response = client.get("/requisitions/nope", headers=as_actor(CREW))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_malformed_body(self, client):
        response = client.post("/requisitions", json={"vesselId": VESSEL_ATLANTIC}, headers=as_actor(CREW))
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_FAILED"
        assert error["details"]["errors"]

    def test_domain_validation_names_field(self, client):
        body = requisition_body(lineItems=[{"name": "Gasket", "quantity": "0", "unitPrice": "10"}])
        response = client.post("/requisitions", json=body, headers=as_actor(CREW))

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "line_items[0].quantity"

    def test_update_draft(self, client, created):
        response = client.patch(
            f"/requisitions/{created['id']}",
            json={"lineItems": [{"name": "Fuel injector", "quantity": "3", "unitPrice": "1500"}],
                  "expectedVersion": 1},
            headers=as_actor(CREW),
        )
        assert response.status_code == 200
        assert response.json()["totalAmount"] == "4500"
        assert response.json()["version"] == 2

    def test_submit_reports_routing(self, client, created):
        response = client.post(f"/requisitions/{created['id']}/submit", headers=as_actor(CREW))

        body = response.json()
        assert body["status"] == "PENDING_APPROVAL"
        assert body["autoApproved"] is False
        assert body["requiredRole"] == "SUPERINTENDENT"
        assert body["authorizedApprovers"] == ["super-1"]
        assert body["approvalLevel"] == 1

    def test_approve(self, approved):
        assert approved["status"] == "APPROVED"
        assert approved["version"] == 3
        assert approved["approvals"][0]["approverId"] == "super-1"

    def test_stale_approval_conflicts(self, client, approved):
        response = client.post(
            f"/requisitions/{approved['id']}/approve",
            json={"expectedVersion": 2},
            headers=as_actor(SUPERINTENDENT),
        )
        assert response.status_code == 409
        details = response.json()["error"]["details"]
        assert details["expectedVersion"] == 2
        assert details["actualVersion"] == 3

    def test_concurrent_approvals_one_wins(self, client, created):
        client.post(f"/requisitions/{created['id']}/submit", headers=as_actor(CREW))
        barrier = Barrier(5)

        def approve():
            barrier.wait()
            return client.post(
                f"/requisitions/{created['id']}/approve",
                json={"comments": "ok"},
                headers=as_actor(SUPERINTENDENT),
            )

        with ThreadPoolExecutor(max_workers=5) as pool:
            responses = [f.result() for f in [pool.submit(approve) for _ in range(5)]]

        assert sorted(r.status_code for r in responses) == [200, 409, 409, 409, 409]
        codes = {r.json()["error"]["code"] for r in responses if r.status_code == 409}
        assert codes == {"CONCURRENCY_CONFLICT"}

    def test_unauthorized_approver(self, client, created):
        client.post(f"/requisitions/{created['id']}/submit", headers=as_actor(CREW))
        response = client.post(
            f"/requisitions/{created['id']}/approve", json={}, headers=as_actor(FINANCE),
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_AUTHORIZED"

    def test_invalid_transition(self, client, created):
        response = client.post(
            f"/requisitions/{created['id']}/approve", json={}, headers=as_actor(SUPERINTENDENT),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

    def test_reject_and_cancel(self, client, created):
        client.post(f"/requisitions/{created['id']}/submit", headers=as_actor(CREW))
        rejected = client.post(
            f"/requisitions/{created['id']}/reject",
            json={"comments": "Quote two alternatives"},
            headers=as_actor(SUPERINTENDENT),
        ).json()
        assert rejected["status"] == "DRAFT"

        cancelled = client.post(
            f"/requisitions/{created['id']}/cancel",
            json={"reason": "No longer required"},
            headers=as_actor(CREW),
        ).json()
        assert cancelled["status"] == "CANCELLED"

    def test_audit_trail(self, client, approved):
        response = client.get(f"/requisitions/{approved['id']}/audit-trail", headers=as_actor(CREW))

        body = response.json()
        assert body["requisitionId"] == approved["id"]
        assert [e["action"] for e in body["entries"]] == ["CREATED", "SUBMITTED", "APPROVED"]
        assert body["entries"][0]["prevHash"] is None
        assert body["entries"][1]["prevHash"] == body["entries"][0]["hash"]


class TestOfflineSyncEndpoint:

    def test_sync_is_idempotent(self, client):
        body = requisition_body(
            offlineId="atl-tablet-0042",
            offlineTimestamp=(NOW - timedelta(days=1)).isoformat(),
        )
        first = client.post("/requisitions/sync-offline", json=body, headers=as_actor(CREW))
        second = client.post("/requisitions/sync-offline", json=body, headers=as_actor(CREW))

        assert first.status_code == 201
        assert first.json()["alreadySynced"] is False
        assert first.json()["createdOffline"] is True
        assert second.json()["alreadySynced"] is True
        assert second.json()["id"] == first.json()["id"]

    def test_offline_id_required(self, client):
        response = client.post("/requisitions/sync-offline", json=requisition_body(), headers=as_actor(CREW))
        assert response.status_code == 400


class TestRequisitionToPayment:

    def test_full_cycle(self, client, approved):
        requisition_id = approved["id"]

        issued = client.post(f"/requisitions/{requisition_id}/generate-rfq", headers=as_actor(PM)).json()
        rfq = issued["rfq"]
        assert rfq["vendorIds"] == ["vendor-alpha", "vendor-bravo", "vendor-charlie"]
        assert issued["vendorsNotified"] == 3

        quote = client.post("/quotes", json={
            "rfqId": rfq["id"],
            "vendorId": "vendor-alpha",
            "lineItems": [{"description": "Fuel injector", "quantity": "2", "unitPrice": "1450"}],
            "totalAmount": "2900",
            "currency": "USD",
            "paymentTerms": "Net 30",
            "deliveryDays": 5,
            "validUntil": (NOW + timedelta(days=30)).isoformat(),
        }, headers=as_actor(PM))
        assert quote.status_code == 201
        quote_id = quote.json()["id"]

        selection = client.post(
            f"/quotes/{quote_id}/select", json={"reason": "Best price"}, headers=as_actor(PM),
        ).json()
        assert selection["quote"]["status"] == "SELECTED"
        assert selection["rfq"]["selectedQuoteId"] == quote_id

        generated = client.post("/purchase-orders/generate", json={"quoteId": quote_id}, headers=as_actor(PM))
        assert generated.status_code == 201
        order = generated.json()
        assert order["poNumber"] == "PO-202403-0001"
        assert order["status"] == "SENT"
        assert order["created"] is True

        again = client.post("/purchase-orders/generate", json={"quoteId": quote_id}, headers=as_actor(PM))
        assert again.status_code == 200
        assert again.json()["created"] is False
        assert again.json()["id"] == order["id"]

        client.post(f"/purchase-orders/{order['id']}/delivery-confirmation", json={}, headers=as_actor(PM))
        received = client.post(
            f"/purchase-orders/{order['id']}/receipt-confirmation",
            json={"condition": "GOOD", "lines": [{"lineNumber": 1, "receivedQuantity": "2"}]},
            headers=as_actor(CREW),
        ).json()
        assert received["status"] == "DELIVERED"
        assert received["receiptConfirmation"]["receivedBy"] == "crew-1"

        invoice = client.post("/invoices", json={
            "purchaseOrderId": order["id"],
            "invoiceNumber": "INV-1001",
            "lineItems": [{
                "lineNumber": 1, "description": "Fuel injector", "quantity": "2", "unitPrice": "1450",
            }],
            "totalAmount": "2900",
            "currency": "USD",
        }, headers=as_actor(FINANCE))
        assert invoice.status_code == 201
        invoice_id = invoice.json()["id"]

        matched = client.post(f"/invoices/{invoice_id}/three-way-match", headers=as_actor(FINANCE)).json()
        assert matched["status"] == "MATCHED"
        assert matched["matchResult"]["passed"] is True
        assert Decimal(matched["matchResult"]["priceVariance"]) == 0

        paid = client.post(f"/invoices/{invoice_id}/approve-payment", headers=as_actor(FINANCE)).json()
        assert paid["status"] == "APPROVED_FOR_PAYMENT"

        final = client.get(f"/requisitions/{requisition_id}", headers=as_actor(CREW)).json()
        assert final["status"] == "CLOSED"

    def test_selecting_twice_conflicts(self, client, workflow):
        issued = workflow.rfq()
        first = workflow.quote(issued.rfq, "vendor-alpha")
        second = workflow.quote(issued.rfq, "vendor-bravo")
        client.post(f"/quotes/{first.id}/select", json={"reason": "Best"}, headers=as_actor(PM))

        response = client.post(f"/quotes/{second.id}/select", json={"reason": "Also"}, headers=as_actor(PM))
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "QUOTE_ALREADY_SELECTED"
        assert error["details"]["selectedQuoteId"] == first.id


class TestDelegationEndpoints:

    def test_create_and_revoke(self, client):
        created = client.post("/delegations", json={
            "toUserId": "chief-1",
            "vesselId": VESSEL_ATLANTIC,
            "startDate": (NOW - timedelta(hours=1)).isoformat(),
            "endDate": (NOW + timedelta(days=7)).isoformat(),
            "permissions": ["APPROVE_REQUISITIONS"],
            "reason": "Shore leave",
        }, headers=as_actor(SUPERINTENDENT))
        assert created.status_code == 201
        assert created.json()["fromUserId"] == "super-1"
        assert created.json()["permissions"] == ["APPROVE_REQUISITIONS"]

        revoked = client.post(
            f"/delegations/{created.json()['id']}/revoke",
            json={"reason": "Back aboard"},
            headers=as_actor(ADMIN),
        ).json()
        assert revoked["isActive"] is False
        assert revoked["revokedBy"] == "admin-1"

    def test_unknown_capability_rejected(self, client):
        response = client.post("/delegations", json={
            "toUserId": "chief-1",
            "vesselId": VESSEL_ATLANTIC,
            "startDate": NOW.isoformat(),
            "endDate": (NOW + timedelta(days=1)).isoformat(),
            "permissions": ["LAUNCH_LIFEBOATS"],
        }, headers=as_actor(SUPERINTENDENT))
        assert response.status_code == 400
