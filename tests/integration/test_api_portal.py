"""Integration tests for the client-facing portal API."""

import base64
import uuid
from datetime import timedelta

import pytest

from bizportal.infrastructure.database.models import ContractStatus, DocumentType

INVALID_SESSION_BODY = {
    "error": "authentication_error",
    "message": "Portal session is invalid or expired.",
    "details": {},
}


def admin_path(business, client, suffix: str = "") -> str:
    return f"/api/v1/admin/businesses/{business.id}/clients/{client.id}/portal{suffix}"


async def issue_invite(async_client, operator_headers, business, client) -> str:
    response = await async_client.post(
        admin_path(business, client, "/invites"), headers=operator_headers, json={}
    )
    assert response.status_code == 201
    return response.json()["code"]


async def login(async_client, operator_headers, business, client) -> dict[str, str]:
    """Redeem a fresh invite and return bearer headers."""
    code = await issue_invite(async_client, operator_headers, business, client)
    response = await async_client.post("/api/v1/portal/invites/accept", json={"code": code})
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}


class TestInviteExchange:
    """Test redeeming invite codes."""

    @pytest.mark.asyncio
    async def test_accept_invite(self, async_client, operator_headers, business, client):
        code = await issue_invite(async_client, operator_headers, business, client)

        response = await async_client.post(
            "/api/v1/portal/invites/accept",
            json={"code": code, "device_label": "iPhone"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["session"]["client_id"] == str(client.id)
        assert body["session"]["business_id"] == str(business.id)
        assert body["session"]["device_label"] == "iPhone"
        assert len(body["token"]) == 43

    @pytest.mark.asyncio
    async def test_code_is_normalized(self, async_client, operator_headers, business, client):
        code = await issue_invite(async_client, operator_headers, business, client)
        typed = f" {code[:4].lower()}-{code[4:8]} {code[8:].lower()} "

        response = await async_client.post("/api/v1/portal/invites/accept", json={"code": typed})

        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, async_client, operator_headers, business, client):
        code = await issue_invite(async_client, operator_headers, business, client)

        first = await async_client.post("/api/v1/portal/invites/accept", json={"code": code})
        second = await async_client.post("/api/v1/portal/invites/accept", json={"code": code})

        assert first.status_code == 201
        assert second.status_code == 401
        assert second.json()["message"] == "Invite code is invalid or expired."

    @pytest.mark.asyncio
    async def test_expired_code(self, async_client, operator_headers, business, client, clock):
        code = await issue_invite(async_client, operator_headers, business, client)
        clock.advance(days=7)

        response = await async_client.post("/api/v1/portal/invites/accept", json={"code": code})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_business_mismatch(
        self, async_client, async_session, operator_headers, business, other_business, client
    ):
        code = await issue_invite(async_client, operator_headers, business, client)
        client.business_id = other_business.id
        await async_session.commit()

        response = await async_client.post("/api/v1/portal/invites/accept", json={"code": code})

        assert response.status_code == 403
        assert response.json()["error"] == "scope_violation"

    @pytest.mark.asyncio
    async def test_rate_limited(self, async_client):
        statuses = []
        for _ in range(11):
            response = await async_client.post(
                "/api/v1/portal/invites/accept", json={"code": "ZZZZZZZZZZZZ"}
            )
            statuses.append(response.status_code)

        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429


class TestBearerAuthentication:
    """Every rejected token gets the same answer."""

    @pytest.mark.asyncio
    async def test_missing_token(self, async_client):
        response = await async_client.get("/api/v1/portal/session")

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_unknown_token(self, async_client):
        response = await async_client.get(
            "/api/v1/portal/session", headers={"Authorization": "Bearer not-a-real-token"}
        )

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY

    @pytest.mark.asyncio
    async def test_expired_token(self, async_client, operator_headers, business, client, clock):
        headers = await login(async_client, operator_headers, business, client)
        clock.advance(days=30)

        response = await async_client.get("/api/v1/portal/session", headers=headers)

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY

    @pytest.mark.asyncio
    async def test_disabled_portal(self, async_client, operator_headers, business, client):
        headers = await login(async_client, operator_headers, business, client)
        await async_client.post(admin_path(business, client, "/disable"), headers=operator_headers)

        response = await async_client.get("/api/v1/portal/session", headers=headers)

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY

    @pytest.mark.asyncio
    async def test_client_moved(
        self, async_client, async_session, operator_headers, business, other_business, client
    ):
        headers = await login(async_client, operator_headers, business, client)
        client.business_id = other_business.id
        await async_session.commit()

        response = await async_client.get("/api/v1/portal/session", headers=headers)

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY


class TestDocuments:
    """Test the document listing and view auditing."""

    @pytest.mark.asyncio
    async def test_list_documents(
        self,
        async_client,
        operator_headers,
        business,
        client,
        other_client,
        make_estimate,
        make_contract,
    ):
        estimate = await make_estimate(client, number="EST-7")
        invoice = await make_estimate(client, number="INV-7", document_type=DocumentType.INVOICE)
        contract = await make_contract(client)
        await make_estimate(other_client, number="EST-OTHER")
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.get("/api/v1/portal/documents", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert [e["id"] for e in body["estimates"]] == [str(estimate.id)]
        assert [i["id"] for i in body["invoices"]] == [str(invoice.id)]
        assert [c["id"] for c in body["contracts"]] == [str(contract.id)]

    @pytest.mark.asyncio
    async def test_record_view(
        self, async_client, operator_headers, business, client, make_estimate
    ):
        estimate = await make_estimate(client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/documents/estimate/{estimate.id}/viewed", headers=headers
        )

        assert response.status_code == 204
        audit = await async_client.get(
            admin_path(business, client, "/audit"), headers=operator_headers
        )
        assert "estimate.viewed" in [e["event_type"] for e in audit.json()]

    @pytest.mark.asyncio
    async def test_unknown_entity_type(self, async_client, operator_headers, business, client):
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/documents/receipt/{uuid.uuid4()}/viewed", headers=headers
        )

        assert response.status_code == 422


class TestEstimateAcceptance:
    """Test accepting estimates over HTTP."""

    @pytest.mark.asyncio
    async def test_accept(self, async_client, operator_headers, business, client, make_estimate):
        estimate = await make_estimate(client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/estimates/{estimate.id}/accept", headers=headers
        )

        assert response.status_code == 200
        assert response.json()["estimate_status"] == "accepted"

        again = await async_client.post(
            f"/api/v1/portal/estimates/{estimate.id}/accept", headers=headers
        )
        assert again.status_code == 409
        assert again.json()["error"] == "state_conflict"

    @pytest.mark.asyncio
    async def test_other_clients_estimate(
        self, async_client, operator_headers, business, client, other_client, make_estimate
    ):
        estimate = await make_estimate(other_client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/estimates/{estimate.id}/accept", headers=headers
        )

        assert response.status_code == 403
        assert response.json()["details"] == {}

    @pytest.mark.asyncio
    async def test_locked_estimate(
        self, async_client, operator_headers, business, client, make_estimate, make_contract
    ):
        estimate = await make_estimate(client)
        await make_contract(client, status=ContractStatus.SIGNED, estimate=estimate)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/estimates/{estimate.id}/accept", headers=headers
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_missing_estimate(self, async_client, operator_headers, business, client):
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/estimates/{uuid.uuid4()}/accept", headers=headers
        )

        assert response.status_code == 404


class TestContractSigning:
    """Test signing contracts over HTTP."""

    @pytest.mark.asyncio
    async def test_sign_typed(
        self, async_client, operator_headers, business, client, make_contract
    ):
        contract = await make_contract(client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={
                "signer_name": "Dana Client",
                "signature_type": "typed",
                "signature_text": "Dana Client",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["contract_id"] == str(contract.id)
        assert body["signature_type"] == "typed"
        assert len(body["contract_body_hash"]) == 64

        again = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={
                "signer_name": "Dana Client",
                "signature_type": "typed",
                "signature_text": "Dana Client",
            },
        )
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_sign_drawn(
        self, async_client, operator_headers, business, client, make_contract
    ):
        contract = await make_contract(client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={
                "signer_name": "Dana Client",
                "signature_type": "drawn",
                "signature_image": base64.b64encode(b"\x89PNG-drawn").decode(),
            },
        )

        assert response.status_code == 201
        assert response.json()["signature_type"] == "drawn"

    @pytest.mark.asyncio
    async def test_bad_base64(
        self, async_client, operator_headers, business, client, make_contract
    ):
        contract = await make_contract(client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={
                "signer_name": "Dana Client",
                "signature_type": "drawn",
                "signature_image": "***not base64***",
            },
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_missing_signature_text(
        self, async_client, operator_headers, business, client, make_contract
    ):
        contract = await make_contract(client)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={"signer_name": "Dana Client", "signature_type": "typed"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_draft_contract(
        self, async_client, operator_headers, business, client, make_contract
    ):
        contract = await make_contract(client, status=ContractStatus.DRAFT)
        headers = await login(async_client, operator_headers, business, client)

        response = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={
                "signer_name": "Dana Client",
                "signature_type": "typed",
                "signature_text": "Dana Client",
            },
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_revoked_session_cannot_sign(
        self, async_client, operator_headers, business, client, make_contract
    ):
        contract = await make_contract(client)
        headers = await login(async_client, operator_headers, business, client)
        await async_client.post(
            admin_path(business, client, "/sessions/revoke-all"), headers=operator_headers
        )

        response = await async_client.post(
            f"/api/v1/portal/contracts/{contract.id}/sign",
            headers=headers,
            json={
                "signer_name": "Dana Client",
                "signature_type": "typed",
                "signature_text": "Dana Client",
            },
        )

        assert response.status_code == 401
        assert response.json() == INVALID_SESSION_BODY


class TestSessionTtl:
    """Sessions from invites use the configured lifetime."""

    @pytest.mark.asyncio
    async def test_default_lifetime(self, async_client, operator_headers, business, client, clock):
        code = await issue_invite(async_client, operator_headers, business, client)

        response = await async_client.post("/api/v1/portal/invites/accept", json={"code": code})

        expires_at = response.json()["session"]["expires_at"]
        assert expires_at.startswith((clock() + timedelta(days=30)).date().isoformat())
