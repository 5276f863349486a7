"""Integration tests for the operator portal-management API."""

import uuid

import pytest

from bizportal.infrastructure.database.models import PortalActionOrigin


def admin_path(business, client, suffix: str = "") -> str:
    return f"/api/v1/admin/businesses/{business.id}/clients/{client.id}/portal{suffix}"


class TestOperatorAuth:
    """Test the operator key guard."""

    @pytest.mark.asyncio
    async def test_missing_key(self, async_client, business, client):
        response = await async_client.get(admin_path(business, client))

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_error"

    @pytest.mark.asyncio
    async def test_wrong_key(self, async_client, business, client):
        response = await async_client.get(
            admin_path(business, client), headers={"X-Portal-Admin": "wrong-key"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_key(self, async_client, operator_headers, business, client):
        response = await async_client.get(admin_path(business, client), headers=operator_headers)

        assert response.status_code == 200
        assert response.json() == {"enabled": False, "identity": None}


class TestOperatorScope:
    """Test that the client must belong to the business in the path."""

    @pytest.mark.asyncio
    async def test_business_mismatch(
        self, async_client, operator_headers, business, other_business, client
    ):
        response = await async_client.post(
            admin_path(other_business, client, "/enable"), headers=operator_headers
        )

        assert response.status_code == 403
        assert response.json() == {
            "error": "scope_violation",
            "message": "Not authorized.",
            "details": {},
        }

        audit = await async_client.get(
            admin_path(business, client, "/audit"), headers=operator_headers
        )
        assert [e["event_type"] for e in audit.json()] == [
            "portal.admin.blocked_business_mismatch"
        ]

    @pytest.mark.asyncio
    async def test_unknown_client(self, async_client, operator_headers, business):
        response = await async_client.get(
            f"/api/v1/admin/businesses/{business.id}/clients/{uuid.uuid4()}/portal",
            headers=operator_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestOperatorIdentity:
    """Test enable/disable."""

    @pytest.mark.asyncio
    async def test_enable_then_disable(self, async_client, operator_headers, business, client):
        enabled = await async_client.post(
            admin_path(business, client, "/enable"), headers=operator_headers
        )
        assert enabled.status_code == 200
        assert enabled.json()["enabled"] is True
        assert enabled.json()["identity"]["business_id"] == str(business.id)

        disabled = await async_client.post(
            admin_path(business, client, "/disable"), headers=operator_headers
        )
        assert disabled.status_code == 200
        assert disabled.json()["enabled"] is False


class TestOperatorInvites:
    """Test invite management."""

    @pytest.mark.asyncio
    async def test_create_invite(self, async_client, operator_headers, business, client):
        response = await async_client.post(
            admin_path(business, client, "/invites"),
            headers=operator_headers,
            json={"ttl_days": 3, "delivery_method": "email", "note": "Sent by Alex"},
        )

        assert response.status_code == 201
        body = response.json()
        assert len(body["code"]) == 12
        assert body["invite"]["state"] == "draft"
        assert body["invite"]["delivery_method"] == "email"
        assert "code_hash" not in body["invite"]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, async_client, operator_headers, business, client):
        response = await async_client.post(
            admin_path(business, client, "/invites"),
            headers=operator_headers,
            json={"ttl": 3},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_mark_sent_and_revoke(self, async_client, operator_headers, business, client):
        created = await async_client.post(
            admin_path(business, client, "/invites"), headers=operator_headers, json={}
        )
        invite_id = created.json()["invite"]["id"]

        sent = await async_client.post(
            admin_path(business, client, f"/invites/{invite_id}/sent"),
            headers=operator_headers,
            json={"delivery_method": "sms"},
        )
        assert sent.status_code == 200
        assert sent.json()["state"] == "sent"
        assert sent.json()["send_count"] == 1

        revoked = await async_client.post(
            admin_path(business, client, f"/invites/{invite_id}/revoke"),
            headers=operator_headers,
        )
        assert revoked.status_code == 200
        assert revoked.json()["state"] == "revoked"

        again = await async_client.post(
            admin_path(business, client, f"/invites/{invite_id}/revoke"),
            headers=operator_headers,
        )
        assert again.status_code == 409
        assert again.json()["error"] == "state_conflict"

    @pytest.mark.asyncio
    async def test_invite_of_other_client(
        self, async_client, operator_headers, business, client, other_client
    ):
        created = await async_client.post(
            admin_path(business, client, "/invites"), headers=operator_headers, json={}
        )
        invite_id = created.json()["invite"]["id"]

        response = await async_client.post(
            admin_path(business, other_client, f"/invites/{invite_id}/revoke"),
            headers=operator_headers,
        )

        assert response.status_code == 404


class TestOperatorSessions:
    """Test direct session management."""

    @pytest.mark.asyncio
    async def test_create_while_disabled(self, async_client, operator_headers, business, client):
        response = await async_client.post(
            admin_path(business, client, "/sessions"), headers=operator_headers, json={}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_create_and_revoke(self, async_client, operator_headers, business, client):
        await async_client.post(admin_path(business, client, "/enable"), headers=operator_headers)

        created = await async_client.post(
            admin_path(business, client, "/sessions"),
            headers=operator_headers,
            json={"device_label": "Front desk", "ttl_days": 1},
        )
        assert created.status_code == 201
        token = created.json()["token"]
        session_id = created.json()["session"]["id"]

        me = await async_client.get(
            "/api/v1/portal/session", headers={"Authorization": f"Bearer {token}"}
        )
        assert me.status_code == 200

        revoked = await async_client.post(
            admin_path(business, client, f"/sessions/{session_id}/revoke"),
            headers=operator_headers,
        )
        assert revoked.status_code == 200
        assert revoked.json()["state"] == "revoked"

        again = await async_client.post(
            admin_path(business, client, f"/sessions/{session_id}/revoke"),
            headers=operator_headers,
        )
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_revoke_all(self, async_client, operator_headers, business, client):
        await async_client.post(admin_path(business, client, "/enable"), headers=operator_headers)
        for _ in range(2):
            await async_client.post(
                admin_path(business, client, "/sessions"), headers=operator_headers, json={}
            )

        response = await async_client.post(
            admin_path(business, client, "/sessions/revoke-all"),
            headers=operator_headers,
            json={"reason": "lost device"},
        )

        assert response.status_code == 200
        assert response.json() == {"revoked": 2}

        audit = await async_client.get(
            admin_path(business, client, "/audit"), headers=operator_headers
        )
        summaries = [
            e["summary"] for e in audit.json() if e["event_type"] == "portal.sessions.revoked"
        ]
        assert summaries == ["Revoked 2 session(s). Reason: lost device"]


class TestOperatorPreview:
    """Test preview sessions over HTTP."""

    @pytest.mark.asyncio
    async def test_preview_without_backend(self, async_client, operator_headers, business, client):
        response = await async_client.post(
            admin_path(business, client, "/preview"), headers=operator_headers
        )

        assert response.status_code == 201
        body = response.json()
        assert body["remote_seeded"] is False
        assert body["session"]["device_label"] == "Portal Preview"

        status = await async_client.get(admin_path(business, client), headers=operator_headers)
        assert status.json()["enabled"] is True

    @pytest.mark.asyncio
    async def test_preview_business_mismatch(
        self, async_client, operator_headers, other_business, client
    ):
        response = await async_client.post(
            admin_path(other_business, client, "/preview"), headers=operator_headers
        )

        assert response.status_code == 403


class TestOperatorAudit:
    """Test the audit trail listing."""

    @pytest.mark.asyncio
    async def test_audit_newest_first(
        self, async_client, operator_headers, business, client, clock
    ):
        await async_client.post(admin_path(business, client, "/enable"), headers=operator_headers)
        clock.advance(minutes=1)
        await async_client.post(admin_path(business, client, "/disable"), headers=operator_headers)

        response = await async_client.get(
            admin_path(business, client, "/audit"), headers=operator_headers
        )

        assert response.status_code == 200
        events = response.json()
        assert [e["event_type"] for e in events] == ["portal.disabled", "portal.enabled"]
        assert all(e["origin"] == PortalActionOrigin.INTERNAL.value for e in events)

    @pytest.mark.asyncio
    async def test_audit_limit_validated(self, async_client, operator_headers, business, client):
        response = await async_client.get(
            admin_path(business, client, "/audit?limit=0"), headers=operator_headers
        )

        assert response.status_code == 422
