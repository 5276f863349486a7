"""Unit tests for the portal audit trail."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from bizportal.domain.portal.audit import UNRESOLVED_BUSINESS_ID, AuditLog
from bizportal.infrastructure.database.models import PortalActionOrigin


class TestAuditRecord:
    """Test event recording against the store."""

    @pytest.mark.asyncio
    async def test_business_resolved_from_client(self, core, client, business):
        event = await core.audit.record(client.id, "portal.enabled")

        assert event is not None
        assert event.business_id == business.id
        assert event.origin == PortalActionOrigin.INTERNAL.value

    @pytest.mark.asyncio
    async def test_business_follows_client_move(self, core, async_session, client, other_business):
        """Business is resolved at write time, not when the client was loaded."""
        client.business_id = other_business.id
        await async_session.commit()

        event = await core.audit.record(client.id, "portal.enabled")

        assert event.business_id == other_business.id

    @pytest.mark.asyncio
    async def test_unknown_client_uses_hint(self, core):
        hint = uuid.uuid4()

        event = await core.audit.record(
            uuid.uuid4(), "portal.session.revoked", business_id_hint=hint
        )

        assert event.business_id == hint

    @pytest.mark.asyncio
    async def test_unknown_client_without_hint_uses_nil_uuid(self, core):
        event = await core.audit.record(uuid.uuid4(), "portal.session.revoked")

        assert event.business_id == UNRESOLVED_BUSINESS_ID
        assert str(event.business_id) == "00000000-0000-0000-0000-000000000000"

    @pytest.mark.asyncio
    async def test_created_at_uses_clock(self, core, client, clock):
        event = await core.audit.record(client.id, "portal.enabled")

        assert event.created_at == clock()

    @pytest.mark.asyncio
    async def test_list_newest_first(self, core, client, clock):
        await core.audit.record(client.id, "first")
        clock.advance(minutes=1)
        await core.audit.record(client.id, "second")
        clock.advance(minutes=1)
        await core.audit.record(client.id, "third")

        events = await core.audit.list_for_client(client.id)

        assert [e.event_type for e in events] == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_list_pagination(self, core, client, clock):
        for i in range(5):
            await core.audit.record(client.id, f"event.{i}")
            clock.advance(seconds=1)

        page = await core.audit.list_for_client(client.id, limit=2, offset=1)

        assert [e.event_type for e in page] == ["event.3", "event.2"]


class TestAuditFailure:
    """A failed audit write never fails the caller."""

    @pytest.mark.asyncio
    async def test_commit_failure_returns_none(self):
        session = MagicMock()
        session.commit = AsyncMock(
            side_effect=OperationalError("INSERT", {}, Exception("disk full"))
        )
        session.rollback = AsyncMock()
        scope = MagicMock()
        scope.try_business_id_for_client = AsyncMock(return_value=uuid.uuid4())

        audit = AuditLog(session, scope)
        result = await audit.record(uuid.uuid4(), "portal.enabled")

        assert result is None
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lookup_failure_falls_back_to_hint(self):
        session = MagicMock()
        session.commit = AsyncMock()
        scope = MagicMock()
        scope.try_business_id_for_client = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("gone"))
        )
        hint = uuid.uuid4()

        audit = AuditLog(session, scope)
        event = await audit.record(uuid.uuid4(), "portal.enabled", business_id_hint=hint)

        assert event is not None
        assert event.business_id == hint
