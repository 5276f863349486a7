"""Unit tests for the portal identity registry."""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest

from bizportal.domain.portal.identity import pick_canonical_identity
from bizportal.infrastructure.database.models import PortalIdentity, PortalSessionState
from bizportal.infrastructure.database.repositories import (
    PortalAuditEventRepository,
    PortalIdentityRepository,
)
from bizportal.shared.credentials import CredentialCodec
from bizportal.shared.exceptions import NotFoundError


async def _add_identity(
    session, client, *, enabled, created_at, business_id=None
) -> PortalIdentity:
    identity = PortalIdentity(
        business_id=business_id or client.business_id,
        client_id=client.id,
        is_enabled=enabled,
        public_handle=CredentialCodec.new_public_handle(),
        created_at=created_at,
    )
    session.add(identity)
    await session.commit()
    return identity


class TestCanonicalIdentity:
    """Test canonical identity selection."""

    def test_empty(self):
        assert pick_canonical_identity([]) is None

    @pytest.mark.asyncio
    async def test_prefers_enabled_over_newer_disabled(self, async_session, client, clock):
        enabled = await _add_identity(async_session, client, enabled=True, created_at=clock())
        await _add_identity(
            async_session, client, enabled=False, created_at=clock() + timedelta(days=1)
        )

        identities = await PortalIdentityRepository(async_session).list_for_client(client.id)

        assert pick_canonical_identity(identities).id == enabled.id

    @pytest.mark.asyncio
    async def test_newest_when_none_enabled(self, async_session, client, clock):
        await _add_identity(async_session, client, enabled=False, created_at=clock())
        newest = await _add_identity(
            async_session, client, enabled=False, created_at=clock() + timedelta(hours=1)
        )

        identities = await PortalIdentityRepository(async_session).list_for_client(client.id)

        assert pick_canonical_identity(identities).id == newest.id


class TestEnsure:
    """Test lazy identity creation."""

    @pytest.mark.asyncio
    async def test_creates_disabled_identity(self, core, client, business):
        identity = await core.identities.ensure(client.id)

        assert identity.is_enabled is False
        assert identity.business_id == business.id
        assert len(identity.public_handle) == 32

    @pytest.mark.asyncio
    async def test_returns_existing(self, core, client):
        first = await core.identities.ensure(client.id)
        second = await core.identities.ensure(client.id)

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_unknown_client(self, core):
        with pytest.raises(NotFoundError):
            await core.identities.ensure(uuid.uuid4())


class TestSetEnabled:
    """Test enabling and disabling the portal."""

    @pytest.mark.asyncio
    async def test_enable_creates_identity_and_audits(self, core, async_session, client):
        identity = await core.identities.set_enabled(client.id, True)

        assert identity.is_enabled is True
        events = await PortalAuditEventRepository(async_session).list_by_type(
            client.id, "portal.enabled"
        )
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_enable_restamps_business(
        self, core, async_session, client, business, other_business, clock
    ):
        stale = await _add_identity(
            async_session, client, enabled=False, created_at=clock(), business_id=other_business.id
        )

        identity = await core.identities.set_enabled(client.id, True)

        assert identity.id == stale.id
        assert identity.business_id == business.id

    @pytest.mark.asyncio
    async def test_duplicates_move_together(self, core, async_session, client, clock):
        await _add_identity(async_session, client, enabled=False, created_at=clock())
        await _add_identity(
            async_session, client, enabled=True, created_at=clock() + timedelta(minutes=1)
        )

        await core.identities.set_enabled(client.id, False)
        rows = await PortalIdentityRepository(async_session).list_for_client(client.id)
        assert len(rows) == 2
        assert all(not row.is_enabled for row in rows)

        await core.identities.set_enabled(client.id, True)
        rows = await PortalIdentityRepository(async_session).list_for_client(client.id)
        assert all(row.is_enabled for row in rows)

    @pytest.mark.asyncio
    async def test_disable_revokes_all_sessions(self, core, async_session, client):
        await core.identities.set_enabled(client.id, True)
        first = await core.sessions.create(client.id)
        second = await core.sessions.create(client.id)

        await core.identities.set_enabled(client.id, False)

        assert first.session.state == PortalSessionState.REVOKED
        assert second.session.state == PortalSessionState.REVOKED
        assert await core.sessions.validate(first.raw_token) is None
        events = await PortalAuditEventRepository(async_session).list_by_type(
            client.id, "portal.sessions.revoked"
        )
        assert len(events) == 1
        assert events[0].summary == "Revoked 2 session(s). Reason: portal.disabled"

    @pytest.mark.asyncio
    async def test_disable_without_identity(self, core, client):
        assert await core.identities.set_enabled(client.id, False) is None

    @pytest.mark.asyncio
    async def test_disable_unknown_client(self, core):
        with pytest.raises(NotFoundError):
            await core.identities.set_enabled(uuid.uuid4(), False)

    @pytest.mark.asyncio
    async def test_enable_fails_closed_without_canonical_identity(self, core, client):
        await core.identities.ensure(client.id)

        with (
            patch(
                "bizportal.domain.portal.identity.pick_canonical_identity", return_value=None
            ),
            pytest.raises(NotFoundError),
        ):
            await core.identities.force_enable(client.id)
