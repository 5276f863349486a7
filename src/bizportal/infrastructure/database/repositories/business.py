"""Business and client repositories."""

from uuid import UUID

from sqlalchemy import select

from bizportal.infrastructure.database.models.business import Business, Client
from bizportal.infrastructure.database.repositories.base import BaseRepository


class BusinessRepository(BaseRepository[Business]):
    """Repository for Business entities."""

    model_class = Business


class ClientRepository(BaseRepository[Client]):
    """Repository for Client entities."""

    model_class = Client

    async def get_business_id(self, client_id: UUID) -> UUID | None:
        """Current owning business of a client, or None if the client is unknown.

        Reads the stored column directly so a reassignment committed by the
        workspace app is seen even if the Client is already loaded.
        """
        result = await self.session.execute(
            select(Client.business_id).where(Client.id == client_id)
        )
        return result.scalar_one_or_none()
