"""Base repository with explicit tenant scoping."""

from collections.abc import Sequence
from typing import Any, Generic, TypeVar, cast
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.shared.exceptions import StorageError
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Base repository for record-store access.

    Unlike a request-scoped tenant filter, scope is always an explicit
    argument: callers pass the business/client ids they re-derived from
    stored relationships.
    """

    model_class: type[T]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _base_query(self) -> Any:
        return select(cast(Any, self.model_class))

    def _scoped_query(self, business_id: UUID) -> Any:
        """Base query restricted to one business."""
        model = cast(Any, self.model_class)
        return self._base_query().where(model.business_id == business_id)

    async def get_by_id(self, id: UUID, *, fresh: bool = False) -> T | None:
        """Get entity by ID (unscoped; callers check scope).

        ``fresh`` re-reads the row even if the entity is already loaded.
        """
        return await self.session.get(self.model_class, id, populate_existing=fresh)

    async def refresh(self, entity: T) -> None:
        """Reload an entity's columns from the store."""
        await self.session.refresh(entity)

    async def get_scoped(self, id: UUID, business_id: UUID) -> T | None:
        """Get entity by ID within one business."""
        model = cast(Any, self.model_class)
        result = await self.session.execute(self._scoped_query(business_id).where(model.id == id))
        return result.scalar_one_or_none()

    async def list_all(self) -> Sequence[T]:
        result = await self.session.execute(self._base_query())
        return result.scalars().all()

    async def add(self, entity: T) -> T:
        """Insert a new entity and flush it so generated values are set."""
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def commit(self) -> None:
        """Commit the unit of work.

        Raises:
            StorageError: If the commit fails; the session is rolled back.
        """
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "storage_commit_failed",
                repository=type(self).__name__,
                error=str(e),
            )
            raise StorageError("Failed to save changes.", details={"error": str(e)}) from e
