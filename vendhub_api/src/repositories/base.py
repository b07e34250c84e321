from __future__ import annotations

from typing import Any, Generic, Iterable, List, Optional, Tuple, Type, TypeVar
from uuid import UUID

from sqlalchemy import Executable, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Note:
      RLS enforcement is handled by Postgres using the `app.tenant_id` GUC.
      Ensure the session you're using has tenant context set via tenant_context.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def flush(self) -> None:
        await self.session.flush()

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def reload(self, entity: ModelT) -> ModelT:
        """
        Re-select an entity so server defaults, onupdate values and selectin
        relationships are loaded without lazy IO on attribute access.
        """
        model = type(entity)
        stmt = select(model).where(model.id == entity.id).execution_options(populate_existing=True)
        return (await self.execute(stmt)).scalar_one()

    async def save(self, entity: ModelT) -> ModelT:
        """Add, commit and return the freshly loaded entity."""
        self.session.add(entity)
        await self.session.commit()
        return await self.reload(entity)

    async def remove(self, entity: Any) -> None:
        """Delete an entity and commit."""
        await self.session.delete(entity)
        await self.session.commit()

    async def count(self, stmt: Select) -> int:
        """Count rows of an arbitrary select, ignoring its ordering and paging."""
        count_stmt = select(func.count()).select_from(stmt.order_by(None).limit(None).offset(None).subquery())
        return int((await self.execute(count_stmt)).scalar_one())

    async def paginate(self, stmt: Select, limit: int, offset: int) -> Tuple[List[Any], int]:
        """Return one page of `stmt` plus the unpaged total."""
        total = await self.count(stmt)
        items = list(await self.scalars(stmt.offset(offset).limit(limit)))
        return items, total


class CrudRepository(BaseRepository, Generic[ModelT]):
    """Repository bound to a single mapped model."""

    model: Type[ModelT]

    async def get(self, entity_id: UUID, *, for_update: bool = False) -> Optional[ModelT]:
        stmt = select(self.model).where(self.model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def get_by(self, **filters: Any) -> Optional[ModelT]:
        stmt = select(self.model).filter_by(**filters).limit(1)
        return await self.scalar_one_or_none(stmt)
