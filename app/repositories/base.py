"""
Base repository.

Shared data access for settlement repositories. Methods flush or execute
but never commit; the calling service owns the transaction boundary.
State transitions go through conditional_update() so the affected-row
count tells the caller whether it won the transition.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Repository bound to one model and one session.

    Example:
        class CommissionRepository(BaseRepository[Commission]):
            def __init__(self, session: AsyncSession):
                super().__init__(Commission, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def get_by_id(
        self, id: Any, for_update: bool = False
    ) -> ModelType | None:
        """
        Get entity by primary key.

        Args:
            id: Primary key value (tuple for composite keys)
            for_update: Lock the row (SELECT ... FOR UPDATE)

        Returns:
            Entity or None if not found
        """
        return await self.session.get(
            self.model, id, with_for_update=for_update or None
        )

    async def get_by(self, **filters: Any) -> ModelType | None:
        """Get first entity matching column filters."""
        stmt = select(self.model).filter_by(**filters).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Add entity and flush so server defaults and keys are populated.

        Args:
            **data: Column values

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(self, id: Any, **data: Any) -> ModelType | None:
        """
        Set attributes on the entity with this primary key.

        Returns:
            Updated entity or None if not found
        """
        entity = await self.get_by_id(id)
        if entity is None:
            return None

        for key, value in data.items():
            setattr(entity, key, value)

        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def count(self, **filters: Any) -> int:
        stmt = select(func.count()).select_from(self.model)
        if filters:
            stmt = stmt.filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        stmt = select(self.model).filter_by(**filters).limit(1)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def conditional_update(self, *conditions: Any, **values: Any) -> int:
        """
        Run a single UPDATE ... WHERE <conditions>.

        The session identity map is not synchronized; reload entities
        with populate_existing when their new state is needed.

        Args:
            *conditions: WHERE clauses, all must hold
            **values: Columns to set

        Returns:
            Number of rows the database reports as updated
        """
        stmt = (
            update(self.model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def insert_many(self, rows: list[dict[str, Any]]) -> int:
        """
        Insert rows with one executemany.

        Returns:
            Number of rows inserted
        """
        if not rows:
            return 0
        await self.session.execute(insert(self.model), rows)
        return len(rows)
