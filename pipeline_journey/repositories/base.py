"""
Base repository with generic read/insert operations.

Repositories only flush; the calling service owns the transaction so that
several writes (a stage move and its journey schedule) commit together.
"""
import uuid
from typing import TypeVar, Generic, Type, Optional, Union

from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.core.pagination import paginate_query

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository.
    Inherit and specify the model class.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def add(self, db_obj: ModelType) -> ModelType:
        """Stage a new record in the current transaction."""
        self.session.add(db_obj)
        await self.session.flush()
        return db_obj

    async def get(self, id: Union[uuid.UUID, str]) -> Optional[ModelType]:
        """Get a record by ID."""
        return await self.session.get(self.model, id)

    async def list_paginated(
        self,
        filters: Optional[dict] = None,
        page: int = 1,
        limit: int = 20,
        order_by: str = "created_at",
        order_desc: bool = True
    ) -> dict:
        """List records with pagination."""
        query = select(self.model)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field) and value is not None:
                    query = query.where(getattr(self.model, field) == value)

        if hasattr(self.model, order_by):
            order_column = getattr(self.model, order_by)
            query = query.order_by(order_column.desc() if order_desc else order_column)

        return await paginate_query(self.session, query, page, limit)
