"""Base repository for company-owned entities."""

from typing import Generic, TypeVar, Type

from sqlalchemy.ext.asyncio import AsyncSession

from storeagent.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository bound to one model and session."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """Initialize repository with model and session."""
        self.model = model
        self.session = session

    async def create(self, company_id: str | None, **data) -> ModelType:
        """Create new entity with company_id."""
        data["company_id"] = company_id
        instance = self.model(**data)
        self.session.add(instance)
        await self.session.commit()
        await self.session.refresh(instance)
        return instance
