"""AI key repository."""

from collections.abc import Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storeagent.persistence.models.ai_key import AIKey, AIModelConfig
from storeagent.persistence.repositories.base import BaseRepository


class AIKeyRepository(BaseRepository[AIKey]):
    """Repository for AIKey and AIModelConfig entities."""

    def __init__(self, session: AsyncSession):
        """Initialize AI key repository."""
        super().__init__(AIKey, session)

    def _available_clause(self, company_id: str | None):
        # Company keys plus the central pool
        if company_id is None:
            return AIKey.company_id.is_(None)
        return or_(AIKey.company_id == company_id, AIKey.company_id.is_(None))

    async def list_active_keys(self, company_id: str | None) -> list[AIKey]:
        """Get active keys usable by a company, company keys first, then by priority."""
        stmt = (
            select(AIKey)
            .options(selectinload(AIKey.models))
            .where(AIKey.is_active == True, self._available_clause(company_id))
            .order_by(AIKey.company_id.is_(None), AIKey.priority, AIKey.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active_keys(self, company_id: str | None, providers: Sequence[str] | None = None) -> int:
        """Count active keys usable by a company, optionally only for some providers."""
        stmt = select(func.count(AIKey.id)).where(
            AIKey.is_active == True, self._available_clause(company_id)
        )
        if providers is not None:
            # A key without a provider is a Google key
            stmt = stmt.where(func.upper(func.coalesce(AIKey.provider, "GOOGLE")).in_(list(providers)))
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def deactivate_key(self, key_id: int, description: str) -> None:
        """Permanently deactivate a key."""
        await self.session.execute(
            update(AIKey).where(AIKey.id == key_id).values(is_active=False, description=description)
        )
        await self.session.commit()

    async def disable_model(self, model_id: int, reason: str) -> None:
        """Disable a model configuration on a key."""
        await self.session.execute(
            update(AIModelConfig)
            .where(AIModelConfig.id == model_id)
            .values(is_enabled=False, disabled_reason=reason[:255])
        )
        await self.session.commit()

    async def add_usage(self, model_id: int, tokens: int) -> None:
        """Add tokens to a model's usage counter."""
        await self.session.execute(
            update(AIModelConfig)
            .where(AIModelConfig.id == model_id)
            .values(total_tokens=AIModelConfig.total_tokens + tokens)
        )
        await self.session.commit()
