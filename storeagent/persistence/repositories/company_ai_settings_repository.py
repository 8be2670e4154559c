"""Company AI settings repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storeagent.persistence.models.company_ai_settings import CompanyAISettings
from storeagent.persistence.repositories.base import BaseRepository


class CompanyAISettingsRepository(BaseRepository[CompanyAISettings]):
    """Repository for CompanyAISettings entities."""

    def __init__(self, session: AsyncSession):
        """Initialize company AI settings repository."""
        super().__init__(CompanyAISettings, session)

    async def find_company_settings(self, company_id: str) -> CompanyAISettings | None:
        """Get the AI settings row for a company."""
        stmt = select(CompanyAISettings).where(CompanyAISettings.company_id == company_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
