"""Prompt template repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storeagent.persistence.models.prompt_template import PromptTemplate
from storeagent.persistence.repositories.base import BaseRepository


class PromptTemplateRepository(BaseRepository[PromptTemplate]):
    """Repository for PromptTemplate entities."""

    def __init__(self, session: AsyncSession):
        """Initialize prompt template repository."""
        super().__init__(PromptTemplate, session)

    def _scope(self, stmt, company_id: str | None):
        if company_id is None:
            return stmt.where(PromptTemplate.company_id.is_(None))
        return stmt.where(PromptTemplate.company_id == company_id)

    async def find_template(self, company_id: str | None, key: str) -> PromptTemplate | None:
        """Get the active template for a company (or the global one if company_id is None)."""
        stmt = select(PromptTemplate).where(
            PromptTemplate.key == key,
            PromptTemplate.is_active == True,
        )
        stmt = self._scope(stmt, company_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_key(self, company_id: str | None, key: str) -> PromptTemplate | None:
        """Get a template by key regardless of its active flag."""
        stmt = self._scope(select(PromptTemplate).where(PromptTemplate.key == key), company_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def upsert(
        self,
        company_id: str | None,
        key: str,
        content: str,
        category: str = "system",
    ) -> PromptTemplate:
        """Create or replace a template and mark it active."""
        template = await self.get_by_key(company_id, key)
        if template is None:
            return await self.create(
                company_id,
                key=key,
                content=content,
                category=category,
                is_active=True,
            )

        template.content = content
        template.category = category
        template.is_active = True
        await self.session.commit()
        await self.session.refresh(template)
        return template

    async def deactivate(self, company_id: str | None, key: str) -> bool:
        """Deactivate a template. Returns False when it does not exist."""
        template = await self.get_by_key(company_id, key)
        if template is None:
            return False
        template.is_active = False
        await self.session.commit()
        return True
