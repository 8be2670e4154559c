"""FastAPI dependencies for company resolution and shared services."""

from typing import Annotated

from fastapi import Header, HTTPException, status

from storeagent.core.company_context import set_company_context
from storeagent.domain.prompts.template_store import TemplateStore
from storeagent.persistence.database import AsyncSessionLocal

# Shared so cache invalidation through the API reaches the store the assembler uses
_template_store: TemplateStore | None = None


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None,
) -> str:
    """Get the company from the X-Company-Id header and set it in context.

    Raises:
        HTTPException: If the header is missing
    """
    if not x_company_id or not x_company_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-Id header is required",
        )
    company_id = x_company_id.strip()
    set_company_context(company_id)
    return company_id


def get_template_store() -> TemplateStore:
    """Get the process-wide template store."""
    global _template_store
    if _template_store is None:
        _template_store = TemplateStore(AsyncSessionLocal)
    return _template_store
