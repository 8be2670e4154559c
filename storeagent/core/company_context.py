"""Company context for scoping requests and log records to one company."""

from contextvars import ContextVar
from typing import Optional

# Context variable for company_id
company_id_var: ContextVar[Optional[str]] = ContextVar("company_id", default=None)


def set_company_context(company_id: str | None) -> None:
    """Set the current company context.

    Args:
        company_id: Company ID to set in context
    """
    company_id_var.set(company_id)


def get_company_context() -> str | None:
    """Get the current company context.

    Returns:
        Current company ID or None
    """
    return company_id_var.get()
