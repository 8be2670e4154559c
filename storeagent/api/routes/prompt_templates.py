"""Prompt template routes for company overrides and cache invalidation."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from storeagent.api.deps import get_company_id, get_template_store
from storeagent.domain.prompts.default_templates import get_default_template
from storeagent.domain.prompts.response_rules import compile_rules, get_rules_config, parse_rule_selection, validate_rules
from storeagent.domain.prompts.template_store import TemplateStore

logger = logging.getLogger(__name__)

router = APIRouter()


class PromptTemplateUpdate(BaseModel):
    """Prompt template create/replace request."""

    content: str = Field(min_length=1)
    category: str = "system"


class PromptTemplateResponse(BaseModel):
    """Prompt template response."""

    key: str
    company_id: str | None
    content: str
    category: str
    is_active: bool
    source: str  # company, default

    model_config = ConfigDict(from_attributes=True)


class CacheClearResponse(BaseModel):
    """Cache invalidation response."""

    cleared: int


class RulesValidationResponse(BaseModel):
    """Rule validation response, with the compiled block when valid."""

    valid: bool
    errors: list[str]
    compiled: str | None = None


@router.get("/rules-config")
async def rules_config() -> dict[str, dict]:
    """Option tables for the response rules editor."""
    return get_rules_config()


@router.post("/rules/validate", response_model=RulesValidationResponse)
async def validate_response_rules(
    rules: dict[str, Any],
    company_id: Annotated[str, Depends(get_company_id)],
) -> RulesValidationResponse:
    """Validate a response rules selection and preview its compiled block."""
    errors = validate_rules(rules)
    if errors:
        return RulesValidationResponse(valid=False, errors=errors)
    return RulesValidationResponse(valid=True, errors=[], compiled=compile_rules(parse_rule_selection(rules)))


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_template_cache(
    company_id: Annotated[str, Depends(get_company_id)],
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> CacheClearResponse:
    """Drop the company's cached templates."""
    return CacheClearResponse(cleared=store.clear_cache(company_id))


@router.get("/{key}", response_model=PromptTemplateResponse)
async def get_prompt_template(
    key: str,
    company_id: Annotated[str, Depends(get_company_id)],
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> PromptTemplateResponse:
    """Get the company's template for a key, or the built-in default."""
    template = await store.get_template(company_id, key)
    if template is not None and template.is_active:
        return PromptTemplateResponse(
            key=template.key,
            company_id=template.company_id,
            content=template.content,
            category=template.category,
            is_active=template.is_active,
            source="company",
        )

    default = get_default_template(key)
    if default is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template '{key}' not found",
        )
    return PromptTemplateResponse(
        key=key,
        company_id=None,
        content=default,
        category="system",
        is_active=True,
        source="default",
    )


@router.put("/{key}", response_model=PromptTemplateResponse)
async def put_prompt_template(
    key: str,
    update: PromptTemplateUpdate,
    company_id: Annotated[str, Depends(get_company_id)],
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> PromptTemplateResponse:
    """Create or replace the company's override for a key."""
    template = await store.upsert_template(company_id, key, update.content, update.category)
    logger.info(f"Updated template {key} for company {company_id}", extra={"company_id": company_id})
    return PromptTemplateResponse(
        key=template.key,
        company_id=template.company_id,
        content=template.content,
        category=template.category,
        is_active=template.is_active,
        source="company",
    )


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prompt_template(
    key: str,
    company_id: Annotated[str, Depends(get_company_id)],
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> None:
    """Deactivate the company's override so the default applies again."""
    deactivated = await store.deactivate_template(company_id, key)
    if not deactivated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template '{key}' not found",
        )
