"""Template store: resolves prompt templates with company overrides and a TTL cache."""

import logging
import re
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeagent.core.sanitizer import sanitize_input
from storeagent.domain.prompts.default_templates import get_default_template
from storeagent.persistence.models.company_ai_settings import CompanyAISettings
from storeagent.persistence.models.prompt_template import PromptTemplate
from storeagent.persistence.repositories.company_ai_settings_repository import CompanyAISettingsRepository
from storeagent.persistence.repositories.prompt_template_repository import PromptTemplateRepository
from storeagent.settings import settings

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

FALLBACK_NAMESPACE = "fallback_"
GLOBAL_SCOPE = "global"


def inject_variables(template: str, variables: Mapping[str, Any] | None) -> str:
    """Replace ``{{name}}`` placeholders with sanitized values.

    Placeholders without a matching variable are left verbatim.
    """
    if not template or not variables:
        return template or ""

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return sanitize_input(variables[name])

    return _PLACEHOLDER.sub(replace, template)


class TemplateCache:
    """In-memory template cache with TTL, keyed by ``{company_id}:{key}``."""

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # Cache structure: {cache_key: (content, timestamp)}
        self._entries: dict[str, tuple[str, float]] = {}

    @staticmethod
    def make_key(company_id: str | None, key: str) -> str:
        return f"{company_id or GLOBAL_SCOPE}:{key}"

    def get(self, company_id: str | None, key: str) -> str | None:
        """Get cached content if not expired."""
        cache_key = self.make_key(company_id, key)
        entry = self._entries.get(cache_key)
        if entry is None:
            return None
        content, timestamp = entry
        if self._clock() - timestamp < self.ttl_seconds:
            return content
        # Expired - remove from cache
        del self._entries[cache_key]
        return None

    def set(self, company_id: str | None, key: str, content: str) -> None:
        """Cache content with the current timestamp."""
        self._entries[self.make_key(company_id, key)] = (content, self._clock())

    def clear(self, company_id: str | None = None) -> int:
        """Remove a company's entries, or everything if company_id is None.

        Returns:
            Number of removed entries
        """
        if company_id is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed

        prefix = f"{company_id}:"
        stale = [k for k in self._entries if k.startswith(prefix)]
        for cache_key in stale:
            del self._entries[cache_key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class _Lookup:
    """State shared by the resolution strategies of one ``resolve`` call."""

    company_id: Optional[str]
    key: str
    session: AsyncSession
    company_settings: Optional[CompanyAISettings] = None
    settings_loaded: bool = False


# A strategy returns None to fall through, or the final content (possibly "")
Strategy = Callable[[_Lookup], Awaitable[Optional[str]]]


class TemplateStore:
    """Resolves prompt fragments by key.

    Resolution order:
    1. Cached content for (company_id, key)
    2. Active company-specific template row
    3. ``response_rules.fallbacks[key]`` for keys in the ``fallback_*`` namespace
    4. Nothing, when the company disabled default templates
    5. Active global template row (company_id NULL)
    6. Hardcoded default, else ""

    Variables are then injected. ``resolve`` never raises.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: TemplateCache | None = None,
    ) -> None:
        """Initialize template store.

        Args:
            session_factory: Factory for database sessions. Each resolution uses
                its own session so concurrent resolutions never share one.
            cache: Template cache (defaults to one with the configured TTL)
        """
        self._session_factory = session_factory
        self.cache = cache or TemplateCache(ttl_seconds=settings.template_cache_ttl_seconds)
        self._strategies: tuple[Strategy, ...] = (
            self._from_cache,
            self._from_company_template,
            self._from_company_fallbacks,
            self._stop_if_defaults_disabled,
            self._from_global_template,
            self._from_hardcoded_default,
        )

    async def resolve(
        self,
        company_id: str | None,
        key: str,
        variables: Mapping[str, Any] | None = None,
    ) -> str:
        """Resolve a template and inject variables.

        Args:
            company_id: Company ID, or None for platform templates only
            key: Template key (e.g. "system_rag_header")
            variables: Values for ``{{name}}`` placeholders; sanitized before injection

        Returns:
            Rendered template, or "" when nothing applies
        """
        try:
            content = await self._lookup(company_id, key)
        except Exception as e:
            logger.error(
                f"Template resolution failed for key={key}, company_id={company_id}: {e}",
                extra={"template_key": key, "company_id": company_id},
                exc_info=True,
            )
            content = get_default_template(key) or ""

        try:
            return inject_variables(content, variables)
        except Exception as e:
            logger.error(f"Variable injection failed for key={key}: {e}", exc_info=True)
            return ""

    async def _lookup(self, company_id: str | None, key: str) -> str:
        async with self._session_factory() as session:
            lookup = _Lookup(company_id=company_id, key=key, session=session)
            for strategy in self._strategies:
                content = await strategy(lookup)
                if content is not None:
                    return content
        return ""

    async def _company_settings(self, lookup: _Lookup) -> CompanyAISettings | None:
        if not lookup.settings_loaded:
            repo = CompanyAISettingsRepository(lookup.session)
            lookup.company_settings = await repo.find_company_settings(lookup.company_id)
            lookup.settings_loaded = True
        return lookup.company_settings

    async def _from_cache(self, lookup: _Lookup) -> str | None:
        return self.cache.get(lookup.company_id, lookup.key)

    async def _from_company_template(self, lookup: _Lookup) -> str | None:
        if not lookup.company_id:
            return None
        template = await PromptTemplateRepository(lookup.session).find_template(lookup.company_id, lookup.key)
        if template is None or not template.content:
            return None
        self.cache.set(lookup.company_id, lookup.key, template.content)
        return template.content

    async def _from_company_fallbacks(self, lookup: _Lookup) -> str | None:
        if not lookup.company_id or not lookup.key.startswith(FALLBACK_NAMESPACE):
            return None
        company_settings = await self._company_settings(lookup)
        rules = company_settings.response_rules if company_settings else None
        if not isinstance(rules, dict):
            return None
        fallbacks = rules.get("fallbacks")
        if not isinstance(fallbacks, dict):
            return None
        content = fallbacks.get(lookup.key)
        if isinstance(content, str) and content.strip():
            return content
        return None

    async def _stop_if_defaults_disabled(self, lookup: _Lookup) -> str | None:
        if not lookup.company_id:
            return None
        company_settings = await self._company_settings(lookup)
        if company_settings is not None and company_settings.disable_default_templates:
            logger.debug(f"Default templates disabled for company {lookup.company_id}, skipping key={lookup.key}")
            return ""
        return None

    async def _from_global_template(self, lookup: _Lookup) -> str | None:
        template = await PromptTemplateRepository(lookup.session).find_template(None, lookup.key)
        if template is None or not template.content:
            return None
        self.cache.set(lookup.company_id, lookup.key, template.content)
        return template.content

    async def _from_hardcoded_default(self, lookup: _Lookup) -> str | None:
        content = get_default_template(lookup.key)
        if content is None:
            logger.warning(
                f"No template found for key={lookup.key}",
                extra={"template_key": lookup.key, "company_id": lookup.company_id},
            )
            return ""
        return content

    def clear_cache(self, company_id: str | None = None) -> int:
        """Invalidate cached templates for a company, or all if company_id is None."""
        removed = self.cache.clear(company_id)
        logger.info(f"Cleared {removed} cached templates (company_id={company_id})")
        return removed

    async def upsert_template(
        self,
        company_id: str | None,
        key: str,
        content: str,
        category: str = "system",
    ) -> PromptTemplate:
        """Create or replace a template and invalidate the affected cache entries."""
        async with self._session_factory() as session:
            template = await PromptTemplateRepository(session).upsert(company_id, key, content, category)
        # A global row can be cached under any company
        self.clear_cache(company_id)
        return template

    async def deactivate_template(self, company_id: str | None, key: str) -> bool:
        """Deactivate a template and invalidate the affected cache entries."""
        async with self._session_factory() as session:
            deactivated = await PromptTemplateRepository(session).deactivate(company_id, key)
        self.clear_cache(company_id)
        return deactivated

    async def get_template(self, company_id: str | None, key: str) -> PromptTemplate | None:
        """Get the stored template row (active or not), without fallbacks."""
        async with self._session_factory() as session:
            return await PromptTemplateRepository(session).get_by_key(company_id, key)
