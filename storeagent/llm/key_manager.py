"""Key manager: round-robin selection of provider keys with cooldowns."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeagent.llm.factory import DEEPSEEK_PROVIDERS, SUPPORTED_PROVIDERS, is_supported_provider, normalize_provider
from storeagent.persistence.models.ai_key import AIKey
from storeagent.persistence.repositories.ai_key_repository import AIKeyRepository
from storeagent.settings import settings

logger = logging.getLogger(__name__)

# Used when a company has no countable keys or the count query fails
FALLBACK_KEYS_COUNT = 3
KEYS_COUNT_TTL_SECONDS = 60
DEFAULT_UNAVAILABLE_RETRY_SECONDS = 30

KEYS_UNAVAILABLE_MESSAGE = "جميع المفاتيح معطلة مؤقتاً - حاول مرة أخرى بعد قليل"

INVALIDATION_DESCRIPTIONS = {
    "LEAKED": "تم تعطيل المفتاح تلقائياً: تم الإبلاغ عن المفتاح كمسرب. يرجى استخدام مفتاح جديد",
    "403_INVALID": "تم تعطيل المفتاح تلقائياً: المفتاح غير صالح أو تم رفض الوصول (403)",
}


def default_model_for(provider: str | None) -> str:
    """Model used for a key that has no enabled model configuration."""
    if normalize_provider(provider) in DEEPSEEK_PROVIDERS:
        return settings.deepseek_model
    return settings.gemini_model


def estimate_token_count(text: str | None) -> int:
    """Rough token estimate for mixed Arabic/English text."""
    if not text:
        return 0
    return int(len(text) / 3.5 * 1.1) + 1


@dataclass
class KeyConfig:
    """A key and model selected for one attempt."""

    key_id: int
    key_name: str
    api_key: str
    model: str
    provider: str
    model_id: int | None = None
    base_url: str | None = None


@dataclass
class KeysUnavailable:
    """Every usable key is cooling down."""

    retry_after_seconds: int
    message: str = KEYS_UNAVAILABLE_MESSAGE


@dataclass
class _Cooldown:
    until: float
    reason: str


class KeyManager:
    """Selects keys for the generation loop.

    Keys are rotated round-robin per company. A failed key cools down for a
    while; an invalidated key is never selected again by this process and is
    deactivated in the database.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], float] = time.monotonic,
        default_cooldown_ms: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self.default_cooldown_ms = default_cooldown_ms or settings.rate_limit_cooldown_ms
        self._lock = asyncio.Lock()
        self._cursor: dict[str, int] = {}
        self._cooldowns: dict[int, _Cooldown] = {}
        self._invalidated: set[int] = set()
        self._keys_count: dict[str, tuple[int, float]] = {}

    async def _load_keys(self, company_id: str | None) -> list[AIKey]:
        async with self._session_factory() as session:
            return await AIKeyRepository(session).list_active_keys(company_id)

    def _to_config(self, key: AIKey) -> KeyConfig:
        enabled = [m for m in (key.models or []) if m.is_enabled]
        model = enabled[0] if enabled else None
        provider = normalize_provider(key.provider)
        return KeyConfig(
            key_id=key.id,
            key_name=key.name,
            api_key=key.api_key,
            model=model.model_name if model is not None else default_model_for(provider),
            model_id=model.id if model is not None else None,
            provider=provider,
            base_url=key.base_url,
        )

    def _cooling_down(self, key_id: int, now: float) -> bool:
        cooldown = self._cooldowns.get(key_id)
        if cooldown is None:
            return False
        if cooldown.until <= now:
            del self._cooldowns[key_id]
            return False
        return True

    async def get_next_key(self, company_id: str | None) -> KeyConfig | KeysUnavailable | None:
        """Select the next usable key for a company.

        Returns:
            KeyConfig, KeysUnavailable if every key is cooling down, or None if
            the company has no usable keys (or loading them failed)
        """
        try:
            keys = await self._load_keys(company_id)
        except Exception as e:
            logger.error(f"Failed to load AI keys for company {company_id}: {e}", exc_info=True)
            return None

        candidates = [
            key for key in keys
            if key.id not in self._invalidated and is_supported_provider(key.provider)
        ]
        if not candidates:
            logger.warning(f"No active AI keys for company {company_id}")
            return None

        async with self._lock:
            now = self._clock()
            cursor_key = company_id or "central"
            start = self._cursor.get(cursor_key, 0)
            for offset in range(len(candidates)):
                index = (start + offset) % len(candidates)
                key = candidates[index]
                if self._cooling_down(key.id, now):
                    continue
                self._cursor[cursor_key] = index + 1
                config = self._to_config(key)
                logger.debug(f"Selected key {config.key_name} ({config.provider}) model {config.model}")
                return config

            remaining = [
                self._cooldowns[key.id].until - now for key in candidates if key.id in self._cooldowns
            ]

        retry_after = int(min(remaining)) + 1 if remaining else DEFAULT_UNAVAILABLE_RETRY_SECONDS
        logger.error(
            f"All {len(candidates)} keys temporarily unavailable for company {company_id}",
            extra={"company_id": company_id, "retry_after_seconds": retry_after},
        )
        return KeysUnavailable(retry_after_seconds=retry_after)

    async def mark_key_failed(self, key_id: int, reason: str, cooldown_ms: int | None = None) -> None:
        """Put a key in cooldown."""
        cooldown_ms = cooldown_ms if cooldown_ms is not None else self.default_cooldown_ms
        async with self._lock:
            self._cooldowns[key_id] = _Cooldown(until=self._clock() + cooldown_ms / 1000, reason=reason)
        logger.warning(f"Key {key_id} cooling down for {cooldown_ms}ms: {reason}")

    async def invalidate_key(self, key_id: int, reason: str) -> None:
        """Stop using a key for good and deactivate it in the database."""
        async with self._lock:
            self._invalidated.add(key_id)
            self._cooldowns.pop(key_id, None)
            self._keys_count.clear()

        description = INVALIDATION_DESCRIPTIONS.get(reason, f"Automatically disabled: {reason}")
        logger.warning(f"Invalidating key {key_id} permanently: {reason}")
        try:
            async with self._session_factory() as session:
                await AIKeyRepository(session).deactivate_key(key_id, description)
        except Exception as e:
            logger.error(f"Failed to deactivate key {key_id}: {e}", exc_info=True)

    async def disable_model(self, model_id: int | None, reason: str) -> None:
        """Disable a model configuration so the key falls back to its next model."""
        if model_id is None:
            return
        logger.warning(f"Disabling model config {model_id}: {reason}")
        try:
            async with self._session_factory() as session:
                await AIKeyRepository(session).disable_model(model_id, reason)
        except Exception as e:
            logger.error(f"Failed to disable model {model_id}: {e}", exc_info=True)

    async def record_usage(self, model_id: int | None, tokens: int) -> None:
        """Add tokens to a model's usage counter."""
        if model_id is None or tokens <= 0:
            return
        try:
            async with self._session_factory() as session:
                await AIKeyRepository(session).add_usage(model_id, tokens)
        except Exception as e:
            logger.warning(f"Failed to record usage for model {model_id}: {e}")

    async def get_total_keys_count(self, company_id: str | None) -> int:
        """Number of active keys a company can use, cached briefly.

        Keys of providers without a client are not counted, matching get_next_key.
        """
        cache_key = company_id or "central"
        now = self._clock()
        cached = self._keys_count.get(cache_key)
        if cached is not None and now - cached[1] < KEYS_COUNT_TTL_SECONDS:
            return cached[0]

        try:
            async with self._session_factory() as session:
                count = await AIKeyRepository(session).count_active_keys(company_id, SUPPORTED_PROVIDERS)
        except Exception as e:
            logger.error(f"Failed to count keys for company {company_id}: {e}")
            return FALLBACK_KEYS_COUNT

        self._keys_count[cache_key] = (count, now)
        return count

    def status(self) -> dict:
        """Cooldown and invalidation state, for diagnostics."""
        now = self._clock()
        return {
            "cooling_down": {
                key_id: {"reason": c.reason, "remaining_seconds": round(c.until - now, 1)}
                for key_id, c in self._cooldowns.items()
                if c.until > now
            },
            "invalidated": sorted(self._invalidated),
        }
