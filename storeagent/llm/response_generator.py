"""Response generator: calls the model with key rotation, retries and validation."""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeagent.infrastructure.semantic_cache import SemanticCache
from storeagent.infrastructure.task_queue import AI_LOGS_QUEUE, TaskQueue
from storeagent.llm.client import LLMClient
from storeagent.llm.errors import KeysUnavailableError, ProviderError
from storeagent.llm.factory import get_llm_client
from storeagent.llm.failure_classifier import FailureAction, classify_failure
from storeagent.llm.generation_config import build_generation_config
from storeagent.llm.key_manager import KeyConfig, KeyManager, KeysUnavailable, estimate_token_count
from storeagent.persistence.models.company_ai_settings import CompanyAISettings
from storeagent.persistence.repositories.company_ai_settings_repository import CompanyAISettingsRepository
from storeagent.settings import settings

logger = logging.getLogger(__name__)

# Message types whose responses may be served from cache
CACHEABLE_MESSAGE_TYPES = (None, "general", "inquiry")
MIN_CACHEABLE_LENGTH = 10
# Logged prompt/response text is truncated to this many characters
LOG_TEXT_LIMIT = 5000

ROTATION_DELAY_MS = 500
SERVER_ERROR_DELAY_MS = 250
MAX_BACKOFF_MS = 10000
MAX_JITTER_MS = 500

BLOCKED_FINISH_REASONS = ("SAFETY", "RECITATION")

KEYS_EXHAUSTED_REASON = "جميع المفاتيح معطلة مؤقتاً - يرجى المحاولة لاحقاً"
SHORT_RESPONSE_REASON = "فشل في توليد رد مناسب - تم تجربة جميع المفاتيح المتاحة. يرجى المحاولة مرة أخرى لاحقاً"
NO_KEYS_REASON = "لا توجد مفاتيح ذكاء اصطناعي متاحة لهذه الشركة"
SAFETY_REASON = "تم حظر الرد بسبب: {reason}"
GENERIC_REASON = "خطأ في توليد الرد: {error}"


def backoff_delay_ms(attempt: int, jitter: Callable[[float, float], float] = random.uniform) -> float:
    """Exponential backoff with jitter, capped at 10 seconds plus jitter."""
    return min(1000 * 2 ** attempt, MAX_BACKOFF_MS) + jitter(0, MAX_JITTER_MS)


@dataclass
class GenerationResult:
    """Outcome of one generate call."""

    content: str | None
    key_used: str | None = None
    model_used: str | None = None
    provider_used: str | None = None
    processing_time_ms: int = 0
    attempts: int = 0
    cached: bool = False
    silent_reason: str | None = None

    @property
    def success(self) -> bool:
        return self.content is not None


class AttemptState(str, Enum):
    """Where the loop goes after one attempt."""

    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass
class AttemptResult:
    """Outcome of a single provider call."""

    state: AttemptState
    content: str | None = None
    error: BaseException | None = None
    delay_ms: float = 0
    failure: str | None = None  # quota, short, safety, error
    silent_reason: str | None = None


class ResponseGenerator:
    """Generates responses for a prompt, rotating keys on failure.

    The loop never raises: failures end in a GenerationResult with no content
    and a localized ``silent_reason`` the caller can log and suppress.
    """

    def __init__(
        self,
        key_manager: KeyManager,
        semantic_cache: SemanticCache | None = None,
        task_queue: TaskQueue | None = None,
        client_factory: Callable[..., LLMClient] = get_llm_client,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings_loader: Callable[[str | None], Awaitable[CompanyAISettings | None]] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.key_manager = key_manager
        self.semantic_cache = semantic_cache
        self.task_queue = task_queue
        self._client_factory = client_factory
        self._session_factory = session_factory
        self._settings_loader = settings_loader
        self._sleep = sleep
        self._clock = clock
        self._jitter = jitter

    async def _load_company_settings(self, company_id: str | None) -> CompanyAISettings | None:
        if not company_id:
            return None
        try:
            if self._settings_loader is not None:
                return await self._settings_loader(company_id)
            if self._session_factory is not None:
                async with self._session_factory() as session:
                    return await CompanyAISettingsRepository(session).find_company_settings(company_id)
        except Exception as e:
            logger.warning(f"Failed to load AI settings for company {company_id}: {e}")
        return None

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    async def generate(
        self,
        prompt: str,
        company_id: str | None,
        conversation_id: str | None = None,
        customer_id: str | None = None,
        message_context: dict[str, Any] | None = None,
        force_refresh: bool = False,
    ) -> GenerationResult:
        """Generate a response for a prompt.

        Args:
            prompt: Fully assembled prompt
            company_id: Company ID (selects keys and settings)
            conversation_id: Conversation ID, for logs
            customer_id: Customer ID, for logs
            message_context: Optional ``message_type``, ``temperature`` and ``max_tokens``
            force_refresh: Skip the response cache

        Returns:
            GenerationResult; ``content`` is None on failure
        """
        started = self._clock()
        message_context = message_context or {}
        message_type = message_context.get("message_type")
        cacheable = message_type in CACHEABLE_MESSAGE_TYPES and self.semantic_cache is not None

        if cacheable and not force_refresh:
            cached = await self.semantic_cache.get(prompt, company_id)
            if cached and cached.get("response"):
                logger.info(f"Response cache hit for company {company_id}")
                return GenerationResult(
                    content=cached["response"],
                    model_used=cached.get("model"),
                    processing_time_ms=self._elapsed_ms(started),
                    cached=True,
                )

        company_settings = await self._load_company_settings(company_id)
        total_keys = await self.key_manager.get_total_keys_count(company_id)
        max_attempts = max(total_keys, settings.min_keys_retries)

        attempts = 0
        last_key: KeyConfig | None = None
        last: AttemptResult | None = None

        while attempts < max_attempts:
            attempts += 1
            key = await self.key_manager.get_next_key(company_id)

            if isinstance(key, KeysUnavailable):
                last = AttemptResult(
                    AttemptState.FATAL,
                    error=KeysUnavailableError(key.message, key.retry_after_seconds),
                    failure="quota",
                )
                break

            if key is None:
                last = AttemptResult(AttemptState.RETRY, failure="no_keys")
                if attempts < max_attempts:
                    await self._sleep(ROTATION_DELAY_MS / 1000)
                continue

            last_key = key
            last = await self._attempt(prompt, key, company_settings, message_context, attempts, total_keys)

            if last.state == AttemptState.SUCCESS:
                result = GenerationResult(
                    content=last.content,
                    key_used=key.key_name,
                    model_used=key.model,
                    provider_used=key.provider,
                    processing_time_ms=self._elapsed_ms(started),
                    attempts=attempts,
                )
                await self._on_success(prompt, result, key, company_id, conversation_id, customer_id, cacheable)
                return result

            if last.state == AttemptState.FATAL:
                break

            if last.delay_ms and attempts < max_attempts:
                await self._sleep(last.delay_ms / 1000)

        silent_reason = self._silent_reason(last, last_key)
        logger.error(
            f"Response generation failed after {attempts} attempts: {silent_reason}",
            extra={"company_id": company_id, "conversation_id": conversation_id, "attempts": attempts},
        )
        self._enqueue(
            "logFailure",
            {
                "company_id": company_id,
                "conversation_id": conversation_id,
                "customer_id": customer_id,
                "error_type": (last.failure if last else None) or "no_attempts",
                "error_message": str(last.error) if last and last.error else silent_reason,
                "context": {"attempts": attempts, "key_name": last_key.key_name if last_key else None},
            },
        )
        return GenerationResult(
            content=None,
            key_used=last_key.key_name if last_key else None,
            model_used=last_key.model if last_key else None,
            provider_used=last_key.provider if last_key else None,
            processing_time_ms=self._elapsed_ms(started),
            attempts=attempts,
            silent_reason=silent_reason,
        )

    async def _attempt(
        self,
        prompt: str,
        key: KeyConfig,
        company_settings: CompanyAISettings | None,
        message_context: dict[str, Any],
        attempt: int,
        total_keys: int,
    ) -> AttemptResult:
        """Call the provider once and decide the next state."""
        config = build_generation_config(key.model, company_settings, message_context)
        try:
            client = self._client_factory(key.provider, key.api_key, key.base_url)
            response = await client.generate_response(prompt, config)
        except Exception as e:
            return await self._handle_failure(e, key, attempt, total_keys)

        block_reason = response.block_reason
        if not block_reason and response.finish_reason in BLOCKED_FINISH_REASONS:
            block_reason = response.finish_reason
        if block_reason:
            logger.warning(f"Response blocked by {key.provider}: {block_reason}")
            return AttemptResult(
                AttemptState.FATAL,
                failure="safety",
                silent_reason=SAFETY_REASON.format(reason=block_reason),
            )

        content = (response.text or "").strip()
        tokens = response.total_tokens or estimate_token_count(prompt) + estimate_token_count(content)
        await self.key_manager.record_usage(key.model_id, tokens)

        if len(content) < settings.min_response_length:
            logger.warning(
                f"Response too short from key {key.key_name} ({len(content)} chars), rotating",
                extra={"key_id": key.key_id, "attempt": attempt},
            )
            await self.key_manager.mark_key_failed(
                key.key_id, "RESPONSE_TOO_SHORT", settings.short_response_cooldown_ms
            )
            return AttemptResult(
                AttemptState.RETRY,
                error=ProviderError("Response too short", provider=key.provider),
                failure="short",
            )

        return AttemptResult(AttemptState.SUCCESS, content=content)

    async def _handle_failure(
        self, error: Exception, key: KeyConfig, attempt: int, total_keys: int
    ) -> AttemptResult:
        decision = classify_failure(error)
        logger.warning(
            f"Attempt {attempt} with key {key.key_name} failed ({decision.action.value}): {error}",
            extra={"key_id": key.key_id, "model": key.model, "reason": decision.reason, "attempt": attempt},
        )

        if decision.action == FailureAction.INVALIDATE_KEY:
            await self.key_manager.invalidate_key(key.key_id, decision.reason)
            return AttemptResult(AttemptState.RETRY, error=error, failure="error")

        if decision.action == FailureAction.DISABLE_MODEL:
            if key.model_id is not None:
                await self.key_manager.disable_model(key.model_id, decision.reason)
            else:
                # Default model on a key without configs: nothing to disable, rest the key
                await self.key_manager.mark_key_failed(key.key_id, decision.reason)
            return AttemptResult(AttemptState.RETRY, error=error, failure="error")

        if decision.action == FailureAction.ROTATE:
            await self.key_manager.mark_key_failed(key.key_id, decision.reason, decision.cooldown_ms)
            delay = ROTATION_DELAY_MS if attempt < total_keys else backoff_delay_ms(attempt, self._jitter)
            return AttemptResult(AttemptState.RETRY, error=error, delay_ms=delay, failure="quota")

        if decision.action == FailureAction.RETRY:
            return AttemptResult(AttemptState.RETRY, error=error, delay_ms=SERVER_ERROR_DELAY_MS, failure="error")

        if decision.reason == "SAFETY":
            return AttemptResult(
                AttemptState.FATAL,
                error=error,
                failure="safety",
                silent_reason=SAFETY_REASON.format(reason=str(error)),
            )
        return AttemptResult(AttemptState.FATAL, error=error, failure="error")

    @staticmethod
    def _silent_reason(last: AttemptResult | None, key: KeyConfig | None) -> str:
        if last is None or last.failure == "no_keys":
            return NO_KEYS_REASON
        if last.silent_reason:
            return last.silent_reason
        if last.failure == "quota":
            return KEYS_EXHAUSTED_REASON
        if last.failure == "short":
            return SHORT_RESPONSE_REASON
        message = getattr(last.error, "message", None) or str(last.error)
        reason = GENERIC_REASON.format(error=message)
        if key is not None:
            reason += f" (Key: {key.key_name})"
        return reason

    async def _on_success(
        self,
        prompt: str,
        result: GenerationResult,
        key: KeyConfig,
        company_id: str | None,
        conversation_id: str | None,
        customer_id: str | None,
        cacheable: bool,
    ) -> None:
        logger.info(
            f"Generated response with {key.key_name}/{key.model} in {result.processing_time_ms}ms",
            extra={"company_id": company_id, "attempts": result.attempts},
        )
        self._enqueue(
            "logInteraction",
            {
                "company_id": company_id,
                "customer_id": customer_id,
                "model_used": key.model,
                "key_id": key.key_id,
                "key_name": key.key_name,
                "user_message": prompt[:LOG_TEXT_LIMIT],
                "ai_response": (result.content or "")[:LOG_TEXT_LIMIT],
                "tokens_used": estimate_token_count(prompt) + estimate_token_count(result.content),
                "response_time": result.processing_time_ms,
                "metadata": {"conversation_id": conversation_id, "attempts": result.attempts},
            },
        )
        if cacheable and len(result.content or "") > MIN_CACHEABLE_LENGTH:
            try:
                await self.semantic_cache.set(prompt, result.content, company_id, key.model)
            except Exception as e:
                logger.warning(f"Failed to cache response: {e}")

    def _enqueue(self, job_name: str, payload: dict[str, Any]) -> None:
        if self.task_queue is None:
            return
        try:
            self.task_queue.enqueue_nowait(AI_LOGS_QUEUE, job_name, payload)
        except Exception as e:
            logger.warning(f"Failed to schedule {job_name}: {e}")
