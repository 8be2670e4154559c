"""Tests for the response generation loop."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from storeagent.infrastructure.redis import RedisClient
from storeagent.infrastructure.semantic_cache import SemanticCache
from storeagent.infrastructure.task_queue import AI_LOGS_QUEUE
from storeagent.llm.client import LLMClient, ProviderResponse
from storeagent.llm.errors import ProviderError
from storeagent.llm.key_manager import KeyConfig, KeyManager, KeysUnavailable
from storeagent.llm.response_generator import (
    KEYS_EXHAUSTED_REASON,
    NO_KEYS_REASON,
    SHORT_RESPONSE_REASON,
    GenerationResult,
    ResponseGenerator,
    backoff_delay_ms,
)
from storeagent.persistence.models.ai_key import AIKey
from storeagent.persistence.models.company_ai_settings import CompanyAISettings

REPLY = "أهلاً بيك! القميص متاح بـ 250 جنيه"


def rate_limited():
    return ProviderError("Resource has been exhausted", status_code=429)


class ScriptedClient(LLMClient):
    """Client that plays back outcomes scripted per API key."""

    def __init__(self, outcomes: list, calls: list) -> None:
        self._outcomes = outcomes
        self._calls = calls

    async def generate_response(self, prompt, config):
        self._calls.append(config)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class ScriptedFactory:
    """client_factory returning ScriptedClients, recording each call."""

    def __init__(self, script: dict[str, list]) -> None:
        self.script = script
        self.calls: list = []
        self.api_keys: list[str] = []

    def __call__(self, provider, api_key, base_url=None):
        self.api_keys.append(api_key)
        return ScriptedClient(self.script[api_key], self.calls)


class FakeKeyManager:
    """In-memory stand-in for KeyManager."""

    def __init__(self, keys: list, total: int | None = None) -> None:
        self.keys = keys
        self.total = total if total is not None else (len(keys) or 3)
        self.index = 0
        self.failed: list = []
        self.invalidated: list = []
        self.disabled: list = []
        self.usage: list = []

    async def get_total_keys_count(self, company_id):
        return self.total

    async def get_next_key(self, company_id):
        if not self.keys:
            return None
        key = self.keys[self.index % len(self.keys)]
        self.index += 1
        return key

    async def mark_key_failed(self, key_id, reason, cooldown_ms=None):
        self.failed.append((key_id, reason, cooldown_ms))

    async def invalidate_key(self, key_id, reason):
        self.invalidated.append((key_id, reason))

    async def disable_model(self, model_id, reason):
        self.disabled.append((model_id, reason))

    async def record_usage(self, model_id, tokens):
        self.usage.append((model_id, tokens))


def make_key(n: int, model_id: int | None = None) -> KeyConfig:
    return KeyConfig(
        key_id=n,
        key_name=f"k{n}",
        api_key=f"secret-{n}",
        model="gemini-2.0-flash",
        provider="GOOGLE",
        model_id=model_id,
    )


def make_generator(key_manager, factory, **kwargs) -> tuple[ResponseGenerator, AsyncMock]:
    sleep = AsyncMock()
    generator = ResponseGenerator(
        key_manager,
        client_factory=factory,
        sleep=sleep,
        jitter=lambda a, b: 0,
        **kwargs,
    )
    return generator, sleep


class TestBackoff:
    """Test cases for backoff_delay_ms."""

    def test_exponential_and_capped(self):
        no_jitter = lambda a, b: 0  # noqa: E731
        assert backoff_delay_ms(0, no_jitter) == 1000
        assert backoff_delay_ms(2, no_jitter) == 4000
        assert backoff_delay_ms(10, no_jitter) == 10000

    def test_jitter_added(self):
        assert backoff_delay_ms(1, lambda a, b: b) == 2500


class TestRotation:
    """Test cases for key rotation on failure."""

    @pytest.mark.asyncio
    async def test_three_rate_limits_then_success(self):
        """Test a fourth key succeeding after three 429s."""
        keys = [make_key(i) for i in range(1, 5)]
        manager = FakeKeyManager(keys)
        factory = ScriptedFactory({
            "secret-1": [rate_limited()],
            "secret-2": [rate_limited()],
            "secret-3": [rate_limited()],
            "secret-4": [ProviderResponse(text=REPLY)],
        })
        generator, sleep = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.success is True
        assert result.content == REPLY
        assert result.attempts == 4
        assert result.key_used == "k4"
        assert [f[:2] for f in manager.failed] == [(1, "429"), (2, "429"), (3, "429")]
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_three_rate_limits_with_real_key_manager(self, session_factory, clock):
        async with session_factory() as session:
            for n in range(1, 5):
                session.add(AIKey(company_id="c1", name=f"k{n}", api_key=f"secret-{n}", priority=n))
            await session.commit()
        manager = KeyManager(session_factory, clock=clock)
        factory = ScriptedFactory({
            "secret-1": [rate_limited()],
            "secret-2": [rate_limited()],
            "secret-3": [rate_limited()],
            "secret-4": [ProviderResponse(text=REPLY)],
        })
        generator, _ = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.attempts == 4
        assert result.key_used == "k4"
        assert set(manager.status()["cooling_down"]) == {1, 2, 3}

    @pytest.mark.asyncio
    async def test_attempts_bounded(self):
        """Test the loop stops after max(total keys, minimum retries) attempts."""
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [rate_limited(), rate_limited()],
            "secret-2": [rate_limited()],
        })
        generator, sleep = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.success is False
        assert result.content is None
        assert result.attempts == 3
        assert result.silent_reason == KEYS_EXHAUSTED_REASON
        # Rotation delay while keys remain, then backoff; none after the last attempt
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 4.0]

    @pytest.mark.asyncio
    async def test_retry_hint_sets_cooldown(self):
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [ProviderError("Quota exceeded", status_code=429, retry_after="34s")],
            "secret-2": [ProviderResponse(text=REPLY)],
        })
        generator, _ = make_generator(manager, factory)

        await generator.generate("prompt", "c1")

        assert manager.failed == [(1, "429", 34000)]

    @pytest.mark.asyncio
    async def test_invalid_key_invalidated(self):
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [ProviderError("API key not valid. Please pass a valid API key.", status_code=400)],
            "secret-2": [ProviderResponse(text=REPLY)],
        })
        generator, _ = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.success is True
        assert manager.invalidated == [(1, "403_INVALID")]

    @pytest.mark.asyncio
    async def test_missing_model_disabled(self):
        manager = FakeKeyManager([make_key(1, model_id=10), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [ProviderError("models/gemini-x is not found", status_code=404)],
            "secret-2": [ProviderResponse(text=REPLY)],
        })
        generator, _ = make_generator(manager, factory)

        await generator.generate("prompt", "c1")

        assert manager.disabled == [(10, "404_NOT_FOUND")]

    @pytest.mark.asyncio
    async def test_missing_default_model_rests_key(self):
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [ProviderError("model not found", status_code=404)],
            "secret-2": [ProviderResponse(text=REPLY)],
        })
        generator, _ = make_generator(manager, factory)

        await generator.generate("prompt", "c1")

        assert manager.disabled == []
        assert manager.failed == [(1, "404_NOT_FOUND", None)]

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        manager = FakeKeyManager([make_key(1)])
        factory = ScriptedFactory({
            "secret-1": [ProviderError("Internal error", status_code=500), ProviderResponse(text=REPLY)],
        })
        generator, sleep = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.success is True
        assert result.attempts == 2
        assert manager.failed == []
        sleep.assert_awaited_once_with(0.25)


class TestFailures:
    """Test cases for failures that end the loop."""

    @pytest.mark.asyncio
    async def test_bad_request_is_fatal(self):
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({"secret-1": [ProviderError("Invalid argument", status_code=400)]})
        generator, _ = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.attempts == 1
        assert result.silent_reason == "خطأ في توليد الرد: Invalid argument (Key: k1)"
        assert factory.api_keys == ["secret-1"]

    @pytest.mark.asyncio
    async def test_blocked_prompt(self):
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [ProviderResponse(text=None, prompt_feedback={"block_reason": "SAFETY"})],
        })
        generator, _ = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.success is False
        assert result.attempts == 1
        assert result.silent_reason == "تم حظر الرد بسبب: SAFETY"

    @pytest.mark.asyncio
    async def test_blocked_finish_reason(self):
        manager = FakeKeyManager([make_key(1)])
        factory = ScriptedFactory({
            "secret-1": [ProviderResponse(text="...", candidates=[{"finish_reason": "RECITATION"}])],
        })
        generator, _ = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.silent_reason == "تم حظر الرد بسبب: RECITATION"

    @pytest.mark.asyncio
    async def test_short_response_rotates(self):
        manager = FakeKeyManager([make_key(1), make_key(2)])
        factory = ScriptedFactory({
            "secret-1": [ProviderResponse(text="  ")],
            "secret-2": [ProviderResponse(text=REPLY)],
        })
        generator, sleep = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.content == REPLY
        assert result.attempts == 2
        assert manager.failed == [(1, "RESPONSE_TOO_SHORT", 5000)]
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_short_responses(self):
        manager = FakeKeyManager([make_key(1)])
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text="")] * 3})
        generator, _ = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.attempts == 3
        assert result.silent_reason == SHORT_RESPONSE_REASON

    @pytest.mark.asyncio
    async def test_keys_unavailable(self):
        manager = FakeKeyManager([])
        manager.get_next_key = AsyncMock(return_value=KeysUnavailable(retry_after_seconds=12))
        factory = ScriptedFactory({})
        generator, sleep = make_generator(manager, factory)

        result = await generator.generate("prompt", "c1")

        assert result.attempts == 1
        assert result.silent_reason == KEYS_EXHAUSTED_REASON
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_keys(self):
        manager = FakeKeyManager([])
        generator, sleep = make_generator(manager, ScriptedFactory({}))

        result = await generator.generate("prompt", "c1")

        assert result.attempts == 3
        assert result.key_used is None
        assert result.silent_reason == NO_KEYS_REASON
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_no_usable_keys_waits_fixed_delay(self):
        """Test an empty key pool retries on the fixed rotation delay, not backoff."""
        manager = FakeKeyManager([], total=0)
        generator, sleep = make_generator(manager, ScriptedFactory({}))

        result = await generator.generate("prompt", "c1")

        assert result.attempts == 3
        assert result.silent_reason == NO_KEYS_REASON
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 0.5]


class TestSideEffects:
    """Test cases for settings, usage, cache and logging."""

    @pytest.mark.asyncio
    async def test_company_settings_applied(self):
        manager = FakeKeyManager([make_key(1)])
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text=REPLY)]})
        loader = AsyncMock(return_value=CompanyAISettings(company_id="c1", ai_temperature=0.2))
        generator, _ = make_generator(manager, factory, settings_loader=loader)

        await generator.generate("prompt", "c1")

        loader.assert_awaited_once_with("c1")
        assert factory.calls[0].temperature == 0.2

    @pytest.mark.asyncio
    async def test_company_settings_from_database(self, session_factory):
        async with session_factory() as session:
            session.add(CompanyAISettings(company_id="c1", ai_top_k=7))
            await session.commit()
        manager = FakeKeyManager([make_key(1)])
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text=REPLY)]})
        generator, _ = make_generator(manager, factory, session_factory=session_factory)

        await generator.generate("prompt", "c1")

        assert factory.calls[0].top_k == 7

    @pytest.mark.asyncio
    async def test_usage_recorded(self):
        manager = FakeKeyManager([make_key(1, model_id=10)])
        factory = ScriptedFactory({
            "secret-1": [ProviderResponse(text=REPLY, usage_metadata={"total_token_count": 42})],
        })
        generator, _ = make_generator(manager, factory)

        await generator.generate("prompt", "c1")

        assert manager.usage == [(10, 42)]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider(self):
        cache = SemanticCache(redis=RedisClient(), ttl_seconds=60)
        await cache.set("prompt", "cached answer text", "c1", "gemini-2.0-flash")
        factory = ScriptedFactory({})
        generator, _ = make_generator(FakeKeyManager([make_key(1)]), factory, semantic_cache=cache)

        result = await generator.generate("prompt", "c1")

        assert result == GenerationResult(
            content="cached answer text",
            model_used="gemini-2.0-flash",
            processing_time_ms=result.processing_time_ms,
            cached=True,
        )
        assert factory.api_keys == []

    @pytest.mark.asyncio
    async def test_success_cached_for_general_messages(self):
        cache = SemanticCache(redis=RedisClient(), ttl_seconds=60)
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text=REPLY)]})
        generator, _ = make_generator(FakeKeyManager([make_key(1)]), factory, semantic_cache=cache)

        first = await generator.generate("prompt", "c1")
        second = await generator.generate("prompt", "c1")

        assert first.cached is False
        assert second.cached is True
        assert second.content == REPLY

    @pytest.mark.asyncio
    async def test_other_message_types_not_cached(self):
        cache = SemanticCache(redis=RedisClient(), ttl_seconds=60)
        await cache.set("prompt", "cached answer text", "c1")
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text=REPLY)] * 2})
        generator, _ = make_generator(FakeKeyManager([make_key(1)]), factory, semantic_cache=cache)

        result = await generator.generate("prompt", "c1", message_context={"message_type": "price_inquiry"})
        refreshed = await generator.generate("prompt", "c1", force_refresh=True)

        assert result.cached is False
        assert refreshed.cached is False
        assert len(factory.api_keys) == 2

    @pytest.mark.asyncio
    async def test_interaction_logged(self):
        queue = MagicMock()
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text=REPLY)]})
        generator, _ = make_generator(FakeKeyManager([make_key(1)]), factory, task_queue=queue)

        await generator.generate("prompt", "c1", conversation_id="conv-1", customer_id="cust-1")

        queue.enqueue_nowait.assert_called_once()
        queue_name, job_name, payload = queue.enqueue_nowait.call_args.args
        assert (queue_name, job_name) == (AI_LOGS_QUEUE, "logInteraction")
        assert payload["key_name"] == "k1"
        assert payload["customer_id"] == "cust-1"
        assert payload["ai_response"] == REPLY
        assert payload["metadata"]["conversation_id"] == "conv-1"

    @pytest.mark.asyncio
    async def test_failure_logged(self):
        queue = MagicMock()
        factory = ScriptedFactory({"secret-1": [ProviderError("Invalid argument", status_code=400)]})
        generator, _ = make_generator(FakeKeyManager([make_key(1)]), factory, task_queue=queue)

        await generator.generate("prompt", "c1")

        _, job_name, payload = queue.enqueue_nowait.call_args.args
        assert job_name == "logFailure"
        assert payload["error_type"] == "error"
        assert payload["context"]["key_name"] == "k1"

    @pytest.mark.asyncio
    async def test_queue_errors_ignored(self):
        queue = MagicMock()
        queue.enqueue_nowait.side_effect = RuntimeError("no loop")
        factory = ScriptedFactory({"secret-1": [ProviderResponse(text=REPLY)]})
        generator, _ = make_generator(FakeKeyManager([make_key(1)]), factory, task_queue=queue)

        result = await generator.generate("prompt", "c1")

        assert result.success is True
