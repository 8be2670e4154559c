"""Response cache keyed by a normalized prompt."""

import hashlib
import logging
import re
import time
from collections.abc import Callable

from storeagent.infrastructure.redis import RedisClient, redis_client
from storeagent.settings import settings

logger = logging.getLogger(__name__)

CACHE_PREFIX = "storeagent:response"
# Bound on the in-process fallback
MAX_LOCAL_ENTRIES = 1000

_WHITESPACE = re.compile(r"\s+")


def normalize_prompt(prompt: str) -> str:
    return _WHITESPACE.sub(" ", prompt or "").strip().lower()


def prompt_hash(prompt: str) -> str:
    return hashlib.sha256(normalize_prompt(prompt).encode("utf-8")).hexdigest()


class SemanticCache:
    """Caches generated responses per company and model.

    Uses Redis when it is connected, otherwise an in-process dict with the same TTL.
    """

    def __init__(
        self,
        redis: RedisClient | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis = redis or redis_client
        self.ttl_seconds = ttl_seconds or settings.semantic_cache_ttl_seconds
        self._clock = clock
        self._local: dict[str, tuple[dict, float]] = {}

    def make_key(self, prompt: str, company_id: str | None, model: str | None = None) -> str:
        return f"{CACHE_PREFIX}:{company_id or 'global'}:{model or 'any'}:{prompt_hash(prompt)}"

    async def get(self, prompt: str, company_id: str | None, model: str | None = None) -> dict | None:
        """Get a cached response.

        Returns:
            Dict with ``response`` and ``model``, or None on a miss
        """
        key = self.make_key(prompt, company_id, model)
        try:
            if self._redis.enabled:
                return await self._redis.get_json(key)
        except Exception as e:
            logger.warning(f"Response cache read failed: {e}")
            return None

        entry = self._local.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._local[key]
            return None
        return value

    async def set(self, prompt: str, response: str, company_id: str | None, model: str | None = None) -> None:
        """Cache a response under the prompt and under the model-agnostic key."""
        value = {"response": response, "model": model}
        keys = {self.make_key(prompt, company_id, model), self.make_key(prompt, company_id)}
        try:
            if self._redis.enabled:
                for key in keys:
                    await self._redis.set_json(key, value, ttl=self.ttl_seconds)
                return
        except Exception as e:
            logger.warning(f"Response cache write failed: {e}")
            return

        if len(self._local) >= MAX_LOCAL_ENTRIES:
            oldest = min(self._local, key=lambda k: self._local[k][1])
            del self._local[oldest]
        now = self._clock()
        for key in keys:
            self._local[key] = (value, now)
