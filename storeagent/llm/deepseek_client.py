"""DeepSeek client over the OpenAI-compatible chat completions API."""

import asyncio
import logging
from typing import Any

import httpx

from storeagent.llm.client import LLMClient, ProviderResponse
from storeagent.llm.errors import ProviderError
from storeagent.llm.generation_config import GenerationConfig
from storeagent.settings import settings

logger = logging.getLogger(__name__)

# Chat completions finish reasons, in the names the generation loop checks
FINISH_REASONS = {
    "stop": "STOP",
    "length": "MAX_TOKENS",
    "content_filter": "SAFETY",
}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text or response.reason_phrase


class DeepSeekClient(LLMClient):
    """DeepSeek client bound to one API key."""

    provider = "DEEPSEEK"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize DeepSeek client.

        Args:
            api_key: DeepSeek API key
            base_url: Optional API base URL, defaults to the public endpoint
            transport: Optional httpx transport
        """
        self.api_key = api_key
        self.base_url = (base_url or settings.deepseek_base_url).rstrip("/")
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        """Create HTTP client with auth headers."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=settings.deepseek_timeout_seconds,
            transport=self._transport,
        )

    async def generate_response(self, prompt: str, config: GenerationConfig) -> ProviderResponse:
        """Generate a response using DeepSeek chat completions.

        top_k has no counterpart in this API and is not sent.

        Raises:
            ProviderError: If the API returns an error status or an unreadable body
        """
        body = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "top_p": config.top_p,
            "max_tokens": config.max_output_tokens,
            "stream": False,
        }

        try:
            async with self._get_client() as client:
                response = await client.post("/chat/completions", json=body)
        except httpx.TimeoutException as e:
            raise asyncio.TimeoutError(f"DeepSeek request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"DeepSeek connection failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(f"DeepSeek returned {response.status_code}: {message}")
            raise ProviderError(
                message,
                status_code=response.status_code,
                retry_after=response.headers.get("retry-after"),
                provider=self.provider,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"DeepSeek returned invalid JSON: {str(e)}", provider=self.provider) from e

        return self._to_provider_response(data)

    @staticmethod
    def _to_provider_response(data: dict[str, Any]) -> ProviderResponse:
        usage = data.get("usage") or {}
        usage_metadata = {
            "prompt_token_count": usage.get("prompt_tokens") or 0,
            "candidates_token_count": usage.get("completion_tokens") or 0,
            "total_token_count": usage.get("total_tokens") or 0,
        }

        choices = data.get("choices") or []
        candidates = [
            {"finish_reason": FINISH_REASONS.get(choice.get("finish_reason"), "OTHER")}
            for choice in choices
        ]

        text = None
        if choices:
            text = (choices[0].get("message") or {}).get("content")

        return ProviderResponse(text=text, usage_metadata=usage_metadata, candidates=candidates)
