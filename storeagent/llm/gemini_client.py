"""Gemini client implementation using the google-genai SDK."""

import asyncio
import logging
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from storeagent.llm.client import LLMClient, ProviderResponse
from storeagent.llm.errors import ProviderError
from storeagent.llm.generation_config import GenerationConfig

logger = logging.getLogger(__name__)


def _enum_value(value: Any) -> str | None:
    if value is None:
        return None
    return str(getattr(value, "value", None) or getattr(value, "name", None) or value)


def _retry_hint(error: genai_errors.APIError) -> str | None:
    """Extract a retry hint from the Retry-After header or a RetryInfo detail."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        header = headers.get("retry-after")
        if header:
            return str(header)

    details = getattr(error, "details", None)
    if isinstance(details, dict):
        entries = details.get("error", {}).get("details", []) or []
        for entry in entries:
            if isinstance(entry, dict) and entry.get("retryDelay"):
                # e.g. "34s"
                return str(entry["retryDelay"])
    return None


class GeminiClient(LLMClient):
    """Gemini client bound to one API key."""

    provider = "GOOGLE"

    def __init__(self, api_key: str, base_url: str | None = None) -> None:
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            base_url: Optional API base URL (proxies, gateways)
        """
        if base_url:
            self.client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(api_version="v1beta", base_url=base_url),
            )
        else:
            self.client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(api_version="v1beta"),
            )

    async def generate_response(self, prompt: str, config: GenerationConfig) -> ProviderResponse:
        """Generate a response using Gemini.

        Raises:
            ProviderError: If the API call fails
        """
        try:
            response = await self.client.aio.models.generate_content(
                model=config.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=config.temperature,
                    top_k=config.top_k,
                    top_p=config.top_p,
                    max_output_tokens=config.max_output_tokens,
                ),
            )
        except genai_errors.APIError as e:
            raise ProviderError(
                e.message or str(e),
                status_code=e.code,
                retry_after=_retry_hint(e),
                provider=self.provider,
            ) from e
        except (asyncio.TimeoutError, ConnectionError):
            raise
        except Exception as e:
            raise ProviderError(f"Gemini generation failed: {str(e)}", provider=self.provider) from e

        return self._to_provider_response(response)

    @staticmethod
    def _to_provider_response(response: types.GenerateContentResponse) -> ProviderResponse:
        usage = response.usage_metadata
        usage_metadata = {}
        if usage is not None:
            usage_metadata = {
                "prompt_token_count": usage.prompt_token_count or 0,
                "candidates_token_count": usage.candidates_token_count or 0,
                "total_token_count": usage.total_token_count or 0,
            }

        candidates = [
            {"finish_reason": _enum_value(candidate.finish_reason)}
            for candidate in (response.candidates or [])
        ]

        prompt_feedback = None
        if response.prompt_feedback is not None:
            prompt_feedback = {"block_reason": _enum_value(response.prompt_feedback.block_reason)}

        text = None
        if candidates:
            # .text is None when the candidate has no text parts
            text = response.text

        return ProviderResponse(
            text=text,
            usage_metadata=usage_metadata,
            candidates=candidates,
            prompt_feedback=prompt_feedback,
        )
