"""Factory to create LLM clients for a provider key."""

from storeagent.llm.client import LLMClient
from storeagent.llm.deepseek_client import DeepSeekClient
from storeagent.llm.gemini_client import GeminiClient

GEMINI_PROVIDERS = ("GOOGLE", "GEMINI")
DEEPSEEK_PROVIDERS = ("DEEPSEEK",)

# Providers this factory can build clients for
SUPPORTED_PROVIDERS = GEMINI_PROVIDERS + DEEPSEEK_PROVIDERS


def normalize_provider(provider: str | None) -> str:
    return (provider or "GOOGLE").upper()


def is_supported_provider(provider: str | None) -> bool:
    return normalize_provider(provider) in SUPPORTED_PROVIDERS


def get_llm_client(provider: str | None, api_key: str, base_url: str | None = None) -> LLMClient:
    """Return an LLMClient for the provider of a key.

    Raises:
        ValueError: If the provider is not supported
    """
    selected = normalize_provider(provider)

    if selected in GEMINI_PROVIDERS:
        return GeminiClient(api_key=api_key, base_url=base_url)
    if selected in DEEPSEEK_PROVIDERS:
        return DeepSeekClient(api_key=api_key, base_url=base_url)

    raise ValueError(f"Unsupported LLM provider: {selected}")
