"""LLM abstraction layer."""

from storeagent.llm.client import LLMClient
from storeagent.llm.gemini_client import GeminiClient
from storeagent.llm.key_manager import KeyManager
from storeagent.llm.response_generator import GenerationResult, ResponseGenerator

__all__ = ["LLMClient", "GeminiClient", "KeyManager", "ResponseGenerator", "GenerationResult"]
