"""LLM client interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from storeagent.llm.generation_config import GenerationConfig


@dataclass
class ProviderResponse:
    """Normalized provider response."""

    text: str | None
    usage_metadata: dict[str, int] = field(default_factory=dict)
    candidates: list[dict[str, Any]] = field(default_factory=list)
    prompt_feedback: dict[str, Any] | None = None

    @property
    def block_reason(self) -> str | None:
        """Why the provider blocked the prompt, if it did."""
        if not self.prompt_feedback:
            return None
        return self.prompt_feedback.get("block_reason") or None

    @property
    def finish_reason(self) -> str | None:
        """Finish reason of the first candidate."""
        if not self.candidates:
            return None
        return self.candidates[0].get("finish_reason") or None

    @property
    def total_tokens(self) -> int:
        return int(self.usage_metadata.get("total_token_count") or 0)


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    provider: str = ""

    @abstractmethod
    async def generate_response(self, prompt: str, config: GenerationConfig) -> ProviderResponse:
        """Generate a response from the LLM.

        Args:
            prompt: The prompt to send to the LLM
            config: Model and sampling settings

        Returns:
            The normalized provider response

        Raises:
            ProviderError: If the provider call fails
        """
        pass
