"""Generation settings for a single model call."""

from dataclasses import dataclass, replace
from typing import Any

from storeagent.persistence.models.company_ai_settings import CompanyAISettings
from storeagent.settings import settings

# Message-type adjustments, applied on top of company settings
TEMPERATURE_BY_TYPE = {
    "greeting": 0.8,
    "price_inquiry": 0.3,
    "shipping_inquiry": 0.3,
    "order_confirmation": 0.4,
}

TOKEN_LIMITS_BY_TYPE = {
    "greeting": 256,
    "price_inquiry": 512,
    "shipping_inquiry": 512,
    "order_confirmation": 768,
}


@dataclass(frozen=True)
class GenerationConfig:
    """Model and sampling settings."""

    model: str
    temperature: float
    top_k: int
    top_p: float
    max_output_tokens: int


def build_generation_config(
    model: str,
    company_settings: CompanyAISettings | None = None,
    message_context: dict[str, Any] | None = None,
) -> GenerationConfig:
    """Build the generation config for a call.

    Company settings override platform defaults. The message type then adjusts
    temperature and token limit unless the caller passed explicit values in
    ``message_context`` or the company changed the token limit.

    Args:
        model: Model name selected by the key manager
        company_settings: Company AI settings row, if any
        message_context: Optional ``message_type``, ``temperature`` and ``max_tokens``
    """
    message_context = message_context or {}

    def company_value(attr: str, default: Any) -> Any:
        value = getattr(company_settings, attr, None) if company_settings is not None else None
        return default if value is None else value

    config = GenerationConfig(
        model=model,
        temperature=company_value("ai_temperature", settings.llm_temperature),
        top_k=company_value("ai_top_k", settings.llm_top_k),
        top_p=company_value("ai_top_p", settings.llm_top_p),
        max_output_tokens=company_value("ai_max_tokens", settings.llm_max_output_tokens),
    )

    message_type = message_context.get("message_type") or "general"

    if message_context.get("temperature") is not None:
        config = replace(config, temperature=float(message_context["temperature"]))
    elif message_type in TEMPERATURE_BY_TYPE:
        config = replace(config, temperature=TEMPERATURE_BY_TYPE[message_type])

    if message_context.get("max_tokens") is not None:
        config = replace(config, max_output_tokens=int(message_context["max_tokens"]))
    elif message_type in TOKEN_LIMITS_BY_TYPE:
        company_tokens = getattr(company_settings, "ai_max_tokens", None) if company_settings is not None else None
        # Only replace a limit the company left at the default
        if company_tokens is None or company_tokens == settings.llm_max_output_tokens:
            config = replace(config, max_output_tokens=TOKEN_LIMITS_BY_TYPE[message_type])

    return config
