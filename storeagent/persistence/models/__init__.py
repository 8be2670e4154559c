"""Database models."""

from storeagent.persistence.models.ai_key import AIKey, AIModelConfig
from storeagent.persistence.models.company_ai_settings import CompanyAISettings
from storeagent.persistence.models.prompt_template import PromptTemplate
from storeagent.persistence.models.shipping_zone import ShippingZone

__all__ = [
    "AIKey",
    "AIModelConfig",
    "CompanyAISettings",
    "PromptTemplate",
    "ShippingZone",
]
