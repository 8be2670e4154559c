"""Repository layer."""

from storeagent.persistence.repositories.ai_key_repository import AIKeyRepository
from storeagent.persistence.repositories.company_ai_settings_repository import CompanyAISettingsRepository
from storeagent.persistence.repositories.prompt_template_repository import PromptTemplateRepository
from storeagent.persistence.repositories.shipping_zone_repository import ShippingZoneRepository

__all__ = [
    "AIKeyRepository",
    "CompanyAISettingsRepository",
    "PromptTemplateRepository",
    "ShippingZoneRepository",
]
