"""Per-company AI agent settings."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text

from storeagent.persistence.database import Base


class CompanyAISettings(Base):
    """AI agent configuration edited by company admins.

    ``response_rules`` holds the selected behavior rules (response length, speaking
    style, dialect, rule ids, custom rules) and may carry a ``fallbacks`` map of
    company-specific ``fallback_*`` messages.
    """

    __tablename__ = "company_ai_settings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), unique=True, nullable=False, index=True)
    personality_prompt = Column(Text, nullable=True)
    response_prompt = Column(Text, nullable=True)  # Legacy free-text guidelines
    response_rules = Column(JSON, nullable=True)
    disable_default_templates = Column(Boolean, default=False, nullable=False)

    # Generation settings (NULL = platform default)
    ai_temperature = Column(Float, nullable=True)
    ai_top_k = Column(Integer, nullable=True)
    ai_top_p = Column(Float, nullable=True)
    ai_max_tokens = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CompanyAISettings(id={self.id}, company_id={self.company_id})>"
