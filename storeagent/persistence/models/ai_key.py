"""AI provider key and model configuration models."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from storeagent.persistence.database import Base


class AIKey(Base):
    """An API credential for a model provider.

    Keys with a NULL company_id are central keys shared by every company.
    """

    __tablename__ = "ai_keys"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=True, index=True)  # NULL for central keys
    name = Column(String(255), nullable=False)
    api_key = Column(Text, nullable=False)
    provider = Column(String(50), nullable=False, default="GOOGLE")
    base_url = Column(String(500), nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    models = relationship(
        "AIModelConfig", back_populates="key", cascade="all, delete-orphan", order_by="AIModelConfig.priority"
    )

    def __repr__(self) -> str:
        return f"<AIKey(id={self.id}, name={self.name}, provider={self.provider}, is_active={self.is_active})>"


class AIModelConfig(Base):
    """A model enabled on a key, tried in priority order."""

    __tablename__ = "ai_model_configs"

    id = Column(Integer, primary_key=True, index=True)
    key_id = Column(Integer, ForeignKey("ai_keys.id", ondelete="CASCADE"), nullable=False, index=True)
    model_name = Column(String(100), nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    is_enabled = Column(Boolean, default=True, nullable=False)
    disabled_reason = Column(String(255), nullable=True)
    total_tokens = Column(Integer, nullable=False, default=0)

    key = relationship("AIKey", back_populates="models")

    def __repr__(self) -> str:
        return f"<AIModelConfig(id={self.id}, key_id={self.key_id}, model_name={self.model_name})>"
