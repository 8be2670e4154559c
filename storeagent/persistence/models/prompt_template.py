"""Prompt template model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from storeagent.persistence.database import Base


class PromptTemplate(Base):
    """A named prompt fragment with ``{{variable}}`` placeholders.

    Rows with a NULL company_id are platform-wide defaults; company rows with the
    same key shadow them.
    """

    __tablename__ = "prompt_templates"
    __table_args__ = (
        UniqueConstraint("company_id", "key", name="uq_prompt_templates_company_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=True, index=True)  # NULL for global default
    key = Column(String(100), nullable=False, index=True)
    content = Column(Text, nullable=False)
    category = Column(String(50), nullable=False, default="system")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PromptTemplate(id={self.id}, company_id={self.company_id}, key={self.key}, is_active={self.is_active})>"
