"""Shipping zone model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String

from storeagent.persistence.database import Base


class ShippingZone(Base):
    """A group of governorates sharing one shipping price and delivery time."""

    __tablename__ = "shipping_zones"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    governorates = Column(JSON, nullable=False, default=list)  # Spelling variants, e.g. ["القاهرة", "القاهره", "Cairo"]
    price = Column(Numeric(10, 2), nullable=True)
    delivery_time = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ShippingZone(id={self.id}, company_id={self.company_id}, price={self.price})>"
