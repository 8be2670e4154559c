"""Shipping zone repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storeagent.persistence.models.shipping_zone import ShippingZone
from storeagent.persistence.repositories.base import BaseRepository


class ShippingZoneRepository(BaseRepository[ShippingZone]):
    """Repository for ShippingZone entities."""

    def __init__(self, session: AsyncSession):
        """Initialize shipping zone repository."""
        super().__init__(ShippingZone, session)

    async def find_shipping_zones(self, company_id: str) -> list[ShippingZone]:
        """Get the active shipping zones of a company."""
        stmt = (
            select(ShippingZone)
            .where(
                ShippingZone.company_id == company_id,
                ShippingZone.is_active == True,
            )
            .order_by(ShippingZone.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
