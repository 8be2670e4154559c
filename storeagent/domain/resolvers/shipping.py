"""Shipping resolver: detects shipping questions and looks up the customer's governorate."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeagent.domain.models.chat_context import ConversationTurn
from storeagent.domain.resolvers.arabic import normalize_arabic
from storeagent.persistence.models.shipping_zone import ShippingZone
from storeagent.persistence.repositories.shipping_zone_repository import ShippingZoneRepository
from storeagent.settings import settings

logger = logging.getLogger(__name__)

SHIPPING_KEYWORDS = [
    "شحن", "الشحن", "بتشحنوا", "توصيل", "التوصيل", "بتوصلوا", "يوصل", "توصل", "هيوصل", "هتوصل",
    "مصاريف", "تكلفة", "تكلفه", "المحافظات", "مدة", "مده",
    "delivery", "deliver", "shipping", "ship",
]

# Egyptian governorates: canonical name -> extra spellings
EGYPT_GOVERNORATES: dict[str, list[str]] = {
    "القاهرة": ["cairo"],
    "الجيزة": ["giza"],
    "الإسكندرية": ["اسكندرية", "alexandria", "alex"],
    "الدقهلية": ["المنصورة", "dakahlia"],
    "البحر الأحمر": ["الغردقة", "red sea"],
    "البحيرة": ["دمنهور", "beheira"],
    "الفيوم": ["fayoum"],
    "الغربية": ["طنطا", "gharbia"],
    "الإسماعيلية": ["ismailia"],
    "المنوفية": ["شبين الكوم", "monufia"],
    "المنيا": ["minya"],
    "القليوبية": ["بنها", "qalyubia"],
    "الوادي الجديد": ["new valley"],
    "السويس": ["suez"],
    "أسوان": ["aswan"],
    "أسيوط": ["assiut"],
    "بني سويف": ["beni suef"],
    "بورسعيد": ["بور سعيد", "port said"],
    "دمياط": ["damietta"],
    "الشرقية": ["الزقازيق", "sharqia"],
    "جنوب سيناء": ["شرم الشيخ", "south sinai"],
    "كفر الشيخ": ["kafr el sheikh"],
    "مطروح": ["مرسى مطروح", "matrouh"],
    "الأقصر": ["luxor"],
    "قنا": ["qena"],
    "شمال سيناء": ["العريش", "north sinai"],
    "سوهاج": ["sohag"],
}

# Short normalized names only match whole words
_MIN_SUBSTRING_LENGTH = 4
HISTORY_LOOKBACK = 3


@dataclass
class ShippingInfo:
    """Shipping terms for a governorate."""

    governorate: str
    price: float
    delivery_time: str


@dataclass
class ShippingContext:
    """Result of shipping resolution."""

    is_asking: bool
    found_governorate: Optional[str] = None
    shipping_info: Optional[ShippingInfo] = None
    available_governorates: list[str] = field(default_factory=list)


def is_asking_about_shipping(message: str | None) -> bool:
    """Check whether a message asks about shipping, delivery, cost or time."""
    if not message:
        return False
    words = set(message.lower().split())
    text = message.lower()
    for keyword in SHIPPING_KEYWORDS:
        # Latin keywords must be whole words ("ship" vs "shirt")
        if keyword.isascii():
            if keyword in words:
                return True
        elif keyword in text:
            return True
    return False


def _matches(variant: str, normalized_text: str, padded_text: str) -> bool:
    if not variant:
        return False
    if len(variant) < _MIN_SUBSTRING_LENGTH:
        return f" {variant} " in padded_text
    return variant in normalized_text


def _zone_names(zone: ShippingZone) -> list[str]:
    return [g for g in (zone.governorates or []) if isinstance(g, str) and g.strip()]


def extract_governorate(text: str | None, zones: Sequence[ShippingZone] = ()) -> str | None:
    """Find a governorate mentioned in text.

    Company zone spellings are checked first, then the built-in Egyptian list.

    Returns:
        Display name of the governorate (the zone's first spelling, or the
        canonical Egyptian name), or None
    """
    normalized_text = normalize_arabic(text)
    if not normalized_text:
        return None
    padded_text = f" {normalized_text} "

    for zone in zones:
        names = _zone_names(zone)
        for name in names:
            if _matches(normalize_arabic(name), normalized_text, padded_text):
                return names[0]

    for canonical, spellings in EGYPT_GOVERNORATES.items():
        for name in [canonical, *spellings]:
            if _matches(normalize_arabic(name), normalized_text, padded_text):
                return canonical

    return None


def find_zone(governorate: str, zones: Sequence[ShippingZone]) -> ShippingZone | None:
    """Find the zone covering a governorate, comparing normalized spellings."""
    target_names = {normalize_arabic(governorate)}
    for canonical, spellings in EGYPT_GOVERNORATES.items():
        names = {normalize_arabic(n) for n in [canonical, *spellings]}
        if target_names & names:
            target_names |= names
            break

    for zone in zones:
        if any(normalize_arabic(name) in target_names for name in _zone_names(zone)):
            return zone
    return None


class ShippingResolver:
    """Resolves shipping context for a message."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_suggestions: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.max_suggestions = max_suggestions or settings.max_suggested_governorates

    async def _load_zones(self, company_id: str) -> list[ShippingZone]:
        async with self._session_factory() as session:
            return await ShippingZoneRepository(session).find_shipping_zones(company_id)

    async def lookup_zone(self, company_id: str, governorate: str) -> ShippingZone | None:
        """Find the company zone covering a governorate or city name."""
        zones = await self._load_zones(company_id)
        found = extract_governorate(governorate, zones) or governorate
        return find_zone(found, zones)

    async def resolve(
        self,
        message: str,
        company_id: str | None,
        history: Sequence[ConversationTurn] = (),
    ) -> ShippingContext | None:
        """Resolve shipping context.

        Args:
            message: Current customer message
            company_id: Company ID (zones are company-scoped)
            history: Conversation turns, oldest first

        Returns:
            ShippingContext, or None if resolution failed
        """
        try:
            is_asking = is_asking_about_shipping(message)
            zones = await self._load_zones(company_id) if company_id else []

            found = extract_governorate(message, zones)
            if not found and is_asking:
                # Newest turns first
                for turn in reversed(list(history)[-HISTORY_LOOKBACK:]):
                    found = extract_governorate(turn.content, zones)
                    if found:
                        break

            context = ShippingContext(is_asking=is_asking, found_governorate=found)

            if found:
                zone = find_zone(found, zones)
                if zone is not None and zone.price is not None:
                    context.shipping_info = ShippingInfo(
                        governorate=found,
                        price=float(zone.price),
                        delivery_time=zone.delivery_time or "",
                    )
            elif is_asking:
                names = []
                for zone in zones:
                    zone_names = _zone_names(zone)
                    if zone_names and zone_names[0] not in names:
                        names.append(zone_names[0])
                context.available_governorates = names[: self.max_suggestions]

            return context
        except Exception as e:
            logger.error(
                f"Shipping resolution failed for company {company_id}: {e}",
                extra={"company_id": company_id},
                exc_info=True,
            )
            return None
