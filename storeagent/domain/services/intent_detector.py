"""Keyword-based intent and tone detection for customer chat messages."""

from dataclasses import dataclass, field
from typing import Literal

Intent = Literal[
    "greeting",
    "price_inquiry",
    "shipping_inquiry",
    "order_inquiry",
    "product_inquiry",
    "general_inquiry",
]


@dataclass
class IntentResult:
    """Result of intent detection."""

    intent: Intent
    confidence: float  # 0.0 to 1.0
    keywords: list[str] = field(default_factory=list)


@dataclass
class ToneResult:
    """Emotional state and urgency of a message."""

    emotional_state: Literal["frustrated", "neutral"]
    urgency: Literal["high", "normal"]

    @property
    def needs_note(self) -> bool:
        return self.emotional_state == "frustrated" or self.urgency == "high"


def _confidence(base: float, message_length: int) -> float:
    # Long messages are usually more complex than a single intent
    penalty = 0.1 if message_length > 50 else 0.0
    return max(0.6, min(0.99, base - penalty))


class IntentDetector:
    """Intent detector for Arabic (Egyptian) and English e-commerce messages.

    Checks run in priority order: greetings, prices, shipping, orders, products.
    """

    GREETING_KEYWORDS = [
        "السلام عليكم", "السلام", "أهلاً", "أهلا", "اهلا", "مرحبا", "مرحباً",
        "ازيك", "ازي", "هلو", "هلا", "صباح الخير", "مساء الخير", "hello",
    ]

    PRICE_KEYWORDS = [
        "كام", "بكام", "بكم", "ب كام", "ب كم",
        "سعر", "سعره", "سعرها", "السعر",
        "ثمن", "ثمنه", "ثمنها", "الثمن",
        "تمن", "تمنه", "تمنها", "التمن",
        "شحال", "price", "how much",
    ]

    SHIPPING_KEYWORDS = ["شحن", "توصيل", "شحنت", "توصل", "delivery", "shipping"]

    ORDER_KEYWORDS = ["أوردر", "اوردر", "اطلب", "أطلب", "اشتري", "أشتري", "طلب", "احجز", "order"]

    PRODUCT_KEYWORDS = [
        "صور", "صورة", "صوره", "صورتها", "أشوف", "اشوف", "عندك ايه", "ايه المنتجات",
        "منتج", "منتجات", "كوتشي", "كوتشيات",
    ]

    FRUSTRATION_KEYWORDS = [
        "زهقت", "مش معقول", "حرام", "نصب", "نصابين", "وحش", "سيء", "سيئ", "زفت",
        "اتأخر", "متأخر", "مفيش رد", "محدش بيرد", "غلط", "شكوى", "مشكلة", "مشكله",
        "terrible", "worst", "angry",
    ]

    URGENCY_KEYWORDS = [
        "بسرعة", "بسرعه", "ضروري", "مستعجل", "مستعجلة", "حالا", "حالاً", "دلوقتي",
        "النهاردة", "النهارده", "urgent", "asap",
    ]

    def detect_intent(self, message: str) -> IntentResult:
        """Detect intent from message text.

        Args:
            message: Customer message text

        Returns:
            IntentResult; ``general_inquiry`` when no keyword matches
        """
        message_lower = (message or "").strip().lower()
        if not message_lower:
            return IntentResult(intent="general_inquiry", confidence=0.5)

        for keyword in self.GREETING_KEYWORDS:
            if message_lower == keyword:
                return IntentResult(intent="greeting", confidence=0.99, keywords=[keyword])
            if message_lower.startswith(keyword):
                return IntentResult(
                    intent="greeting",
                    confidence=_confidence(0.95, len(message_lower)),
                    keywords=[keyword],
                )

        checks: list[tuple[Intent, list[str], float]] = [
            ("price_inquiry", self.PRICE_KEYWORDS, 0.85),
            ("shipping_inquiry", self.SHIPPING_KEYWORDS, 0.80),
            ("order_inquiry", self.ORDER_KEYWORDS, 0.85),
            ("product_inquiry", self.PRODUCT_KEYWORDS, 0.75),
        ]
        for intent, keywords, base in checks:
            found = [k for k in keywords if k in message_lower]
            if found:
                return IntentResult(
                    intent=intent,
                    confidence=_confidence(base, len(message_lower)),
                    keywords=found,
                )

        return IntentResult(intent="general_inquiry", confidence=0.5)

    def is_price_question(self, message: str) -> bool:
        """Check whether the message asks for a price."""
        message_lower = (message or "").lower()
        return any(k in message_lower for k in ("سعر", "بكام", "كام"))

    def detect_tone(self, message: str) -> ToneResult:
        """Detect frustration and urgency."""
        message_lower = (message or "").lower()
        frustrated = any(k in message_lower for k in self.FRUSTRATION_KEYWORDS)
        # Repeated punctuation reads as agitation
        if "!!!" in message_lower or "؟؟؟" in message_lower or "???" in message_lower:
            frustrated = True
        urgent = any(k in message_lower for k in self.URGENCY_KEYWORDS)
        return ToneResult(
            emotional_state="frustrated" if frustrated else "neutral",
            urgency="high" if urgent else "normal",
        )
