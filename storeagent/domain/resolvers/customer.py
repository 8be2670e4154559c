"""Customer resolver: customer profile, conversation stage and trimmed history."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

from storeagent.domain.models.chat_context import ConversationTurn, CustomerData
from storeagent.domain.resolvers.arabic import normalize_arabic

NEW_CUSTOMER_NAME = "عميل جديد"
UNKNOWN_VALUE = "غير محدد"

Stage = Literal["starting", "early", "ongoing"]


@dataclass
class CustomerProfile:
    """Customer details ready for rendering; never holds None."""

    name: str
    phone: str
    city: str
    order_count: int
    is_new_customer: bool
    conversation_length: int
    stage: Stage


@dataclass
class HistoryItem:
    """A history turn numbered for the prompt (1-based, chronological)."""

    index: int
    sender: Literal["customer", "assistant"]
    content: str
    timestamp: Optional[datetime]


@dataclass
class HistoryContext:
    """History kept within the character budget."""

    has_history: bool
    items: list[HistoryItem] = field(default_factory=list)
    truncated: bool = False


def _stage(conversation_length: int) -> Stage:
    if conversation_length == 0:
        return "starting"
    if conversation_length < 3:
        return "early"
    return "ongoing"


def resolve_profile(
    customer: CustomerData | None,
    history: Sequence[ConversationTurn] = (),
) -> CustomerProfile:
    """Build the customer profile with placeholders for missing fields."""
    customer = customer or CustomerData()
    conversation_length = len(history)
    return CustomerProfile(
        name=(customer.name or "").strip() or NEW_CUSTOMER_NAME,
        phone=(customer.phone or "").strip() or UNKNOWN_VALUE,
        city=(customer.city or "").strip() or UNKNOWN_VALUE,
        order_count=customer.order_count or 0,
        is_new_customer=(customer.order_count or 0) == 0 and conversation_length == 0,
        conversation_length=conversation_length,
        stage=_stage(conversation_length),
    )


def resolve_history(
    history: Sequence[ConversationTurn] | None,
    limit_chars: int = 2000,
) -> HistoryContext:
    """Keep the most recent turns whose combined content fits in ``limit_chars``.

    Walks newest to oldest and stops before the turn that would exceed the
    budget. The kept turns are returned oldest first and numbered from 1.
    When the newest turn alone is over budget it is kept clipped to
    ``limit_chars``, so an ongoing conversation never reads as a first contact.
    """
    if not history:
        return HistoryContext(has_history=False)

    kept: list[tuple[ConversationTurn, str]] = []
    total = 0
    for turn in reversed(history):
        content = turn.content or ""
        if total + len(content) > limit_chars:
            if not kept:
                kept.append((turn, content[:limit_chars]))
            break
        kept.append((turn, content))
        total += len(content)
    kept.reverse()

    items = [
        HistoryItem(
            index=i,
            sender="customer" if turn.is_from_customer else "assistant",
            content=content,
            timestamp=turn.created_at,
        )
        for i, (turn, content) in enumerate(kept, start=1)
    ]
    clipped = bool(kept) and len(kept[-1][1]) < len(history[-1].content or "")
    return HistoryContext(
        has_history=True,
        items=items,
        truncated=clipped or len(kept) < len(history),
    )


class CustomerResolver:
    """Resolves customer and history context."""

    def __init__(self, history_limit_chars: int = 2000) -> None:
        self.history_limit_chars = history_limit_chars

    def resolve_profile(
        self,
        customer: CustomerData | None,
        history: Sequence[ConversationTurn] = (),
    ) -> CustomerProfile:
        return resolve_profile(customer, history)

    def resolve_history(
        self,
        history: Sequence[ConversationTurn] | None,
        limit_chars: int | None = None,
    ) -> HistoryContext:
        return resolve_history(history, limit_chars or self.history_limit_chars)

    def extract_last_mentioned_product(
        self,
        history: Sequence[ConversationTurn] | None,
        product_names: Sequence[str],
    ) -> str | None:
        return extract_last_mentioned_product(history, product_names)
