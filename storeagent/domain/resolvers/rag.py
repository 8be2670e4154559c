"""RAG resolver: numbers retrieved items and flags what kinds of data exist."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from storeagent.domain.models.chat_context import RAGItem

RAG_TYPES = ("product", "faq", "policy")


@dataclass
class RagContextItem:
    """A retrieved item numbered for the prompt."""

    index: int
    type: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RagContext:
    """RAG data ready for rendering."""

    has_data: bool
    has_products: bool
    items: list[RagContextItem] = field(default_factory=list)


class RagResolver:
    """Classifies RAG items. Items of unknown type are left out."""

    def resolve(self, items: Sequence[RAGItem] | None) -> RagContext:
        kept = []
        for item in items or []:
            item_type = (item.type or "").lower()
            if item_type not in RAG_TYPES:
                continue
            kept.append(
                RagContextItem(
                    index=len(kept) + 1,
                    type=item_type,
                    content=item.content or "",
                    metadata=dict(item.metadata or {}),
                )
            )
        return RagContext(
            has_data=bool(kept),
            has_products=any(i.type == "product" for i in kept),
            items=kept,
        )
