"""Context resolvers: turn raw conversation data into prompt-ready values."""

from storeagent.domain.resolvers.customer import CustomerProfile, CustomerResolver, HistoryContext
from storeagent.domain.resolvers.rag import RagContext, RagResolver
from storeagent.domain.resolvers.shipping import ShippingContext, ShippingResolver

__all__ = [
    "CustomerProfile",
    "CustomerResolver",
    "HistoryContext",
    "RagContext",
    "RagResolver",
    "ShippingContext",
    "ShippingResolver",
]
