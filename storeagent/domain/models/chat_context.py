"""Data handed to the prompt assembler by the chat pipeline."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ConversationTurn(BaseModel):
    """One message of the conversation, oldest first in a history list."""

    is_from_customer: bool
    content: str = ""
    created_at: datetime | None = None


class RAGItem(BaseModel):
    """A retrieved product, FAQ or policy snippet."""

    type: str  # "product", "faq" or "policy"
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")


class CustomerData(BaseModel):
    """Known customer details."""

    company_id: str | None = None
    name: str | None = None
    phone: str | None = None
    city: str | None = None
    order_count: int = 0


class ReplyContext(BaseModel):
    """Set when the customer replies to a specific earlier message."""

    is_reply: bool = False
    original_content: str | None = None
    original_created_at: datetime | None = None


class PostDetails(BaseModel):
    """The Facebook post or ad the customer came from."""

    message: str | None = None
    image_urls: list[str] = Field(default_factory=list)


class MessageData(BaseModel):
    """Metadata about the incoming message."""

    company_id: str | None = None
    platform: Literal["test-chat", "whatsapp", "facebook"] | None = None
    intent: str | None = None
    message_type: str | None = None
    reply_context: ReplyContext | None = None
    post_details: PostDetails | None = None
    is_post_product_response: bool = False


class CompanyPrompts(BaseModel):
    """Company prompt settings used by the assembler."""

    personality_prompt: str | None = None
    response_prompt: str | None = None
    response_rules: Any = None  # dict, JSON string or None


class OrderDetails(BaseModel):
    """A just-created order, for the confirmation prompt."""

    order_number: str
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    city: str | None = None
    product_name: str | None = None
    product_color: str | None = None
    product_size: str | None = None
    product_price: float | None = None
    shipping_cost: float | None = None
    total: float | None = None
