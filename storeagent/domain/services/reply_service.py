"""Reply service: builds the prompt for a customer message and generates the reply."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from storeagent.domain.models.chat_context import (
    CompanyPrompts,
    ConversationTurn,
    CustomerData,
    MessageData,
    RAGItem,
)
from storeagent.domain.prompts.assembler import PromptAssembler
from storeagent.domain.services.intent_detector import IntentDetector
from storeagent.llm.response_generator import ResponseGenerator

logger = logging.getLogger(__name__)

# Message type passed to the generator for each detected intent
MESSAGE_TYPES_BY_INTENT = {
    "greeting": "greeting",
    "price_inquiry": "price_inquiry",
    "shipping_inquiry": "shipping_inquiry",
    "product_inquiry": "inquiry",
    "order_inquiry": "inquiry",
    "general_inquiry": "general",
}


@dataclass
class ReplyResult:
    """Result of a reply request."""

    response: str | None
    intent: str
    message_type: str
    prompt_length: int
    attempts: int
    cached: bool
    model_used: str | None
    silent_reason: str | None
    latency_ms: float

    @property
    def success(self) -> bool:
        return self.response is not None


class ReplyService:
    """Runs one customer message through prompt assembly and generation."""

    def __init__(
        self,
        assembler: PromptAssembler,
        generator: ResponseGenerator,
        intent_detector: IntentDetector | None = None,
    ) -> None:
        self.assembler = assembler
        self.generator = generator
        self.intent_detector = intent_detector or assembler.intent_detector

    async def generate_reply(
        self,
        message: str,
        company_id: str,
        company_prompts: CompanyPrompts | None = None,
        history: Sequence[ConversationTurn] | None = None,
        rag_data: Sequence[RAGItem] | None = None,
        customer_data: CustomerData | None = None,
        message_data: MessageData | None = None,
        conversation_id: str | None = None,
        customer_id: str | None = None,
    ) -> ReplyResult:
        """Generate the agent's reply to a customer message.

        The intent is detected when the caller did not supply one, and is used
        both for prompt assembly and for the generator's message type.

        Args:
            message: Raw customer message
            company_id: Company ID
            company_prompts: Company personality and rules
            history: Conversation turns, oldest first
            rag_data: Retrieved products, FAQs and policies
            customer_data: Known customer details
            message_data: Platform, intent, reply and post context
            conversation_id: Conversation ID, for logs
            customer_id: Customer ID, for logs

        Returns:
            ReplyResult; ``response`` is None when generation failed
        """
        start_time = time.time()

        message_data = (message_data or MessageData()).model_copy()
        message_data.company_id = message_data.company_id or company_id
        if not message_data.intent:
            message_data.intent = self.intent_detector.detect_intent(message).intent
        message_type = message_data.message_type or MESSAGE_TYPES_BY_INTENT.get(message_data.intent, "general")

        customer_data = customer_data or CustomerData(company_id=company_id)
        prompt = await self.assembler.build(
            message,
            company_prompts=company_prompts,
            history=history,
            rag_data=rag_data,
            customer_data=customer_data,
            message_data=message_data,
        )

        result = await self.generator.generate(
            prompt,
            company_id,
            conversation_id=conversation_id,
            customer_id=customer_id,
            message_context={"message_type": message_type},
        )
        latency_ms = (time.time() - start_time) * 1000

        if not result.success:
            logger.warning(
                f"No reply generated for company {company_id}: {result.silent_reason}",
                extra={"company_id": company_id, "conversation_id": conversation_id, "intent": message_data.intent},
            )

        return ReplyResult(
            response=result.content,
            intent=message_data.intent,
            message_type=message_type,
            prompt_length=len(prompt),
            attempts=result.attempts,
            cached=result.cached,
            model_used=result.model_used,
            silent_reason=result.silent_reason,
            latency_ms=latency_ms,
        )
