"""Tests for the reply service."""

from unittest.mock import AsyncMock

import pytest

from storeagent.domain.models.chat_context import MessageData, RAGItem
from storeagent.domain.prompts.assembler import PromptAssembler
from storeagent.domain.prompts.template_store import TemplateStore
from storeagent.domain.resolvers.shipping import ShippingResolver
from storeagent.domain.services.reply_service import ReplyService
from storeagent.llm.response_generator import NO_KEYS_REASON, GenerationResult


@pytest.fixture
def generator():
    generator = AsyncMock()
    generator.generate.return_value = GenerationResult(
        content="أهلاً بيك! 😊", key_used="k1", model_used="gemini-2.0-flash", attempts=1
    )
    return generator


@pytest.fixture
def service(session_factory, generator):
    assembler = PromptAssembler(TemplateStore(session_factory), ShippingResolver(session_factory))
    return ReplyService(assembler, generator)


class TestReplyService:
    """Test cases for ReplyService."""

    @pytest.mark.asyncio
    async def test_generate_reply(self, service, generator):
        result = await service.generate_reply("السلام عليكم", "c1", conversation_id="conv-1")

        assert result.success is True
        assert result.response == "أهلاً بيك! 😊"
        assert result.intent == "greeting"
        assert result.message_type == "greeting"
        assert result.model_used == "gemini-2.0-flash"

        prompt, company_id = generator.generate.await_args.args
        kwargs = generator.generate.await_args.kwargs
        assert company_id == "c1"
        assert "<user_input_boundary>\"السلام عليكم\"</user_input_boundary>" in prompt
        assert result.prompt_length == len(prompt)
        assert kwargs["conversation_id"] == "conv-1"
        assert kwargs["message_context"] == {"message_type": "greeting"}

    @pytest.mark.asyncio
    async def test_caller_intent_and_type_win(self, service, generator):
        message_data = MessageData(intent="price_inquiry", message_type="general")

        result = await service.generate_reply(
            "بكام؟", "c1", rag_data=[RAGItem(type="product", content="شنطة جلد 450")], message_data=message_data
        )

        assert result.intent == "price_inquiry"
        assert result.message_type == "general"
        assert message_data.company_id is None

    @pytest.mark.asyncio
    async def test_product_intent_maps_to_inquiry(self, service, generator):
        result = await service.generate_reply("عايز كوتشي", "c1", message_data=MessageData(intent="product_inquiry"))

        assert result.message_type == "inquiry"
        prompt = generator.generate.await_args.args[0]
        assert "<rag_status>EMPTY</rag_status>" in prompt

    @pytest.mark.asyncio
    async def test_failed_generation(self, service, generator):
        generator.generate.return_value = GenerationResult(content=None, attempts=3, silent_reason=NO_KEYS_REASON)

        result = await service.generate_reply("مرحبا", "c1")

        assert result.success is False
        assert result.response is None
        assert result.silent_reason == NO_KEYS_REASON
        assert result.attempts == 3
