"""Assembles the final chat prompt from company settings, resolvers and templates."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Optional

from storeagent.core.sanitizer import sanitize_input
from storeagent.domain.models.chat_context import (
    CompanyPrompts,
    ConversationTurn,
    CustomerData,
    MessageData,
    OrderDetails,
    RAGItem,
)
from storeagent.domain.prompts.default_templates import CRITICAL_CONSTRAINTS_FALLBACK, FAILURE_PROMPT
from storeagent.domain.prompts.response_rules import compile_rules, parse_rule_selection
from storeagent.domain.prompts.template_store import TemplateStore, inject_variables
from storeagent.domain.resolvers.customer import CustomerResolver, HistoryContext
from storeagent.domain.resolvers.rag import RagResolver
from storeagent.domain.resolvers.shipping import ShippingResolver
from storeagent.domain.services.intent_detector import IntentDetector
from storeagent.settings import settings
from storeagent.utils.time_ago import time_ago

logger = logging.getLogger(__name__)

# Intents that need catalog data; an empty RAG result then gets the strict block
DEFAULT_PRODUCT_INTENTS = ("product_inquiry", "price_inquiry", "shipping_inquiry", "order_status", "order_inquiry")
DEFAULT_GREETING_INTENTS = ("greeting",)

# Personality text an admin has not replaced yet
PERSONALITY_PLACEHOLDERS = ("# يجب إعداد", "يجب إعداد شخصية المساعد الذكي")

PLATFORM_CONTEXTS = {
    "test-chat": (
        "📱 سياق المحادثة: أنت تتحدث مع العميل عبر دردشة مباشرة على الموقع (Test Chat).\n"
        "- هذه دردشة فورية ومباشرة\n"
        "- يمكنك إرسال الصور والروابط مباشرة\n"
        "- العميل ينتظر ردك الآن\n"
        "- كن سريعاً ومباشراً في الرد\n\n"
    ),
    "whatsapp": "📱 سياق المحادثة: أنت تتحدث مع العميل عبر واتساب.\n\n",
    "facebook": "📱 سياق المحادثة: أنت تتحدث مع العميل عبر فيسبوك ماسنجر.\n\n",
}

STAGE_LABELS = {
    "starting": "بداية المحادثة",
    "early": "بداية التعارف",
    "ongoing": "محادثة مستمرة",
}

SENDER_LABELS = {"customer": "العميل", "assistant": "ردك"}

DEFAULT_DELIVERY_TIME = "3-5 أيام"
DEFAULT_ORDER_SHIPPING_COST = 50

# Prompt sections, in the order they appear in the final prompt
SECTION_ORDER = [
    "personality",
    "response_rules",
    "post_context",
    "tone_note",
    "shipping",
    "response_prompt",
    "customer_info",
    "reply_context",
    "history",
    "rag",
    "user_message",
    "critical_constraints",
]


def format_price(value: Any) -> str:
    """Format a price without a trailing ``.0`` for whole amounts."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}"


def is_placeholder_personality(text: str) -> bool:
    return any(text.startswith(marker) or marker in text for marker in PERSONALITY_PLACEHOLDERS)


class PromptAssembler:
    """Assembles chat prompts.

    Each section is built by its own method and guarded: a failing section is
    logged and contributes nothing. Personality, shipping, history and the
    customer profile are built concurrently; RAG is built afterwards because
    it depends on the conversation. The sections are then joined in
    ``SECTION_ORDER``, with the customer message wrapped in
    ``<user_input_boundary>`` and the critical constraints always last.
    """

    def __init__(
        self,
        template_store: TemplateStore,
        shipping_resolver: ShippingResolver,
        customer_resolver: CustomerResolver | None = None,
        rag_resolver: RagResolver | None = None,
        intent_detector: IntentDetector | None = None,
        product_intents: Sequence[str] = DEFAULT_PRODUCT_INTENTS,
        greeting_intents: Sequence[str] = DEFAULT_GREETING_INTENTS,
    ) -> None:
        """Initialize the assembler.

        Args:
            template_store: Template store for all prompt fragments
            shipping_resolver: Shipping context resolver
            customer_resolver: Customer/history resolver
            rag_resolver: RAG resolver
            intent_detector: Used for tone, price questions and missing intents
            product_intents: Intents for which empty RAG data gets the strict block
            greeting_intents: Intents that skip the "no product data" instructions
        """
        self.templates = template_store
        self.shipping_resolver = shipping_resolver
        self.customer_resolver = customer_resolver or CustomerResolver(settings.history_limit_chars)
        self.rag_resolver = rag_resolver or RagResolver()
        self.intent_detector = intent_detector or IntentDetector()
        self.product_intents = frozenset(product_intents)
        self.greeting_intents = frozenset(greeting_intents)

    async def build(
        self,
        message: str,
        company_prompts: CompanyPrompts | None = None,
        history: Sequence[ConversationTurn] | None = None,
        rag_data: Sequence[RAGItem] | None = None,
        customer_data: CustomerData | None = None,
        message_data: MessageData | None = None,
    ) -> str:
        """Build the prompt for a customer message.

        Args:
            message: Raw customer message
            company_prompts: Company personality and rules
            history: Conversation turns, oldest first
            rag_data: Retrieved products, FAQs and policies
            customer_data: Known customer details
            message_data: Platform, intent, reply and post context

        Returns:
            The assembled prompt; never raises
        """
        message = message or ""
        company_id = (customer_data.company_id if customer_data else None) or (
            message_data.company_id if message_data else None
        )
        try:
            history = list(history or [])
            rag_data = list(rag_data or [])
            company_prompts = company_prompts or CompanyPrompts()
            message_data = message_data or MessageData(company_id=company_id)

            personality, shipping, history_block, customer_info = await asyncio.gather(
                self._guard("personality", company_id, self._personality_section(company_prompts, company_id, message_data)),
                self._guard("shipping", company_id, self._shipping_section(message, company_id, history)),
                self._guard("history", company_id, self._history_section(history, company_id)),
                self._guard("customer_info", company_id, self._customer_section(customer_data, history, company_id)),
            )
            rag = await self._guard("rag", company_id, self._rag_section(message, rag_data, history, message_data, company_id))

            sections = {
                "personality": personality,
                "response_rules": self._guard_sync("response_rules", company_id, self._rules_section, company_prompts),
                "post_context": self._guard_sync("post_context", company_id, self._post_section, message_data, rag_data),
                "tone_note": self._guard_sync("tone_note", company_id, self._tone_section, message),
                "shipping": shipping,
                "response_prompt": self._guard_sync("response_prompt", company_id, self._response_prompt_section, company_prompts),
                "customer_info": customer_info,
                "reply_context": await self._guard(
                    "reply_context", company_id, self._reply_section(message_data, message, company_id)
                ),
                "history": history_block,
                "rag": rag,
                "user_message": self._user_message_section(message),
                "critical_constraints": await self._critical_constraints(company_id),
            }
            prompt = "".join(sections[name] for name in SECTION_ORDER)
            logger.info(
                f"Built prompt for company {company_id}: {len(prompt)} chars",
                extra={"company_id": company_id, "prompt_length": len(prompt)},
            )
            return prompt
        except Exception as e:
            logger.error(f"Prompt assembly failed for company {company_id}: {e}", exc_info=True)
            return self.fallback_prompt(message)

    @staticmethod
    def fallback_prompt(message: str) -> str:
        """Minimal prompt used when assembly fails entirely."""
        return inject_variables(FAILURE_PROMPT, {"customer_message": message}) + CRITICAL_CONSTRAINTS_FALLBACK

    async def _guard(self, name: str, company_id: str | None, section: Awaitable[str]) -> str:
        try:
            return await section or ""
        except Exception as e:
            logger.warning(
                f"Prompt section '{name}' failed: {e}",
                extra={"section": name, "company_id": company_id},
                exc_info=True,
            )
            return ""

    def _guard_sync(self, name: str, company_id: str | None, build: Callable[..., str], *args: Any) -> str:
        try:
            return build(*args) or ""
        except Exception as e:
            logger.warning(
                f"Prompt section '{name}' failed: {e}",
                extra={"section": name, "company_id": company_id},
                exc_info=True,
            )
            return ""

    async def _personality_section(
        self,
        company_prompts: CompanyPrompts,
        company_id: str | None,
        message_data: MessageData,
    ) -> str:
        personality = (company_prompts.personality_prompt or "").strip()
        if not personality or is_placeholder_personality(personality):
            text = await self.templates.resolve(company_id, "system_personality")
        else:
            text = f"{personality}\n\n"
        return text + PLATFORM_CONTEXTS.get(message_data.platform or "", "")

    def _rules_section(self, company_prompts: CompanyPrompts) -> str:
        try:
            selection = parse_rule_selection(company_prompts.response_rules)
        except ValueError as e:
            logger.warning(f"Failed to parse response rules, using defaults: {e}")
            selection = None
        return compile_rules(selection)

    def _post_section(self, message_data: MessageData, rag_data: list[RAGItem]) -> str:
        lines = []
        has_product = False

        if message_data.is_post_product_response and rag_data:
            product = rag_data[0]
            name = product.metadata.get("name") or "المنتج"
            price = product.metadata.get("price")
            price_text = f"{format_price(price)} جنيه" if price is not None else "غير متوفر"
            has_product = True
            lines.append("العميل جاء من بوست Facebook:")
            lines.append(f"- المنتج: {sanitize_input(name)} - {price_text}")
            lines.append("- اذكري الاسم والسعر بوضوح عند السؤال")
            lines.append("")

        post = message_data.post_details
        if post is not None and (post.message or post.image_urls):
            lines.append("📌 معلومات المنشور الذي جاء منه العميل:")
            lines.append("=====================================")
            if post.message:
                lines.append(f'📝 نص المنشور:\n"{sanitize_input(post.message)}"')
                lines.append("")
            if post.image_urls:
                lines.append(f"🖼️ المنشور يحتوي على {len(post.image_urls)} صورة")
                lines.append("💡 استخدمي هذه المعلومات لفهم المنتج/الخدمة التي يسأل عنها العميل")
                lines.append("")
            lines.append("💡 مهم: العميل جاء من هذا المنشور - استخدمي محتوى المنشور لفهم السياق")
            if not has_product:
                lines.append("💡 إذا سأل العميل عن السعر أو المنتج بدون تحديد، فالمقصود هو المنتج المذكور في المنشور أعلاه")
            lines.append("=====================================")
            lines.append("")

        if not lines:
            return ""
        return "\n".join(lines) + "\n"

    def _tone_section(self, message: str) -> str:
        tone = self.intent_detector.detect_tone(message)
        if not tone.needs_note:
            return ""
        notes = []
        if tone.emotional_state == "frustrated":
            notes.append("العميل منزعج - تعاطفي")
        if tone.urgency == "high":
            notes.append("رد سريع ومباشر")
        return f"ملاحظات: {' | '.join(notes)}\n\n"

    async def _shipping_section(
        self,
        message: str,
        company_id: str | None,
        history: list[ConversationTurn],
    ) -> str:
        context = await self.shipping_resolver.resolve(message, company_id, history)
        if context is None:
            return ""

        if context.shipping_info is not None:
            info = context.shipping_info
            return await self.templates.resolve(
                company_id,
                "shipping_response",
                {
                    "governorate": info.governorate,
                    "price": format_price(info.price),
                    "delivery_time": info.delivery_time or DEFAULT_DELIVERY_TIME,
                },
            )
        if context.is_asking and context.found_governorate:
            return await self.templates.resolve(
                company_id, "no_shipping_found", {"governorate": context.found_governorate}
            )
        if context.is_asking:
            available = ""
            if context.available_governorates:
                available = "المحافظات المتاحة للشحن: " + "، ".join(context.available_governorates)
            return await self.templates.resolve(
                company_id,
                "system_shipping_alert",
                {"customer_message": message, "available_governorates": available},
            )
        return ""

    def _response_prompt_section(self, company_prompts: CompanyPrompts) -> str:
        response_prompt = (company_prompts.response_prompt or "").strip()
        return f"{response_prompt}\n\n" if response_prompt else ""

    async def _customer_section(
        self,
        customer_data: CustomerData | None,
        history: list[ConversationTurn],
        company_id: str | None,
    ) -> str:
        profile = self.customer_resolver.resolve_profile(customer_data, history)
        return await self.templates.resolve(
            company_id,
            "system_customer_info",
            {
                "name": profile.name,
                "phone": profile.phone,
                "city": profile.city,
                "order_count": profile.order_count,
                "stage": STAGE_LABELS[profile.stage],
                "conversation_length": profile.conversation_length,
            },
        )

    async def _reply_section(self, message_data: MessageData, message: str, company_id: str | None) -> str:
        reply = message_data.reply_context
        if reply is None or not reply.is_reply:
            return ""

        parts = [await self.templates.resolve(company_id, "system_reply_context_header")]
        if reply.original_content:
            parts.append(
                await self.templates.resolve(
                    company_id,
                    "system_reply_context_original",
                    {"content": reply.original_content, "time_ago": time_ago(reply.original_created_at)},
                )
            )
        else:
            parts.append(await self.templates.resolve(company_id, "system_reply_context_unknown"))
        parts.append(
            await self.templates.resolve(company_id, "system_reply_context_footer", {"customer_message": message})
        )
        return "".join(parts)

    def _history_lines(self, history: HistoryContext) -> str:
        lines = []
        for item in history.items:
            sender = SENDER_LABELS[item.sender]
            lines.append(f"{item.index}. {sender} (منذ {time_ago(item.timestamp)}): {sanitize_input(item.content)}\n")
        return "".join(lines)

    async def _history_section(self, history: list[ConversationTurn], company_id: str | None) -> str:
        context = self.customer_resolver.resolve_history(history)
        if not context.has_history:
            return await self.templates.resolve(company_id, "system_first_interaction")

        header = await self.templates.resolve(company_id, "system_conversation_header")
        footer = await self.templates.resolve(company_id, "system_conversation_footer")
        return header + self._history_lines(context) + footer

    def _narrow_to_last_product(
        self,
        message: str,
        rag_data: list[RAGItem],
        history: list[ConversationTurn],
    ) -> list[RAGItem]:
        if not rag_data or not self.intent_detector.is_price_question(message):
            return rag_data

        names = [item.name for item in rag_data if item.type == "product" and item.name]
        last_product = self.customer_resolver.extract_last_mentioned_product(history, names)
        if not last_product:
            return rag_data

        target = last_product.lower()
        for item in rag_data:
            name = item.name.lower()
            if name and (target in name or name in target):
                logger.debug(f"Narrowed RAG data to last mentioned product: {item.name}")
                return [item]
        return rag_data

    async def _rag_section(
        self,
        message: str,
        rag_data: list[RAGItem],
        history: list[ConversationTurn],
        message_data: MessageData,
        company_id: str | None,
    ) -> str:
        items = self._narrow_to_last_product(message, rag_data, history)
        context = self.rag_resolver.resolve(items)
        intent = message_data.intent or self.intent_detector.detect_intent(message).intent

        parts = []
        if context.has_data:
            parts.append(await self.templates.resolve(company_id, "system_rag_header"))
            for item in context.items:
                parts.append(
                    await self.templates.resolve(
                        company_id,
                        f"system_rag_{item.type}",
                        {"index": item.index, "content": item.content},
                    )
                )
            parts.append(await self.templates.resolve(company_id, "system_rag_footer"))

        if context.has_products:
            parts.append(await self.templates.resolve(company_id, "system_instructions_rag"))
        elif not context.has_data and intent in self.product_intents:
            parts.append(await self.templates.resolve(company_id, "rag_empty_strict"))
        elif intent not in self.greeting_intents:
            parts.append(await self.templates.resolve(company_id, "system_instructions_no_rag"))
        return "".join(parts)

    def _user_message_section(self, message: str, label: str = "رسالة العميل") -> str:
        return f'{label}: <user_input_boundary>"{sanitize_input(message)}"</user_input_boundary>\n\n'

    async def _critical_constraints(self, company_id: str | None) -> str:
        try:
            constraints = await self.templates.resolve(company_id, "critical_constraints")
        except Exception as e:
            logger.error(f"Failed to resolve critical constraints: {e}", exc_info=True)
            constraints = ""
        return constraints or CRITICAL_CONSTRAINTS_FALLBACK

    async def build_order_confirmation(
        self,
        message: str,
        order: OrderDetails,
        company_prompts: CompanyPrompts | None = None,
        history: Sequence[ConversationTurn] | None = None,
        company_id: Optional[str] = None,
    ) -> str:
        """Build the prompt confirming a just-created order to the customer.

        Args:
            message: The customer's last message
            order: The created order
            company_prompts: Company personality and rules
            history: Conversation turns, oldest first; the last 3 are included
            company_id: Company ID

        Returns:
            The confirmation prompt
        """
        company_prompts = company_prompts or CompanyPrompts()
        message_data = MessageData(company_id=company_id)

        personality = await self._guard(
            "personality", company_id, self._personality_section(company_prompts, company_id, message_data)
        )
        rules = self._guard_sync("response_rules", company_id, self._rules_section, company_prompts)

        recent = self.customer_resolver.resolve_history(list(history or [])[-3:])
        history_block = ""
        if recent.has_history:
            history_block = "📚 سجل المحادثة السابقة:\n" + self._history_lines(recent) + "=====================================\n\n"

        delivery_time = DEFAULT_DELIVERY_TIME
        if order.city and company_id:
            try:
                zone = await self.shipping_resolver.lookup_zone(company_id, order.city)
                if zone is not None and zone.delivery_time:
                    delivery_time = zone.delivery_time
            except Exception as e:
                logger.warning(f"Delivery time lookup failed for order {order.order_number}: {e}")

        shipping_cost = order.shipping_cost if order.shipping_cost is not None else DEFAULT_ORDER_SHIPPING_COST
        total = order.total if order.total is not None else (order.product_price or 0) + shipping_cost
        product_name = order.product_name or "المنتج"

        summary = ["📋 تفاصيل الطلب المؤكد:", f"- رقم الطلب: {sanitize_input(order.order_number)}"]
        summary.append(f"- المنتج: {sanitize_input(product_name)}")
        if order.product_color:
            summary.append(f"- اللون: {sanitize_input(order.product_color)}")
        if order.product_size:
            summary.append(f"- المقاس: {sanitize_input(order.product_size)}")
        if order.product_price is not None:
            summary.append(f"- سعر المنتج: {format_price(order.product_price)} جنيه")
        summary.append(f"- الشحن: {format_price(shipping_cost)} جنيه")
        summary.append(f"- الإجمالي: {format_price(total)} جنيه")
        summary.append("")
        summary.append("👤 بيانات العميل:")
        summary.append(f"- الاسم: {sanitize_input(order.customer_name)}")
        summary.append(f"- الموبايل: {sanitize_input(order.customer_phone)}")
        summary.append(f"- العنوان: {sanitize_input(order.customer_address)}")
        if order.city:
            summary.append(f"- المدينة: {sanitize_input(order.city)}")

        product_details = product_name
        if order.product_color:
            product_details += f" - {order.product_color}"
        if order.product_size:
            product_details += f" - مقاس {order.product_size}"

        instructions = await self.templates.resolve(
            company_id,
            "order_confirmation_instructions",
            {
                "customer_name": order.customer_name or "",
                "product_details": product_details,
                "total_price": format_price(total),
                "order_number": order.order_number,
                "delivery_time": delivery_time,
            },
        )

        return (
            personality
            + rules
            + history_block
            + "🎉 تم إنشاء الطلب بنجاح!\n\n"
            + "\n".join(summary)
            + "\n\n"
            + self._user_message_section(message, label="رسالة العميل الأخيرة")
            + instructions
            + await self._critical_constraints(company_id)
        )
