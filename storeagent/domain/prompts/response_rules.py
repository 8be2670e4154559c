"""Compiles a company's selected response rules into a ``<response_guidelines>`` block."""

import json
from dataclasses import asdict, dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class RuleOption:
    """One selectable option of a rule category."""

    value: str
    label: str
    prompt: str
    default: bool = False


@dataclass(frozen=True)
class RuleCategory:
    """A group of options shown together in the admin UI.

    ``radio`` categories accept one value, ``checkbox`` categories many,
    ``textarea`` categories hold editable text defaults.
    """

    label: str
    type: str
    options: tuple[RuleOption, ...]

    def find(self, value: str | None) -> RuleOption | None:
        if not value:
            return None
        for option in self.options:
            if option.value == value:
                return option
        return None


RESPONSE_LENGTH = RuleCategory(
    label="طول الرد",
    type="radio",
    options=(
        RuleOption(
            "very_short",
            "قصير جداً (جملة واحدة)",
            "🚨🚨🚨 مهم جداً جداً - طول الرد:\n"
            "⚠️ يجب أن يكون ردك جملة واحدة فقط!\n"
            "❌ ممنوع منعاً باتاً كتابة أكثر من جملة واحدة!\n"
            "❌ ممنوع كتابة جملتين أو فقرات!\n"
            "✅ اكتبي جملة واحدة فقط وأجيب على السؤال مباشرة!\n"
            "🚨 هذا أمر إلزامي - لا تطيلي في الرد أبداً!",
        ),
        RuleOption(
            "short",
            "قصير (1-2 جملة)",
            "🚨🚨🚨 مهم جداً جداً - طول الرد:\n"
            "⚠️ يجب أن يكون ردك قصير جداً في 1-2 جملة فقط!\n"
            "❌ ممنوع منعاً باتاً كتابة أكثر من جملتين!\n"
            "❌ ممنوع كتابة فقرات طويلة أو شرح مفصل!\n"
            "✅ اكتبي جملة أو جملتين فقط وأجيب على السؤال مباشرة!\n"
            "🚨 هذا أمر إلزامي - لا تطيلي في الرد أبداً!",
        ),
        RuleOption("medium", "متوسط (2-4 جمل)", "✅ أجيبي بشكل متوازن في 2-4 جمل. قدمي المعلومات المهمة بوضوح.", True),
        RuleOption("detailed", "مفصل (فقرة كاملة)", "📝 أجيبي بالتفصيل مع شرح كامل. قدمي جميع المعلومات المتاحة."),
    ),
)

SPEAKING_STYLE = RuleCategory(
    label="أسلوب الكلام",
    type="radio",
    options=(
        RuleOption("formal", "رسمي ومهني", "🎩 تحدثي بأسلوب رسمي ومهني. استخدمي لغة محترمة وتجنبي العامية."),
        RuleOption("friendly", "ودود وعفوي", "😊 تحدثي بأسلوب ودود وعفوي. كوني لطيفة ومتعاونة مع العملاء.", True),
        RuleOption("casual", "مرح وشبابي", "🎉 تحدثي بأسلوب مرح وشبابي. استخدمي تعبيرات عصرية وكوني منطلقة."),
        RuleOption("professional", "احترافي متخصص", "💼 تحدثي كخبيرة متخصصة. قدمي معلومات دقيقة بثقة واحترافية."),
    ),
)

DIALECT = RuleCategory(
    label="اللغة واللهجة",
    type="radio",
    options=(
        RuleOption("formal_arabic", "العربية الفصحى", "📚 استخدمي اللغة العربية الفصحى في جميع ردودك."),
        RuleOption("egyptian", "اللهجة المصرية", "🇪🇬 استخدمي اللهجة المصرية العامية في ردودك. تحدثي بشكل طبيعي كمصرية.", True),
        RuleOption("gulf", "اللهجة الخليجية", "🇸🇦 استخدمي اللهجة الخليجية في ردودك."),
        RuleOption("levantine", "اللهجة الشامية", "🇱🇧 استخدمي اللهجة الشامية (لبنانية/سورية) في ردودك."),
        RuleOption("moroccan", "اللهجة المغربية", "🇲🇦 استخدمي اللهجة المغربية في ردودك."),
    ),
)

SALES_RULES = RuleCategory(
    label="قواعد المبيعات",
    type="checkbox",
    options=(
        RuleOption("always_mention_prices", "ذكر الأسعار دائماً", "💰 اذكري سعر المنتج دائماً عند الحديث عنه.", True),
        RuleOption("offer_alternatives", "تقديم بدائل عند عدم التوفر", "🔄 إذا لم يكن المنتج متوفراً، اقترحي بدائل مشابهة.", True),
        RuleOption("ask_for_governorate", "السؤال عن المحافظة للشحن", "📍 اسألي العميل عن محافظته لحساب تكلفة الشحن.", True),
        RuleOption("ask_for_phone", "طلب رقم الهاتف", "📱 اطلبي رقم هاتف العميل لإتمام الطلب."),
        RuleOption("mention_offers", "ذكر العروض والخصومات", "🎁 اذكري أي عروض أو خصومات متاحة على المنتجات.", True),
        RuleOption("upsell_products", "اقتراح منتجات إضافية", "🛒 اقترحي منتجات إضافية قد تهم العميل."),
        RuleOption("mention_shipping_time", "ذكر وقت التوصيل", "🚚 اذكري وقت التوصيل المتوقع عند الحديث عن الشحن.", True),
        RuleOption(
            "mention_payment_methods",
            "ذكر طرق الدفع",
            "💳 اذكري طرق الدفع المتاحة (كاش عند الاستلام، فودافون كاش، إلخ).",
        ),
    ),
)

STYLE_RULES = RuleCategory(
    label="قواعد الأسلوب",
    type="checkbox",
    options=(
        RuleOption("use_emojis", "استخدام الإيموجي", "😊 استخدمي الإيموجي المناسبة في ردودك لجعلها أكثر حيوية.", True),
        RuleOption("apologize_when_unavailable", "الاعتذار عند عدم التوفر", "🙏 اعتذري بلطف إذا لم يكن المنتج متوفراً.", True),
        RuleOption("thank_customer", "شكر العميل", "🙏 اشكري العميل على تواصله واهتمامه.", True),
        RuleOption("no_competitors", "عدم ذكر المنافسين", "🚫 لا تذكري أي متاجر أو منافسين آخرين.", True),
        RuleOption("no_personal_questions", "عدم الرد على الأسئلة الشخصية", "🔒 لا تردي على الأسئلة الشخصية غير المتعلقة بالمتجر."),
        RuleOption("stay_on_topic", "البقاء في الموضوع", "🎯 ابقي في موضوع المتجر والمنتجات. لا تخرجي عن السياق.", True),
    ),
)

BEHAVIOR_RULES = RuleCategory(
    label="السلوك الذكي",
    type="checkbox",
    options=(
        RuleOption("ask_clarification", "طلب توضيح عند الغموض", "❓ إذا كان سؤال العميل غامضاً، اطلبي توضيحاً قبل الإجابة.", True),
        RuleOption("confirm_order_details", "تأكيد تفاصيل الطلب", "✅ أكدي تفاصيل الطلب (المنتج، الكمية، العنوان) قبل إتمامه.", True),
        RuleOption(
            "handle_complaints_gently",
            "التعامل بلطف مع الشكاوى",
            "💝 تعاملي بلطف وتفهم مع شكاوى العملاء. اعتذري واعرضي حلولاً.",
            True,
        ),
        RuleOption("redirect_to_human", "التحويل للدعم البشري عند الحاجة", "👤 إذا لم تستطيعي المساعدة، اعرضي تحويل العميل لفريق الدعم."),
    ),
)

SYSTEM_RULES = RuleCategory(
    label="قواعد النظام",
    type="checkbox",
    options=(
        RuleOption(
            "use_rag_only",
            "استخدام بيانات RAG فقط",
            "📊 استخدمي فقط بيانات المنتجات الموجودة في الـ RAG. لا تذكري منتجات غير موجودة.",
            True,
        ),
        RuleOption(
            "no_hallucinate_products",
            "منع اختراع منتجات",
            "🚫🚫🚫 ممنوع منعاً باتاً اختلاق أو ذكر أي منتج غير موجود في قائمة \"rag_data\". "
            "إذا لم تجدي المنتج، قولي \"غير متوفر\" فوراً.",
            True,
        ),
        RuleOption("exact_prices", "ذكر الأسعار بالضبط", "💰 اذكري الأسعار بالضبط كما هي في البيانات. لا تقريب أو تغيير.", True),
        RuleOption(
            "say_unavailable",
            "قول \"غير متوفر\" للمنتجات المفقودة",
            "⛔ إذا لم يكن المنتج موجوداً، قولي \"غير متوفر حالياً\" بدلاً من اختراع معلومات.",
            True,
        ),
        RuleOption(
            "use_conversation_history",
            "استخدام تاريخ المحادثة",
            "🔄 استخدمي سجل المحادثة السابقة لفهم السياق وتقديم ردود متسقة.",
            True,
        ),
        RuleOption("allow_greeting_first", "السماح بالتحية في أول تفاعل", "👋 يمكنك تحية العميل في أول رسالة فقط.", True),
        RuleOption(
            "no_regreet",
            "عدم إعادة التحية في المحادثة المتواصلة",
            "🔇🔇🔇 ممنوع تكرار التحية! العميل يعرفك. لا تقولي \"أهلاً\" أو \"مرحباً\" مرة أخرى في نفس المحادثة. "
            "ادخلي في إجابة السؤال فوراً.",
            True,
        ),
    ),
)

FALLBACK_MESSAGES = RuleCategory(
    label="رسائل الخطأ والـ Fallback",
    type="textarea",
    options=(
        RuleOption(
            "fallback_general",
            "رسالة خطأ عامة",
            "عذراً، لم أفهم سؤالك بشكل كامل. هل يمكنك إعادة صياغته أو توضيح ما تريد معرفته؟",
            True,
        ),
        RuleOption(
            "fallback_product_not_found",
            "رسالة منتج غير موجود",
            "عذراً، لم أتمكن من العثور على المنتج. هل يمكنك توضيح اسم المنتج أو الوصف؟",
            True,
        ),
        RuleOption("fallback_no_products", "رسالة لا توجد منتجات", "عذراً، لا توجد منتجات متاحة حالياً.", True),
        RuleOption(
            "fallback_shipping_error",
            "رسالة خطأ الشحن",
            "عذراً، لم أتمكن من الحصول على معلومات الشحن. يرجى المحاولة مرة أخرى.",
            True,
        ),
    ),
)

RULES_CONFIG: dict[str, RuleCategory] = {
    "responseLength": RESPONSE_LENGTH,
    "speakingStyle": SPEAKING_STYLE,
    "dialect": DIALECT,
    "salesRules": SALES_RULES,
    "styleRules": STYLE_RULES,
    "behaviorRules": BEHAVIOR_RULES,
    "systemRules": SYSTEM_RULES,
    "fallbackMessages": FALLBACK_MESSAGES,
}

# Lookup order for operational rule ids
OPERATIONAL_CATEGORIES = (SALES_RULES, STYLE_RULES, BEHAVIOR_RULES, SYSTEM_RULES)


class RuleSelection(BaseModel):
    """Rules a company selected in the admin UI.

    Stored as camelCase JSON (``responseLength``, ``customRules``...); snake_case
    names are accepted too. Extra keys such as ``fallbacks`` are ignored here.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    response_length: Optional[str] = Field(default=None, alias="responseLength")
    speaking_style: Optional[str] = Field(default=None, alias="speakingStyle")
    dialect: Optional[str] = None
    rules: list[str] = Field(default_factory=list)
    custom_rules: str = Field(default="", alias="customRules")


DEFAULT_RESPONSE_RULES = RuleSelection(
    response_length="medium",
    speaking_style="friendly",
    dialect="egyptian",
    rules=[
        "always_mention_prices",
        "offer_alternatives",
        "ask_for_governorate",
        "mention_offers",
        "mention_shipping_time",
        "use_emojis",
        "apologize_when_unavailable",
        "thank_customer",
        "no_competitors",
        "stay_on_topic",
        "ask_clarification",
        "confirm_order_details",
        "handle_complaints_gently",
        "use_rag_only",
        "no_hallucinate_products",
        "exact_prices",
        "say_unavailable",
        "use_conversation_history",
        "allow_greeting_first",
        "no_regreet",
    ],
    custom_rules="",
)


def get_default_rules() -> RuleSelection:
    """Get a copy of the default rule selection."""
    return DEFAULT_RESPONSE_RULES.model_copy(deep=True)


def parse_rule_selection(raw: Any) -> RuleSelection | None:
    """Parse stored response rules.

    Args:
        raw: A ``RuleSelection``, a dict, a JSON string, or None

    Returns:
        Parsed selection, or None when nothing is stored

    Raises:
        ValueError: If the JSON is malformed or the payload has the wrong shape
            (pydantic's ValidationError is a ValueError)
    """
    if raw is None:
        return None
    if isinstance(raw, RuleSelection):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return None
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"Response rules must be an object, got {type(raw).__name__}")
    return RuleSelection.model_validate(raw)


def _find_operational_rule(rule_id: str) -> RuleOption | None:
    for category in OPERATIONAL_CATEGORIES:
        option = category.find(rule_id)
        if option:
            return option
    return None


def compile_rules(selection: RuleSelection | None) -> str:
    """Build the ``<response_guidelines>`` prompt block.

    Length comes first as a critical constraint, then the persona (style and
    dialect), then one ``<rule>`` per known rule id followed by the custom
    instruction. Unknown ids are skipped and a radio category with no known
    value omits its line.

    Args:
        selection: Company selection; None means the default selection

    Returns:
        The compiled block
    """
    if selection is None:
        selection = DEFAULT_RESPONSE_RULES

    parts = ["\n\n<response_guidelines>\n"]
    parts.append("  <!-- 🚨 INSTRUCTIONS: Follow these rules strictly to ensure consistency -->\n\n")

    length_option = RESPONSE_LENGTH.find(selection.response_length)
    if length_option:
        parts.append('  <length_constraint priority="CRITICAL">\n')
        parts.append(f"    {length_option.prompt}\n")
        parts.append("  </length_constraint>\n\n")

    parts.append("  <persona_framework>\n")
    style_option = SPEAKING_STYLE.find(selection.speaking_style)
    if style_option:
        parts.append(f"    <speaking_style>{style_option.prompt}</speaking_style>\n")
    dialect_option = DIALECT.find(selection.dialect)
    if dialect_option:
        parts.append(f"    <dialect>{dialect_option.prompt}</dialect>\n")
    parts.append("  </persona_framework>\n\n")

    custom_rules = (selection.custom_rules or "").strip()
    if selection.rules or custom_rules:
        parts.append("  <operational_rules>\n")
        for rule_id in selection.rules:
            option = _find_operational_rule(rule_id)
            if option:
                parts.append(f"    <rule>{option.prompt}</rule>\n")
        if custom_rules:
            parts.append(f"    <custom_instruction>{custom_rules}</custom_instruction>\n")
        parts.append("  </operational_rules>\n")

    parts.append("</response_guidelines>\n")
    return "".join(parts)


def validate_rules(raw: Any) -> list[str]:
    """Check radio selections against the known option values.

    Returns:
        Human-readable (Arabic) error messages; empty when valid
    """
    try:
        selection = parse_rule_selection(raw)
    except ValueError as e:
        return [f"صيغة القواعد غير صالحة: {e}"]
    if selection is None:
        return []

    errors = []
    if selection.response_length and not RESPONSE_LENGTH.find(selection.response_length):
        errors.append(f"قيمة طول الرد غير صالحة: {selection.response_length}")
    if selection.speaking_style and not SPEAKING_STYLE.find(selection.speaking_style):
        errors.append(f"قيمة أسلوب الكلام غير صالحة: {selection.speaking_style}")
    if selection.dialect and not DIALECT.find(selection.dialect):
        errors.append(f"قيمة اللهجة غير صالحة: {selection.dialect}")
    return errors


def get_rules_config() -> dict[str, dict]:
    """Get the option tables as plain dicts for an admin UI."""
    return {name: asdict(category) for name, category in RULES_CONFIG.items()}
