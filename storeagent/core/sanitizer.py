"""Escaping of untrusted text before it is embedded in an XML-structured prompt.

Every customer-controlled string (message, name, phone, history lines, quoted
replies, post text) must pass through ``sanitize_input`` exactly once before it
is concatenated into a prompt. Once escaped, tag-like sequences such as
``</response_guidelines>`` become inert text for the model.
"""

import re
from typing import Any

# ASCII control characters except \t (0x09), \n (0x0A) and \r (0x0D), plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Order matters: "&" must be escaped before the entities that introduce one
_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def strip_control_chars(text: str) -> str:
    """Remove ASCII control characters, keeping newlines, tabs and carriage returns."""
    return _CONTROL_CHARS.sub("", text)


def sanitize_input(text: Any) -> str:
    """Sanitize untrusted input for safe embedding in the prompt.

    Args:
        text: Untrusted value. ``None`` and empty values yield ``""``;
            non-string values are stringified first.

    Returns:
        Text with control characters removed and XML special characters escaped
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    if not text:
        return ""

    cleaned = strip_control_chars(text)
    for raw, escaped in _ESCAPES:
        cleaned = cleaned.replace(raw, escaped)
    return cleaned
