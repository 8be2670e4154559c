"""Arabic text normalization for fuzzy matching."""

import re

_DIACRITICS = re.compile("[\u064B-\u0652\u0670]")
_TATWEEL = "\u0640"
_ALEF_FORMS = re.compile("[\u0623\u0625\u0622\u0671]")
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")

# Normalized forms of the word "governorate"
_GOVERNORATE_WORDS = {"محافظه", "محافظات"}


def normalize_arabic(text: str | None) -> str:
    """Normalize Arabic text for comparisons.

    Strips diacritics and tatweel, unifies alef, yaa and taa-marbuta forms,
    drops punctuation, the word "محافظة" and the ``ال`` prefix, and lowercases.
    """
    if not text:
        return ""

    text = _DIACRITICS.sub("", text).replace(_TATWEEL, "")
    text = _ALEF_FORMS.sub("ا", text)
    text = text.replace("ى", "ي").replace("ة", "ه")
    text = _PUNCTUATION.sub(" ", text.lower())

    words = []
    for word in _WHITESPACE.split(text):
        if not word or word in _GOVERNORATE_WORDS:
            continue
        if word.startswith("ال") and len(word) > 3:
            word = word[2:]
        words.append(word)
    return " ".join(words)
