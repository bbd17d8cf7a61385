"""Input sanitization and suspicious-content classification.

``sanitize`` is pure and idempotent: ``sanitize(sanitize(x)) == sanitize(x)``.
Classification runs on sanitized text only.
"""

from __future__ import annotations

import re
import unicodedata
from collections import Counter

from jyoti.security.abuse import AbuseSignal

_BLOCK_ELEMENTS = re.compile(
    r"<\s*(script|style|iframe|object|embed)\b[^>]*>.*?<\s*/\s*\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
# A tag needs a name (or "!") right after "<" or "</", so "3 < 5 and 7 > 2" is text
_TAGS = re.compile(
    r"<!--.*?-->|<(?:/?[A-Za-z][\w:.-]*(?:[\s/][^<>]*)?|![^<>]*)>",
    re.DOTALL,
)
_URL_SCHEMES = re.compile(
    r"\b(?:javascript|vbscript)\s*:|\bdata\s*:\s*[\w.+-]+/[\w.+-]+[;,]",
    re.IGNORECASE,
)
# Handler assignments only count when a quoted or called value follows
_EVENT_HANDLERS = re.compile(
    r"\bon[a-z]+\s*=\s*(?=[\"'`]|[\w.$]+\s*\()",
    re.IGNORECASE,
)
_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" ?\n ?")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")

_KEPT_CONTROL = {"\n", "\t"}
_KEPT_FORMAT = {"\u200c", "\u200d"}

INJECTION_MARKERS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bignore\s+(?:all\s+)?(?:the\s+)?(?:previous|prior|above)\s+(?:instructions|prompts?|rules)\b",
        r"\bdisregard\s+(?:all\s+)?(?:the\s+)?(?:previous|prior|above|your)\s+(?:instructions|rules)\b",
        r"\bsystem\s+prompt\b",
        r"\byou\s+are\s+now\s+(?:a|an|in)\b",
        r"\bact\s+as\s+(?:a\s+)?(?:jailbroken|unfiltered|dan)\b",
        r"\bdeveloper\s+mode\b",
        r"\breveal\s+your\s+(?:instructions|prompt)\b",
    )
)

CODE_INJECTION_MARKERS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bunion\s+(?:all\s+)?select\b",
        r"\bdrop\s+table\b",
        r"(?:'|\")\s*or\s+(?:'?1'?\s*=\s*'?1'?)",
        r";\s*--",
        r"\{\{.*?\}\}",
        r"\$\{.*?\}",
        r"\{%.*?%\}",
    )
)


def _remove_control_characters(text: str) -> str:
    # ZWJ/ZWNJ are format characters that Indic scripts rely on
    return "".join(
        ch
        for ch in text
        if ch in _KEPT_CONTROL
        or ch in _KEPT_FORMAT
        or unicodedata.category(ch) not in ("Cc", "Cf")
    )


def _sanitize_once(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    text = _BLOCK_ELEMENTS.sub("", text)
    text = _TAGS.sub("", text)
    text = _URL_SCHEMES.sub("", text)
    text = _EVENT_HANDLERS.sub("", text)
    text = _remove_control_characters(text)
    text = text.replace("\t", " ")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _EXTRA_NEWLINES.sub("\n\n", text)
    return text.strip()


def sanitize(text: str) -> str:
    """Strip markup, control characters and script vectors from caller text.

    Removing one construct can expose another (``<scr<b></b>ipt>``), so the
    pass repeats until the text stops changing.

    Args:
        text: Raw caller input

    Returns:
        Cleaned text; natural punctuation and non-Latin scripts are kept

    Examples:
        >>> sanitize("  <b>Namaste</b>\\x00 what   is my dasha? ")
        'Namaste what is my dasha?'
    """
    current = _sanitize_once(text)
    # After the first pass every pass is length non-increasing, so this terminates
    while True:
        cleaned = _sanitize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def classify_suspicious(
    clean_text: str,
    char_flood_threshold: int = 30,
    word_flood_ratio: float = 0.6,
    word_flood_min_words: int = 10,
    symbol_run_threshold: int = 40,
) -> AbuseSignal:
    """Flag flooding, prompt injection and code injection in cleaned text.

    Args:
        clean_text: Output of ``sanitize``
        char_flood_threshold: Same character repeated this many times in a row
        word_flood_ratio: Share of the text one word may take up
        word_flood_min_words: Word flooding only applies from this many words
        symbol_run_threshold: Longest allowed run of non-alphanumeric characters

    Returns:
        AbuseSignal with ``is_suspicious`` and the matching reason
    """
    if re.search(rf"(.)\1{{{char_flood_threshold - 1},}}", clean_text, re.DOTALL):
        return AbuseSignal(is_suspicious=True, reason="character_flood")

    words = re.findall(r"\w+", clean_text.lower())
    if len(words) >= word_flood_min_words:
        _, top_count = Counter(words).most_common(1)[0]
        if top_count / len(words) > word_flood_ratio:
            return AbuseSignal(is_suspicious=True, reason="word_flood")

    for pattern in INJECTION_MARKERS:
        if pattern.search(clean_text):
            return AbuseSignal(is_suspicious=True, reason="prompt_injection")

    for pattern in CODE_INJECTION_MARKERS:
        if pattern.search(clean_text):
            return AbuseSignal(is_suspicious=True, reason="code_injection")

    if re.search(rf"[^\w\s]{{{symbol_run_threshold},}}", clean_text):
        return AbuseSignal(is_suspicious=True, reason="symbol_run")

    return AbuseSignal()
