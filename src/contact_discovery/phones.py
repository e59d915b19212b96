"""Phone-number extraction from tel: links and international numbers in text."""

from __future__ import annotations

import re
from urllib.parse import unquote

from .extraction import ExtractionContext, parse_html, visible_text
from .models import Signal, SignalKind

TECHNIQUE = "phone-pattern"
MIN_DIGITS = 7
MAX_DIGITS = 15

INTERNATIONAL_REGEX = re.compile(r"(?<![\w+])\+\d[\d\s().\-]{5,22}\d(?!\d)")
_NON_DIGITS = re.compile(r"\D")
TEXT_CONFIDENCE = 0.6


def normalize_phone(raw: str) -> str | None:
    """Collapse a phone number to ``+digits``; None when the length is implausible.

    Numbers without a leading ``+`` keep no country code and are returned as
    bare digits.
    """
    value = unquote(raw or "").strip()
    if value.lower().startswith("tel:"):
        value = value[4:]
    value = value.split(";", maxsplit=1)[0].strip()
    digits = _NON_DIGITS.sub("", value)
    if value.startswith("00") and len(digits) > 2:
        digits = digits[2:]
        value = "+" + value
    if not MIN_DIGITS <= len(digits) <= MAX_DIGITS:
        return None
    return f"+{digits}" if value.startswith("+") else digits


def extract_phone_signals(html: str, context: ExtractionContext) -> list[Signal]:
    signals: list[Signal] = []
    seen: set[str] = set()

    def add(number: str | None, tier: int, confidence: float | None = None) -> None:
        if number is None or number in seen:
            return
        seen.add(number)
        signals.append(
            Signal(
                kind=SignalKind.PHONE,
                value=number,
                technique=TECHNIQUE,
                tier=tier,
                source_url=context.page_url,
                confidence=confidence,
            )
        )

    soup = parse_html(html)
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if href.lower().startswith("tel:"):
            add(normalize_phone(href), 1)

    for match in INTERNATIONAL_REGEX.finditer(visible_text(html)):
        add(normalize_phone(match.group(0)), 2, TEXT_CONFIDENCE)
    return signals
