"""Email-pattern extraction, including de-obfuscation.

The cascade runs over one page and never executes page code: JS string
concatenation is reassembled by a literal-only parser.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from urllib.parse import unquote

from .extraction import (
    ExtractionContext,
    iter_json_ld,
    iter_strings,
    parse_html,
    visible_text,
)
from .models import Signal, SignalKind
from .validation import is_acceptable_email, normalize_email

TECHNIQUE = "email-pattern"

EMAIL_REGEX = re.compile(r"[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,}", re.IGNORECASE)

_OPEN = r"[\[\(\{<]"
_CLOSE = r"[\]\)\}>]"
_AT = rf"(?:\s*{_OPEN}\s*(?:at|@)\s*{_CLOSE}\s*|\s+at\s+)"
_DOT = rf"(?:\s*{_OPEN}\s*(?:dot|\.)\s*{_CLOSE}\s*|\s+dot\s+|\.)"
OBFUSCATED_REGEX = re.compile(
    rf"(?<![\w.%+\-])(?P<local>[a-z0-9._%+\-]+){_AT}"
    rf"(?P<domain>[a-z0-9\-]+(?:{_DOT}[a-z0-9\-]+)+)",
    re.IGNORECASE,
)
_AT_TOKEN = re.compile(_AT, re.IGNORECASE)
_DOT_TOKEN = re.compile(_DOT, re.IGNORECASE)
_BARE_AT = re.compile(r"\s+at\s+", re.IGNORECASE)
_DOT_WORD = re.compile(r"\bdot\b", re.IGNORECASE)

_LITERAL = r"""(?:'[^'\\\n]*'|"[^"\\\n]*")"""
CONCAT_REGEX = re.compile(rf"{_LITERAL}(?:\s*\+\s*{_LITERAL})+")
_LITERAL_BODY = re.compile(r"'([^'\\\n]*)'|\"([^\"\\\n]*)\"")

# confidence per cascade step; all are tier 1 pattern matches
MAILTO_CONFIDENCE = 0.95
PLAIN_CONFIDENCE = 0.9
CFEMAIL_CONFIDENCE = 0.9
STRUCTURED_CONFIDENCE = 0.9
OBFUSCATED_CONFIDENCE = 0.8
SCRIPT_CONFIDENCE = 0.7


def deobfuscate_email(text: str) -> str | None:
    """Decode one obfuscated address ("jane [at] example [dot] com").

    Already-canonical addresses come back unchanged, so decoding twice is a
    no-op. Returns None when the text does not hold an address.
    """
    candidate = normalize_email(text)
    if EMAIL_REGEX.fullmatch(candidate):
        return candidate
    match = OBFUSCATED_REGEX.search(text or "")
    if match is None:
        return None
    return _decode_obfuscated(match)


def _decode_obfuscated(match: re.Match[str]) -> str | None:
    raw = match.group(0)
    domain_raw = match.group("domain")
    # bare " at " needs a spelled-out "dot" too, otherwise prose like
    # "we are at example.com" would be harvested
    if _BARE_AT.search(raw) and not _DOT_WORD.search(domain_raw):
        return None
    local = match.group("local")
    domain = _DOT_TOKEN.sub(".", domain_raw)
    return normalize_email(f"{local}@{domain}")


def find_obfuscated_emails(text: str) -> list[str]:
    results: list[str] = []
    for match in OBFUSCATED_REGEX.finditer(text or ""):
        decoded = _decode_obfuscated(match)
        if decoded:
            results.append(decoded)
    return results


def find_plain_emails(text: str) -> list[str]:
    return [normalize_email(match.group(0)) for match in EMAIL_REGEX.finditer(text or "")]


def decode_cfemail(encoded: str) -> str | None:
    """Decode a Cloudflare ``data-cfemail`` hex payload."""
    try:
        data = bytes.fromhex(encoded.strip())
    except ValueError:
        return None
    if len(data) < 2:
        return None
    key = data[0]
    return "".join(chr(byte ^ key) for byte in data[1:])


def find_concatenated_emails(script: str) -> list[str]:
    """Reassemble ``'user' + '@' + 'domain.com'`` style literals without evaluating them."""
    results: list[str] = []
    for match in CONCAT_REGEX.finditer(script or ""):
        joined = "".join(
            literal.group(1) if literal.group(1) is not None else literal.group(2)
            for literal in _LITERAL_BODY.finditer(match.group(0))
        )
        if "@" in joined:
            results.extend(find_plain_emails(joined))
    return results


def _mailto_addresses(href: str) -> Iterator[str]:
    body = unquote(href.split(":", maxsplit=1)[1]).split("?", maxsplit=1)[0]
    for part in body.split(","):
        if part.strip():
            yield normalize_email(part)


def _candidates(html: str) -> Iterator[tuple[str, float]]:
    soup = parse_html(html)

    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if href.lower().startswith("mailto:"):
            for address in _mailto_addresses(href):
                yield address, MAILTO_CONFIDENCE
        elif "/cdn-cgi/l/email-protection#" in href:
            decoded = decode_cfemail(href.rsplit("#", maxsplit=1)[1])
            if decoded:
                yield normalize_email(decoded), CFEMAIL_CONFIDENCE

    for node in soup.find_all(attrs={"data-cfemail": True}):
        decoded = decode_cfemail(str(node["data-cfemail"]))
        if decoded:
            yield normalize_email(decoded), CFEMAIL_CONFIDENCE

    for node in iter_json_ld(soup):
        for key in ("email", "contactPoint", "author", "publisher", "founder", "employee"):
            for value in iter_strings(node.get(key)):
                for address in find_plain_emails(value):
                    yield address, STRUCTURED_CONFIDENCE

    text = visible_text(html)
    for address in find_plain_emails(text):
        yield address, PLAIN_CONFIDENCE
    for address in find_obfuscated_emails(text):
        yield address, OBFUSCATED_CONFIDENCE

    for script in soup.find_all("script"):
        if script.get("type") == "application/ld+json":
            continue
        for address in find_concatenated_emails(script.get_text()):
            yield address, SCRIPT_CONFIDENCE


def extract_emails(html: str, *, own_domain: str | None = None) -> list[str]:
    """Return accepted addresses in discovery order."""
    seen: list[str] = []
    for address, _confidence in _candidates(html):
        if address not in seen and is_acceptable_email(address, own_domain=own_domain):
            seen.append(address)
    return seen


def extract_email_signals(html: str, context: ExtractionContext) -> list[Signal]:
    best: dict[str, float] = {}
    for address, confidence in _candidates(html):
        if not is_acceptable_email(address, own_domain=context.root_domain):
            continue
        if confidence > best.get(address, -1.0):
            best[address] = confidence
    return [
        Signal(
            kind=SignalKind.EMAIL,
            value=address,
            technique=TECHNIQUE,
            tier=1,
            source_url=context.page_url,
            confidence=confidence,
        )
        for address, confidence in best.items()
    ]
