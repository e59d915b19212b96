"""Contact-form detection."""

from __future__ import annotations

from bs4.element import Tag

from .extraction import (
    ExtractionContext,
    canonicalize_url,
    is_followable_href,
    is_same_site,
    parse_html,
)
from .models import Signal, SignalKind

TECHNIQUE = "contact-form"
FORM_KEYWORDS = ("contact", "message", "feedback", "enquiry", "inquiry", "get-in-touch")
EXCLUDED_FORM_KEYWORDS = (
    "search",
    "login",
    "log-in",
    "signin",
    "sign-in",
    "password",
    "newsletter",
    "subscribe",
    "signup",
    "sign-up",
    "register",
    "checkout",
    "cart",
    "comment",
)
MESSAGE_FIELD_HINTS = ("message", "comment", "enquiry", "inquiry", "body", "details")
FORM_CONFIDENCE = 0.75
ANCHOR_FALLBACK_CONFIDENCE = 0.55


def _attributes_text(form: Tag) -> str:
    parts: list[str] = []
    for attribute in ("action", "id", "name", "aria-label"):
        value = form.get(attribute)
        if value:
            parts.append(str(value))
    parts.extend(str(item) for item in form.get("class") or [])
    return " ".join(parts).lower()


def _field_names(form: Tag) -> list[str]:
    names: list[str] = []
    for field in form.find_all(["input", "textarea", "select"]):
        for attribute in ("name", "id", "placeholder"):
            value = field.get(attribute)
            if value:
                names.append(str(value).lower())
    return names


def _has_email_input(form: Tag) -> bool:
    for field in form.find_all("input"):
        kind = str(field.get("type", "")).lower()
        name = f"{field.get('name', '')} {field.get('id', '')}".lower()
        if kind == "email" or "email" in name:
            return True
    return False


def _has_message_field(form: Tag, field_names: list[str]) -> bool:
    if form.find("textarea") is not None:
        return True
    return any(hint in name for name in field_names for hint in MESSAGE_FIELD_HINTS)


def is_contact_form(form: Tag) -> bool:
    """Email plus message field, or a contact-ish action/id/class/name.

    Search, login and newsletter forms are rejected even when they carry an
    email input.
    """
    attributes = _attributes_text(form)
    field_names = _field_names(form)
    if any(keyword in attributes for keyword in EXCLUDED_FORM_KEYWORDS):
        return False
    if any(str(field.get("type", "")).lower() == "password" for field in form.find_all("input")):
        return False
    if _has_email_input(form) and _has_message_field(form, field_names):
        return True
    return any(keyword in attributes for keyword in FORM_KEYWORDS)


def _fallback_anchor(html: str, context: ExtractionContext) -> str | None:
    soup = parse_html(html)
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"])
        if not is_followable_href(href):
            continue
        if "contact" not in f"{anchor.get_text(' ')} {href}".lower():
            continue
        url = canonicalize_url(href, context.page_url)
        if is_same_site(url, context.root_domain):
            return url
    return None


def extract_form_signals(html: str, context: ExtractionContext) -> list[Signal]:
    soup = parse_html(html)
    if any(is_contact_form(form) for form in soup.find_all("form")):
        return [
            Signal(
                kind=SignalKind.FORM,
                value=context.page_url,
                technique=TECHNIQUE,
                tier=2,
                source_url=context.page_url,
                confidence=FORM_CONFIDENCE,
            )
        ]
    fallback = _fallback_anchor(html, context)
    if fallback is None:
        return []
    return [
        Signal(
            kind=SignalKind.FORM,
            value=fallback,
            technique=TECHNIQUE,
            tier=2,
            source_url=context.page_url,
            confidence=ANCHOR_FALLBACK_CONFIDENCE,
        )
    ]
