"""Confidence tiers and record quality rules."""

from __future__ import annotations

from .models import ContactInfo, Signal

# 1 = pattern match, 2 = structural heuristic, 3 = inferred/generated (+verified)
TIER_CONFIDENCE = {1: 0.9, 2: 0.7, 3: 0.5}
HIGH_CONFIDENCE = 0.8


def confidence_for(signal: Signal) -> float:
    """Explicit signal confidence, else the default for its tier, clamped to [0, 1]."""
    value = signal.confidence
    if value is None:
        value = TIER_CONFIDENCE.get(signal.tier, 0.3)
    return max(0.0, min(1.0, float(value)))


def has_enough_signal(info: ContactInfo) -> bool:
    """Early-stop rule: an email plus a social profile or contact form."""
    return bool(info.emails) and bool(info.social_profiles or info.contact_forms)


def has_contact(info: ContactInfo) -> bool:
    return bool(info.emails or info.social_profiles or info.contact_forms or info.phone_numbers)


def compute_quality(info: ContactInfo) -> str:
    """Compute High/Medium/Low from channel coverage and email confidence."""
    best_email = max(
        (info.confidence_of("emails", email) or 0.0 for email in info.emails), default=0.0
    )
    if best_email >= HIGH_CONFIDENCE and (info.social_profiles or info.contact_forms):
        return "High"
    if info.emails or (info.contact_forms and info.social_profiles):
        return "Medium"
    if has_contact(info):
        return "Low"
    return "None"
