"""Merge signals into the canonical, provenance-tagged contact record.

``merge`` never mutates its input and never shrinks a record: collections are
union-and-dedupe, provenance is additive, and re-confirming a value can only
raise its confidence. Merging the same signals twice with the same ``now``
produces an equal record.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Any

from .config import SOURCE_VERSION
from .errors import ExtractionError
from .extraction import url_key
from .models import (
    ContactInfo,
    ContactPerson,
    ExtractionDetails,
    ProvenanceEntry,
    Signal,
    SignalKind,
    SocialProfile,
)
from .phones import normalize_phone
from .scoring import confidence_for
from .social import match_profile
from .validation import is_acceptable_email, normalize_email

LEGACY_TECHNIQUE = "legacy-import"
LEGACY_CONFIDENCE = 0.5

LEGACY_EMAIL_KEYS = ("email", "emails", "additionalEmails")
LEGACY_FORM_KEYS = ("form", "contactForm", "formUrl", "contactFormUrl", "contactForms")
LEGACY_SOCIAL_KEYS = ("social", "socialProfiles")
LEGACY_PHONE_KEYS = ("phone", "phones", "phoneNumbers")
PROVENANCE_KEYS = frozenset({"field", "value", "technique", "confidence", "timestamp"})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class _Merger:
    def __init__(self, info: ContactInfo, *, own_domain: str | None, timestamp: str) -> None:
        self.info = info
        self.own_domain = own_domain
        self.timestamp = timestamp
        self.provenance = {
            (entry.field, entry.value, entry.technique): entry for entry in info.provenance
        }

    def record(self, field_name: str, value: str, signal: Signal) -> None:
        confidence = confidence_for(signal)
        key = (field_name, value, signal.technique)
        entry = self.provenance.get(key)
        if entry is not None:
            entry.confidence = max(entry.confidence, confidence)
            return
        entry = ProvenanceEntry(
            field=field_name,
            value=value,
            technique=signal.technique,
            confidence=confidence,
            timestamp=self.timestamp,
            source_url=signal.source_url,
        )
        self.provenance[key] = entry
        self.info.provenance.append(entry)

    def add_email(self, signal: Signal) -> None:
        email = normalize_email(signal.value)
        if not is_acceptable_email(email, own_domain=self.own_domain):
            return
        if email not in self.info.emails:
            self.info.emails.append(email)
        self.record("emails", email, signal)

    def add_social(self, signal: Signal) -> None:
        profile = signal.profile or match_profile(signal.value)
        if profile is None:
            return
        stored = next(
            (item for item in self.info.social_profiles if item.key == profile.key), None
        )
        if stored is None:
            self.info.social_profiles.append(profile)
            stored = profile
        elif stored.display_name is None and profile.display_name:
            upgraded = SocialProfile(
                stored.platform, stored.url, stored.username, profile.display_name
            )
            index = self.info.social_profiles.index(stored)
            self.info.social_profiles[index] = upgraded
        self.record("socialProfiles", stored.url, signal)

    def add_form(self, signal: Signal) -> None:
        value = signal.value.strip()
        if not value:
            return
        stored = next(
            (item for item in self.info.contact_forms if url_key(item) == url_key(value)), None
        )
        if stored is None:
            self.info.contact_forms.append(value)
            stored = value
        self.record("contactForms", stored, signal)

    def add_phone(self, signal: Signal) -> None:
        number = normalize_phone(signal.value)
        if number is None:
            return
        if number not in self.info.phone_numbers:
            self.info.phone_numbers.append(number)
        self.record("phoneNumbers", number, signal)

    def add_person(self, signal: Signal) -> None:
        person = signal.person or ContactPerson(name=signal.value or None)
        if not person.name:
            return
        if self.info.contact_person is None:
            self.info.contact_person = person
        if self.info.contact_person.name == person.name:
            self.record("contactPerson", person.name, signal)


def merge(
    existing: ContactInfo | None,
    signals: Iterable[Signal],
    *,
    now: str | None = None,
    own_domain: str | None = None,
    source_version: str = SOURCE_VERSION,
) -> ContactInfo:
    """Return a new record holding ``existing`` plus every acceptable signal."""
    info = copy.deepcopy(existing) if existing is not None else ContactInfo()
    timestamp = now or utc_now_iso()
    merger = _Merger(info, own_domain=own_domain, timestamp=timestamp)
    handlers = {
        SignalKind.EMAIL: merger.add_email,
        SignalKind.SOCIAL: merger.add_social,
        SignalKind.FORM: merger.add_form,
        SignalKind.PHONE: merger.add_phone,
        SignalKind.PERSON: merger.add_person,
    }
    for signal in signals:
        handlers[signal.kind](signal)

    details = info.extraction_details
    details.normalized = True
    details.source_version = source_version
    details.last_updated = timestamp
    return info


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        for part in value.replace(";", ",").split(","):
            if part.strip():
                yield part.strip()
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _strings(item)


def _legacy_signal(kind: SignalKind, value: str, **extra: Any) -> Signal:
    return Signal(
        kind=kind,
        value=value,
        technique=LEGACY_TECHNIQUE,
        tier=2,
        confidence=LEGACY_CONFIDENCE,
        **extra,
    )


def _legacy_social(value: Any) -> Iterator[Signal]:
    if isinstance(value, dict):
        items: list[Any] = [
            {"platform": platform, "url": url} for platform, url in value.items()
        ]
    elif isinstance(value, list):
        items = value
    else:
        items = [value]
    for item in items:
        if isinstance(item, str):
            profile = match_profile(item)
        elif isinstance(item, dict) and isinstance(item.get("url"), str):
            profile = match_profile(item["url"], display_name=item.get("displayName"))
            if profile is None and item.get("platform") and item.get("username"):
                profile = SocialProfile.from_dict(item)
        else:
            profile = None
        if profile is not None:
            yield _legacy_signal(SignalKind.SOCIAL, profile.url, profile=profile)


def legacy_signals(doc: dict[str, Any]) -> list[Signal]:
    """Translate every historic field spelling into ``legacy-import`` signals."""
    signals: list[Signal] = []
    for key in LEGACY_EMAIL_KEYS:
        signals.extend(_legacy_signal(SignalKind.EMAIL, item) for item in _strings(doc.get(key)))
    for key in LEGACY_FORM_KEYS:
        signals.extend(
            _legacy_signal(SignalKind.FORM, item)
            for item in _strings(doc.get(key))
            if item.lower().startswith(("http://", "https://"))
        )
    for key in LEGACY_SOCIAL_KEYS:
        if doc.get(key):
            signals.extend(_legacy_social(doc[key]))
    for key in LEGACY_PHONE_KEYS:
        signals.extend(_legacy_signal(SignalKind.PHONE, item) for item in _strings(doc.get(key)))
    person = doc.get("contactPerson")
    if isinstance(person, dict) and person.get("name"):
        contact = ContactPerson.from_dict(person)
        signals.append(_legacy_signal(SignalKind.PERSON, str(contact.name), person=contact))
    return signals


def normalize_legacy_record(
    doc: dict[str, Any],
    *,
    now: str | None = None,
    own_domain: str | None = None,
    source_version: str = SOURCE_VERSION,
) -> ContactInfo:
    """One-time migration of a historic contact document into the canonical shape."""
    if not isinstance(doc, dict):
        raise ExtractionError(f"legacy record must be an object, got {type(doc).__name__}")

    base = ContactInfo()
    provenance = doc.get("provenance")
    if isinstance(provenance, list):
        base.provenance = [
            ProvenanceEntry.from_dict(item)
            for item in provenance
            if isinstance(item, dict) and PROVENANCE_KEYS <= item.keys()
        ]
    details = doc.get("extractionDetails")
    if isinstance(details, dict):
        base.extraction_details = ExtractionDetails.from_dict(details)

    legacy_timestamp = doc.get("lastUpdated")
    if not isinstance(legacy_timestamp, str) and isinstance(details, dict):
        legacy_timestamp = details.get("lastUpdated")
    timestamp = now or (legacy_timestamp if isinstance(legacy_timestamp, str) else None)
    return merge(
        base,
        legacy_signals(doc),
        now=timestamp,
        own_domain=own_domain,
        source_version=source_version,
    )
