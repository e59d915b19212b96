import copy

import pytest

from contact_discovery.aggregator import legacy_signals, merge, normalize_legacy_record
from contact_discovery.config import SOURCE_VERSION
from contact_discovery.errors import ExtractionError
from contact_discovery.models import (
    ContactInfo,
    ContactPerson,
    Signal,
    SignalKind,
    SocialProfile,
)

NOW = "2026-01-01T00:00:00Z"
LATER = "2026-02-01T00:00:00Z"


def email_signal(
    value: str, confidence: float | None = None, technique: str = "email-pattern"
) -> Signal:
    return Signal(
        kind=SignalKind.EMAIL,
        value=value,
        technique=technique,
        tier=1,
        source_url="https://brand.io/contact",
        confidence=confidence,
    )


def social_signal(url: str, display_name: str | None = None) -> Signal:
    profile = SocialProfile("linkedin", url, "brand", display_name)
    return Signal(
        kind=SignalKind.SOCIAL, value=url, technique="social-profile", tier=1, profile=profile
    )


def test_merge_builds_a_normalized_record() -> None:
    info = merge(None, [email_signal("Hello@Brand.io")], now=NOW)
    assert info.emails == ["hello@brand.io"]
    assert info.provenance[0].confidence == 0.9
    assert info.provenance[0].timestamp == NOW
    assert info.extraction_details.normalized is True
    assert info.extraction_details.source_version == SOURCE_VERSION
    assert info.extraction_details.last_updated == NOW


def test_merge_does_not_mutate_existing_record() -> None:
    existing = merge(None, [email_signal("a@brand.io")], now=NOW)
    snapshot = copy.deepcopy(existing)
    merged = merge(existing, [email_signal("b@brand.io"), email_signal("a@brand.io", 0.95)])
    assert existing == snapshot
    assert merged.emails == ["a@brand.io", "b@brand.io"]


def test_merge_is_idempotent() -> None:
    signals = [
        email_signal("a@brand.io"),
        social_signal("https://www.linkedin.com/company/brand"),
        Signal(kind=SignalKind.PHONE, value="+1 555 010 2000", technique="phone-pattern", tier=1),
    ]
    once = merge(None, signals, now=NOW)
    twice = merge(once, signals, now=NOW)
    assert twice == once


def test_reconfirmation_only_raises_confidence() -> None:
    info = merge(None, [email_signal("a@brand.io", 0.6)], now=NOW)
    info = merge(info, [email_signal("a@brand.io", 0.9)], now=LATER)
    assert len(info.provenance) == 1
    assert info.provenance[0].confidence == 0.9
    assert info.provenance[0].timestamp == NOW

    info = merge(info, [email_signal("a@brand.io", 0.2)], now=LATER)
    assert info.provenance[0].confidence == 0.9


def test_each_technique_keeps_its_own_provenance() -> None:
    info = merge(
        None,
        [email_signal("a@brand.io", 0.6, "whois"), email_signal("a@brand.io", 0.95)],
        now=NOW,
    )
    assert info.emails == ["a@brand.io"]
    assert [entry.technique for entry in info.provenance] == ["whois", "email-pattern"]
    assert info.confidence_of("emails", "a@brand.io") == 0.95


def test_merge_never_shrinks() -> None:
    info = merge(None, [email_signal("a@brand.io")], now=NOW)
    assert merge(info, [], now=LATER).emails == ["a@brand.io"]


def test_merge_revalidates_emails() -> None:
    info = merge(None, [email_signal("noreply@brand.io"), email_signal("not-an-email")], now=NOW)
    assert info.emails == []
    assert info.provenance == []


def test_merge_dedupes_forms_by_url_key() -> None:
    forms = [
        Signal(kind=SignalKind.FORM, value=url, technique="contact-form", tier=2)
        for url in ("https://brand.io/contact/", "https://www.brand.io/contact")
    ]
    info = merge(None, forms, now=NOW)
    assert info.contact_forms == ["https://brand.io/contact/"]


def test_merge_fills_in_missing_display_name() -> None:
    url = "https://www.linkedin.com/company/brand"
    info = merge(None, [social_signal(url)], now=NOW)
    info = merge(info, [social_signal(url, "Brand Inc")], now=NOW)
    assert info.social_profiles == [SocialProfile("linkedin", url, "brand", "Brand Inc")]


def test_first_contact_person_is_kept() -> None:
    people = [
        Signal(
            kind=SignalKind.PERSON,
            value=name,
            technique="team-permutation",
            tier=2,
            person=ContactPerson(name=name, title="Editor"),
        )
        for name in ("Jane Doe", "John Smith")
    ]
    info = merge(None, people, now=NOW)
    assert info.contact_person == ContactPerson(name="Jane Doe", title="Editor")


LEGACY_DOC = {
    "email": "Jane@Brand.io; press@brand.io",
    "contactForm": "https://brand.io/contact",
    "contactForms": "not-a-url",
    "social": {"linkedin": "https://linkedin.com/company/brand"},
    "phone": "+1 555 010 2000",
    "contactPerson": {"name": "Jane Doe", "title": "Editor"},
    "lastUpdated": "2023-05-01T10:00:00Z",
}


def test_legacy_signals_read_historic_field_names() -> None:
    kinds = [signal.kind for signal in legacy_signals(LEGACY_DOC)]
    assert kinds.count(SignalKind.EMAIL) == 2
    assert kinds.count(SignalKind.FORM) == 1
    assert kinds.count(SignalKind.SOCIAL) == 1
    assert kinds.count(SignalKind.PHONE) == 1
    assert kinds.count(SignalKind.PERSON) == 1


def test_normalize_legacy_record() -> None:
    info = normalize_legacy_record(LEGACY_DOC)
    assert info.emails == ["jane@brand.io", "press@brand.io"]
    assert info.contact_forms == ["https://brand.io/contact"]
    assert [(p.platform, p.username) for p in info.social_profiles] == [("linkedin", "brand")]
    assert info.phone_numbers == ["+15550102000"]
    assert info.contact_person == ContactPerson(name="Jane Doe", title="Editor")
    assert {entry.technique for entry in info.provenance} == {"legacy-import"}
    assert {entry.confidence for entry in info.provenance} == {0.5}
    assert info.extraction_details.last_updated == "2023-05-01T10:00:00Z"
    assert info.extraction_details.normalized is True


def test_normalize_legacy_record_is_stable_on_canonical_documents() -> None:
    first = normalize_legacy_record(LEGACY_DOC)
    assert normalize_legacy_record(first.to_dict()) == first


def test_normalize_legacy_record_keeps_valid_provenance() -> None:
    doc = {
        "emails": ["a@brand.io"],
        "provenance": [
            {
                "field": "emails",
                "value": "a@brand.io",
                "technique": "email-pattern",
                "confidence": 0.9,
                "timestamp": NOW,
            },
            {"field": "emails"},
        ],
    }
    info = normalize_legacy_record(doc, now=LATER)
    assert [(entry.technique, entry.timestamp) for entry in info.provenance] == [
        ("email-pattern", NOW),
        ("legacy-import", LATER),
    ]


def test_normalize_legacy_record_rejects_non_objects() -> None:
    with pytest.raises(ExtractionError):
        normalize_legacy_record(["a@brand.io"])  # type: ignore[arg-type]
