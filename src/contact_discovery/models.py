"""Protocols and model types shared across the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Protocol

from .validation import normalize_base_url


class TargetState(str, Enum):
    """Per-target pipeline states."""

    PENDING = "pending"
    LOCATING_PAGES = "locating_pages"
    EXTRACTING = "extracting"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


class SignalKind(str, Enum):
    EMAIL = "email"
    SOCIAL = "social"
    FORM = "form"
    PHONE = "phone"
    PERSON = "person"


class FetchResult(NamedTuple):
    """Outcome of one fetch; ``html`` is empty whenever ``ok`` is False."""

    html: str
    ok: bool
    status: int | None = None
    reason: str = ""


class TimeBudget(Protocol):
    """Contract for per-target time budgets."""

    @property
    def expired(self) -> bool:
        """Return True once the budget is spent."""

    def remaining(self) -> float:
        """Return the seconds left, never negative."""


class Fetcher(Protocol):
    """Contract for politeness-aware HTML fetchers."""

    def fetch(
        self,
        url: str,
        max_retries: int | None = None,
        *,
        deadline: TimeBudget | None = None,
        root_fallback: bool = True,
    ) -> FetchResult:
        """Return page content for a URL, or a failed result.

        With ``root_fallback`` a 404 is answered with the domain root page instead.
        """

    def exists(self, url: str, *, deadline: TimeBudget | None = None) -> bool:
        """Return True when a cheap probe answers with 2xx/3xx."""


class WhoisLookup(Protocol):
    """Contract for WHOIS email mining."""

    def emails_for(self, domain: str) -> list[str]:
        """Return non-privacy registration emails for a domain."""


class MailboxVerifier(Protocol):
    """Contract for best-effort mailbox verification."""

    def verify(self, email: str) -> bool | None:
        """Return True (exists), False (rejected) or None (inconclusive)."""

    def is_catch_all(self, domain: str) -> bool:
        """Return True when the domain accepts any recipient."""


@dataclass(frozen=True)
class Target:
    """One website to search, supplied by the external scheduler."""

    id: str
    domain: str
    url: str = ""
    is_priority: bool = False

    @property
    def base_url(self) -> str:
        return normalize_base_url(self.url or self.domain)


@dataclass(frozen=True)
class SocialProfile:
    platform: str
    url: str
    username: str
    display_name: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.platform, self.username.lower())

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "platform": self.platform,
            "url": self.url,
            "username": self.username,
        }
        if self.display_name:
            payload["displayName"] = self.display_name
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SocialProfile:
        return cls(
            platform=str(payload["platform"]),
            url=str(payload["url"]),
            username=str(payload["username"]),
            display_name=payload.get("displayName"),
        )


@dataclass(frozen=True)
class ContactPerson:
    name: str | None = None
    title: str | None = None
    department: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "title": self.title, "department": self.department}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ContactPerson:
        return cls(
            name=payload.get("name"),
            title=payload.get("title"),
            department=payload.get("department"),
        )


@dataclass(frozen=True)
class Signal:
    """A single candidate value produced by one technique, not yet merged."""

    kind: SignalKind
    value: str
    technique: str
    tier: int
    source_url: str = ""
    confidence: float | None = None
    profile: SocialProfile | None = None
    person: ContactPerson | None = None


@dataclass
class ProvenanceEntry:
    field: str
    value: str
    technique: str
    confidence: float
    timestamp: str
    source_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "value": self.value,
            "technique": self.technique,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "sourceUrl": self.source_url,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ProvenanceEntry:
        return cls(
            field=str(payload["field"]),
            value=str(payload["value"]),
            technique=str(payload["technique"]),
            confidence=float(payload["confidence"]),
            timestamp=str(payload["timestamp"]),
            source_url=str(payload.get("sourceUrl", "")),
        )


@dataclass
class ExtractionDetails:
    normalized: bool = False
    source_version: str = ""
    last_updated: str | None = None
    state: str = TargetState.PENDING.value
    attempted_techniques: list[str] = field(default_factory=list)
    pages_scanned: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    early_stopped: bool = False

    @property
    def searched(self) -> bool:
        """True once any technique ran, even if it found nothing."""
        return bool(self.attempted_techniques)

    def note_attempt(self, technique: str) -> None:
        if technique not in self.attempted_techniques:
            self.attempted_techniques.append(technique)

    def note_error(self, technique: str, reason: str) -> None:
        entry = {"technique": technique, "reason": reason}
        if entry not in self.errors:
            self.errors.append(entry)

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalized": self.normalized,
            "sourceVersion": self.source_version,
            "lastUpdated": self.last_updated,
            "state": self.state,
            "attemptedTechniques": list(self.attempted_techniques),
            "pagesScanned": list(self.pages_scanned),
            "errors": [dict(item) for item in self.errors],
            "earlyStopped": self.early_stopped,
            "searched": self.searched,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ExtractionDetails:
        return cls(
            normalized=bool(payload.get("normalized", False)),
            source_version=str(payload.get("sourceVersion", "")),
            last_updated=payload.get("lastUpdated"),
            state=str(payload.get("state", TargetState.PENDING.value)),
            attempted_techniques=list(payload.get("attemptedTechniques", [])),
            pages_scanned=list(payload.get("pagesScanned", [])),
            errors=[dict(item) for item in payload.get("errors", [])],
            early_stopped=bool(payload.get("earlyStopped", False)),
        )


@dataclass
class ContactInfo:
    """Canonical, provenance-tagged contact record for one target."""

    emails: list[str] = field(default_factory=list)
    social_profiles: list[SocialProfile] = field(default_factory=list)
    contact_forms: list[str] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)
    contact_person: ContactPerson | None = None
    provenance: list[ProvenanceEntry] = field(default_factory=list)
    extraction_details: ExtractionDetails = field(default_factory=ExtractionDetails)

    @property
    def is_empty(self) -> bool:
        return not (
            self.emails
            or self.social_profiles
            or self.contact_forms
            or self.phone_numbers
            or self.contact_person
        )

    def confidence_of(self, field_name: str, value: str) -> float | None:
        """Best confidence recorded for one item, across all techniques."""
        scores = [
            entry.confidence
            for entry in self.provenance
            if entry.field == field_name and entry.value == value
        ]
        return max(scores) if scores else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "emails": list(self.emails),
            "socialProfiles": [profile.to_dict() for profile in self.social_profiles],
            "contactForms": list(self.contact_forms),
            "phoneNumbers": list(self.phone_numbers),
            "contactPerson": self.contact_person.to_dict() if self.contact_person else None,
            "provenance": [entry.to_dict() for entry in self.provenance],
            "extractionDetails": self.extraction_details.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ContactInfo:
        person = payload.get("contactPerson")
        return cls(
            emails=[str(item) for item in payload.get("emails", [])],
            social_profiles=[
                SocialProfile.from_dict(item) for item in payload.get("socialProfiles", [])
            ],
            contact_forms=[str(item) for item in payload.get("contactForms", [])],
            phone_numbers=[str(item) for item in payload.get("phoneNumbers", [])],
            contact_person=ContactPerson.from_dict(person) if isinstance(person, dict) else None,
            provenance=[ProvenanceEntry.from_dict(item) for item in payload.get("provenance", [])],
            extraction_details=ExtractionDetails.from_dict(payload.get("extractionDetails", {})),
        )


@dataclass
class TargetResult:
    target: Target
    state: TargetState
    contact_info: ContactInfo
    error: str | None = None


@dataclass(frozen=True)
class RunSummary:
    total: int
    succeeded_with_contact: int
    succeeded_empty: int
    failed: int
