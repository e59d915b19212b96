"""WHOIS registration-data mining, the last-resort email source."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import whois
from whois.parser import PywhoisError

from .emails import find_plain_emails
from .extraction import iter_strings
from .models import Signal, SignalKind
from .throttle import root_domain
from .validation import is_acceptable_email

TECHNIQUE = "whois"
WHOIS_CONFIDENCE = 0.6
PRIVACY_MARKERS = (
    "privacy",
    "proxy",
    "redact",
    "protect",
    "withheld",
    "gdpr",
    "whoisguard",
    "anonymi",
    "contactprivacy",
    "domainsbyproxy",
    "abuse@",
)

LookupFn = Callable[[str], Any]


def is_privacy_email(email: str) -> bool:
    lowered = email.lower()
    return any(marker in lowered for marker in PRIVACY_MARKERS)


def extract_whois_emails(
    record: Mapping[str, Any] | None, *, own_domain: str | None = None
) -> list[str]:
    """Scan every textual field of a WHOIS record for non-privacy emails."""
    if not record:
        return []
    emails: list[str] = []
    for value in iter_strings(dict(record)):
        for email in find_plain_emails(value):
            if email in emails or is_privacy_email(email):
                continue
            if is_acceptable_email(email, own_domain=own_domain):
                emails.append(email)
    return emails


def _python_whois_lookup(domain: str) -> Any:
    return whois.whois(domain)


class WhoisClient:
    """python-whois wrapper; lookup failures mean "no emails"."""

    def __init__(self, *, logger: logging.Logger, lookup: LookupFn | None = None) -> None:
        self._logger = logger
        self._lookup = lookup or _python_whois_lookup

    def emails_for(self, domain: str) -> list[str]:
        key = root_domain(domain)
        if not key:
            return []
        try:
            record = self._lookup(key)
        except (PywhoisError, OSError, ValueError) as exc:
            self._logger.debug("WHOIS lookup failed for %s: %s", key, exc)
            return []
        emails = extract_whois_emails(record, own_domain=key)
        self._logger.debug("WHOIS for %s yielded %d email(s)", key, len(emails))
        return emails


def whois_signals(emails: list[str], domain: str) -> list[Signal]:
    return [
        Signal(
            kind=SignalKind.EMAIL,
            value=email,
            technique=TECHNIQUE,
            tier=1,
            source_url=f"whois:{root_domain(domain)}",
            confidence=WHOIS_CONFIDENCE,
        )
        for email in emails
    ]
