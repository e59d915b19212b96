"""Validation and runtime guardrails."""

from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import unquote, urlparse

import dns.exception
import dns.resolver

from .errors import ConfigError

EMAIL_GRAMMAR = re.compile(
    r"^[a-z0-9._%+\-]+@[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?"
    r"(?:\.[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?)*\.[a-z]{2,24}$"
)
ASSET_SUFFIXES = frozenset(
    {"png", "jpg", "jpeg", "gif", "svg", "webp", "avif", "ico", "css", "js", "woff", "woff2"}
)
PLACEHOLDER_DOMAINS = frozenset(
    {
        "example.com",
        "example.org",
        "example.net",
        "yourdomain.com",
        "yourcompany.com",
        "yoursite.com",
        "domain.com",
        "email.com",
        "company.com",
        "sentry.io",
        "wixpress.com",
    }
)
NO_REPLY_LOCAL_PARTS = re.compile(
    r"^(?:no[-_.]?reply|do[-_.]?not[-_.]?reply|mailer[-_.]?daemon|bounces?)(?:[+\-_.].*)?$"
)
MAX_REDIRECTS_LIMIT = 5
WRAPPING_CHARS = "<>\"'()[]{},;:"


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def normalize_base_url(value: str) -> str:
    """Turn a bare domain or URL into an absolute HTTP(S) URL."""
    value = value.strip()
    if not value:
        return ""
    if "://" not in value:
        value = f"https://{value.lstrip('/')}"
    return value


def load_lines_from_file(path: str) -> list[str]:
    """Load non-empty lines from a UTF-8 text file."""
    content = Path(path).read_text(encoding="utf-8")
    return [line.strip() for line in content.splitlines() if line.strip()]


def normalize_email(raw: str) -> str:
    """Lowercase an address and strip wrapping punctuation and mailto prefixes."""
    value = unquote(raw or "").strip().strip(WRAPPING_CHARS)
    if value.lower().startswith("mailto:"):
        value = value[len("mailto:") :]
    value = value.split("?", maxsplit=1)[0]
    return value.strip().rstrip(".").strip(WRAPPING_CHARS).lower()


def is_valid_email(email: str) -> bool:
    """Return True when the address matches the strict local@domain.tld grammar."""
    if not EMAIL_GRAMMAR.match(email):
        return False
    local, domain = email.split("@", maxsplit=1)
    if local.startswith(".") or local.endswith(".") or ".." in local or ".." in domain:
        return False
    return domain.rsplit(".", maxsplit=1)[1] not in ASSET_SUFFIXES


def is_acceptable_email(email: str, *, own_domain: str | None = None) -> bool:
    """Validate grammar and drop placeholder and no-reply addresses.

    A placeholder domain is kept when it is the target's own domain, so a site
    that really lives at example.org can still publish hello@example.org.
    """
    if not is_valid_email(email):
        return False
    local, domain = email.split("@", maxsplit=1)
    if NO_REPLY_LOCAL_PARTS.match(local):
        return False
    if domain in PLACEHOLDER_DOMAINS or any(
        domain.endswith(f".{placeholder}") for placeholder in PLACEHOLDER_DOMAINS
    ):
        own = (own_domain or "").lower()
        return bool(own) and (domain == own or domain.endswith(f".{own}"))
    return True


def validate_runtime_constraints(
    *,
    max_retries: int,
    throttle_interval_ms: int,
    request_timeout_ms: int,
    worker_pool_size: int,
    per_target_deadline_ms: int,
    max_pages_per_target: int,
    max_redirects: int,
    backoff_base_ms: int,
    backoff_max_ms: int,
    fallback_budget: int,
    priority_fallback_budget: int,
    max_permutations: int,
    max_smtp_checks: int,
) -> None:
    """Validate runtime configuration and raise ConfigError on invalid values."""
    if max_retries < 0:
        raise ConfigError("--max-retries must be >= 0.")
    if throttle_interval_ms < 0:
        raise ConfigError("--throttle-interval-ms must be >= 0.")
    if request_timeout_ms < 1:
        raise ConfigError("--request-timeout-ms must be >= 1.")
    if worker_pool_size < 1:
        raise ConfigError("--workers must be >= 1.")
    if per_target_deadline_ms < request_timeout_ms:
        raise ConfigError("--per-target-deadline-ms cannot be lower than --request-timeout-ms.")
    if max_pages_per_target < 1:
        raise ConfigError("--max-pages must be >= 1.")
    if not 0 <= max_redirects <= MAX_REDIRECTS_LIMIT:
        raise ConfigError(f"max_redirects must be between 0 and {MAX_REDIRECTS_LIMIT}.")
    if backoff_base_ms < 0 or backoff_max_ms < backoff_base_ms:
        raise ConfigError("backoff_max_ms must be >= backoff_base_ms >= 0.")
    if fallback_budget < 0 or priority_fallback_budget < fallback_budget:
        raise ConfigError("priority_fallback_budget must be >= fallback_budget >= 0.")
    if max_permutations < 0 or max_smtp_checks < 0:
        raise ConfigError("--max-permutations and --max-smtp-checks must be >= 0.")


def resolve_mx_host(domain: str, *, lifetime: float = 8.0) -> str | None:
    """Return the preferred (lowest preference value) MX host for a domain."""
    if not domain:
        return None
    try:
        answers = dns.resolver.resolve(domain, "MX", lifetime=lifetime)
    except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN, dns.resolver.NoNameservers):
        return None
    except dns.exception.DNSException:
        return None
    records = sorted(answers, key=lambda record: record.preference)
    if not records:
        return None
    return str(records[0].exchange).rstrip(".") or None
