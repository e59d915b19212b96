"""Runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass

from .validation import validate_runtime_constraints

SOURCE_VERSION = "contact-discovery/1.0"
DEFAULT_MAX_RETRIES = 3
DEFAULT_THROTTLE_INTERVAL_MS = 3000
DEFAULT_REQUEST_TIMEOUT_MS = 15000
DEFAULT_WORKERS = 5
DEFAULT_PER_TARGET_DEADLINE_MS = 120000
DEFAULT_MAX_PAGES = 8
DEFAULT_SMTP_HELO_DOMAIN = "localhost"
DEFAULT_SMTP_MAIL_FROM = "verify@localhost"


@dataclass(frozen=True)
class EngineConfig:
    """Validated configuration used by the discovery pipeline."""

    max_retries: int = DEFAULT_MAX_RETRIES
    throttle_interval_ms: int = DEFAULT_THROTTLE_INTERVAL_MS
    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    worker_pool_size: int = DEFAULT_WORKERS
    per_target_deadline_ms: int = DEFAULT_PER_TARGET_DEADLINE_MS
    enable_smtp_verification: bool = False
    max_pages_per_target: int = DEFAULT_MAX_PAGES
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 30000
    max_redirects: int = 5
    respect_robots: bool = True
    fallback_budget: int = 1
    priority_fallback_budget: int = 2
    max_permutations: int = 12
    max_smtp_checks: int = 5
    smtp_timeout_ms: int = 8000
    smtp_helo_domain: str = DEFAULT_SMTP_HELO_DOMAIN
    smtp_mail_from: str = DEFAULT_SMTP_MAIL_FROM
    output: str = "contacts_report.csv"
    json_output: str = "contacts.json"
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            max_retries=self.max_retries,
            throttle_interval_ms=self.throttle_interval_ms,
            request_timeout_ms=self.request_timeout_ms,
            worker_pool_size=self.worker_pool_size,
            per_target_deadline_ms=self.per_target_deadline_ms,
            max_pages_per_target=self.max_pages_per_target,
            max_redirects=self.max_redirects,
            backoff_base_ms=self.backoff_base_ms,
            backoff_max_ms=self.backoff_max_ms,
            fallback_budget=self.fallback_budget,
            priority_fallback_budget=self.priority_fallback_budget,
            max_permutations=self.max_permutations,
            max_smtp_checks=self.max_smtp_checks,
        )

    @property
    def throttle_interval(self) -> float:
        return self.throttle_interval_ms / 1000.0

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_ms / 1000.0

    @property
    def per_target_deadline(self) -> float:
        return self.per_target_deadline_ms / 1000.0

    @property
    def smtp_timeout(self) -> float:
        return self.smtp_timeout_ms / 1000.0

    def fallback_budget_for(self, is_priority: bool) -> int:
        """Number of last-resort techniques a target may spend."""
        return self.priority_fallback_budget if is_priority else self.fallback_budget
