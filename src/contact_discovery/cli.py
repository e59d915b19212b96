"""CLI entrypoint for contact-discovery."""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence

from .aggregator import normalize_legacy_record
from .config import (
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PER_TARGET_DEADLINE_MS,
    DEFAULT_REQUEST_TIMEOUT_MS,
    DEFAULT_SMTP_HELO_DOMAIN,
    DEFAULT_SMTP_MAIL_FROM,
    DEFAULT_THROTTLE_INTERVAL_MS,
    DEFAULT_WORKERS,
    EngineConfig,
)
from .errors import ConfigError, ExtractionError
from .io_csv import read_targets
from .io_json import read_contact_documents, read_documents, write_documents
from .logging_utils import configure_logging, get_logger
from .pipeline import run_pipeline

TRUTHY_ENV = frozenset({"1", "true", "yes", "on"})


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Contact Discovery - polite crawling for public contact channels per domain."
    )
    source_group = parser.add_mutually_exclusive_group(required=False)
    source_group.add_argument(
        "--targets-file",
        help="CSV with id,domain,url,is_priority columns, or a text file with one domain per line.",
    )
    source_group.add_argument(
        "--normalize-legacy",
        metavar="FILE",
        help="Migrate a JSON file of legacy contact documents to the canonical shape.",
    )
    parser.add_argument(
        "--existing-json", help="Previous run's JSON output; new signals are merged into it."
    )
    parser.add_argument("--output", default="contacts_report.csv", help="Output CSV report path.")
    parser.add_argument("--json-output", default="contacts.json", help="Output JSON path.")
    parser.add_argument(
        "--workers", type=int, default=DEFAULT_WORKERS, help="Number of worker threads."
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help="Retries for transient fetch failures.",
    )
    parser.add_argument(
        "--throttle-interval-ms",
        type=int,
        default=DEFAULT_THROTTLE_INTERVAL_MS,
        help="Minimum gap between requests to one root domain.",
    )
    parser.add_argument(
        "--request-timeout-ms",
        type=int,
        default=DEFAULT_REQUEST_TIMEOUT_MS,
        help="Per-request timeout.",
    )
    parser.add_argument(
        "--per-target-deadline-ms",
        type=int,
        default=DEFAULT_PER_TARGET_DEADLINE_MS,
        help="Total processing budget per target.",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=DEFAULT_MAX_PAGES,
        help="Maximum pages scanned per target.",
    )
    parser.add_argument(
        "--max-redirects", type=int, default=5, help="Redirect limit per request (<= 5)."
    )
    parser.add_argument(
        "--fallback-budget",
        type=int,
        default=1,
        help="Last-resort techniques per standard target.",
    )
    parser.add_argument(
        "--priority-fallback-budget",
        type=int,
        default=2,
        help="Last-resort techniques per priority target.",
    )
    parser.add_argument(
        "--enable-smtp",
        action="store_true",
        help="Verify generated team addresses over SMTP (or set CONTACT_DISCOVERY_ENABLE_SMTP=1).",
    )
    parser.add_argument(
        "--max-permutations", type=int, default=12, help="Generated team addresses per target."
    )
    parser.add_argument(
        "--max-smtp-checks", type=int, default=5, help="SMTP probes per target."
    )
    parser.add_argument("--smtp-helo", help="HELO domain (or CONTACT_DISCOVERY_SMTP_HELO).")
    parser.add_argument("--smtp-from", help="MAIL FROM address (or CONTACT_DISCOVERY_SMTP_FROM).")
    parser.add_argument(
        "--ignore-robots", action="store_true", help="Do not consult robots.txt."
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.targets_file or args.normalize_legacy):
        parser.error("Provide --targets-file or --normalize-legacy.")
    return args


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in TRUTHY_ENV


def namespace_to_config(args: argparse.Namespace) -> EngineConfig:
    """Convert CLI args to validated EngineConfig."""
    logger = get_logger()
    enable_smtp = bool(args.enable_smtp or _env_flag("CONTACT_DISCOVERY_ENABLE_SMTP"))
    helo = args.smtp_helo or os.getenv("CONTACT_DISCOVERY_SMTP_HELO") or DEFAULT_SMTP_HELO_DOMAIN
    mail_from = (
        args.smtp_from or os.getenv("CONTACT_DISCOVERY_SMTP_FROM") or DEFAULT_SMTP_MAIL_FROM
    )
    if enable_smtp and helo == DEFAULT_SMTP_HELO_DOMAIN:
        logger.warning(
            "SMTP verification enabled with HELO '%s'; many MX hosts reject it. "
            "Set CONTACT_DISCOVERY_SMTP_HELO or pass --smtp-helo.",
            helo,
        )

    return EngineConfig(
        max_retries=args.max_retries,
        throttle_interval_ms=args.throttle_interval_ms,
        request_timeout_ms=args.request_timeout_ms,
        worker_pool_size=args.workers,
        per_target_deadline_ms=args.per_target_deadline_ms,
        enable_smtp_verification=enable_smtp,
        max_pages_per_target=args.max_pages,
        max_redirects=args.max_redirects,
        respect_robots=not args.ignore_robots,
        fallback_budget=args.fallback_budget,
        priority_fallback_budget=args.priority_fallback_budget,
        max_permutations=args.max_permutations,
        max_smtp_checks=args.max_smtp_checks,
        smtp_helo_domain=helo,
        smtp_mail_from=mail_from,
        output=args.output,
        json_output=args.json_output,
        show_progress=not args.no_progress,
    )


def normalize_legacy_file(path: str, output: str) -> int:
    """Rewrite every legacy document in ``path`` to the canonical shape; return the count."""
    logger = get_logger()
    documents = read_documents(path)
    migrated = {}
    for key, doc in documents.items():
        try:
            migrated[key] = normalize_legacy_record(doc).to_dict()
        except ExtractionError as exc:
            logger.warning("Skipping legacy document %s: %s", key, exc)
    write_documents(output, migrated)
    return len(migrated)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
        if args.normalize_legacy:
            count = normalize_legacy_file(args.normalize_legacy, config.json_output)
            logger.info("Normalized %d document(s) into %s", count, config.json_output)
            return 0
        targets = read_targets(args.targets_file)
        existing = read_contact_documents(args.existing_json) if args.existing_json else None
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    summary = run_pipeline(targets, config, logger=logger, existing=existing)
    print(
        f"total={summary.total} with_contact={summary.succeeded_with_contact} "
        f"empty={summary.succeeded_empty} failed={summary.failed}"
    )
    logger.info("Wrote results to %s and %s", config.output, config.json_output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
