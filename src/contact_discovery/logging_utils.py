"""Logging helpers."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(message)s"
NOISY_LOGGERS = ("urllib3", "whois", "whois.whois", "tldextract", "filelock")


def configure_logging(verbose: bool = False) -> None:
    """Configure application logging once for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger() -> logging.Logger:
    """Return the package logger handed to every component."""
    return logging.getLogger("contact_discovery")
