"""Best-effort mailbox verification over SMTP (HELO / MAIL FROM / RCPT TO)."""

from __future__ import annotations

import logging
import smtplib
import uuid
from collections.abc import Callable
from threading import Lock

from .errors import VerificationError
from .validation import resolve_mx_host

SMTP_PORT = 25
ACCEPTED_CODES = (250, 251)

MxResolverFn = Callable[[str], str | None]
SmtpFactory = Callable[..., smtplib.SMTP]


class SmtpVerifier:
    """RCPT TO probe against the domain's preferred MX host.

    ``verify`` answers True (250/251), False (55x) or None for anything else,
    including blocked port 25, timeouts and greylisting.
    """

    def __init__(
        self,
        *,
        helo_domain: str,
        mail_from: str,
        timeout: float,
        logger: logging.Logger,
        mx_resolver: MxResolverFn | None = None,
        smtp_factory: SmtpFactory = smtplib.SMTP,
    ) -> None:
        self._helo_domain = helo_domain
        self._mail_from = mail_from
        self._timeout = timeout
        self._logger = logger
        self._mx_resolver = mx_resolver or (
            lambda domain: resolve_mx_host(domain, lifetime=timeout)
        )
        self._smtp_factory = smtp_factory
        self._catch_all: dict[str, bool] = {}
        self._lock = Lock()

    def _rcpt_code(self, email: str) -> int:
        domain = email.rsplit("@", maxsplit=1)[-1]
        mx_host = self._mx_resolver(domain)
        if not mx_host:
            raise VerificationError(f"no MX host for {domain}")
        with self._smtp_factory(timeout=self._timeout) as server:
            server.connect(mx_host, SMTP_PORT)
            server.helo(self._helo_domain)
            server.mail(self._mail_from)
            code, _message = server.rcpt(email)
        return code

    def verify(self, email: str) -> bool | None:
        try:
            code = self._rcpt_code(email)
        except VerificationError as exc:
            self._logger.debug("SMTP verification skipped for %s: %s", email, exc)
            return None
        except (smtplib.SMTPException, OSError) as exc:
            self._logger.debug("SMTP verification inconclusive for %s: %s", email, exc)
            return None
        if code in ACCEPTED_CODES:
            return True
        if 550 <= code < 560:
            return False
        self._logger.debug("SMTP RCPT for %s answered %s", email, code)
        return None

    def is_catch_all(self, domain: str) -> bool:
        """True when a random local part is accepted; cached per domain."""
        key = domain.lower()
        with self._lock:
            if key in self._catch_all:
                return self._catch_all[key]
        result = self.verify(f"{uuid.uuid4().hex[:16]}@{key}") is True
        with self._lock:
            self._catch_all[key] = result
        return result
