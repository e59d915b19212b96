"""Core orchestration pipeline."""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from itertools import chain, islice

from tqdm import tqdm

from .aggregator import merge
from .config import EngineConfig
from .emails import TECHNIQUE as EMAIL_TECHNIQUE
from .emails import extract_email_signals
from .errors import DeadlineExceeded, FetchError
from .extraction import ExtractionContext
from .fetchers import PoliteFetcher, RobotsPolicy, make_session
from .forms import TECHNIQUE as FORM_TECHNIQUE
from .forms import extract_form_signals
from .io_csv import write_rows
from .io_json import write_contact_documents
from .locator import CandidatePage, PageLocator
from .models import (
    ContactInfo,
    ContactPerson,
    Fetcher,
    MailboxVerifier,
    RunSummary,
    Signal,
    Target,
    TargetResult,
    TargetState,
    WhoisLookup,
)
from .phones import TECHNIQUE as PHONE_TECHNIQUE
from .phones import extract_phone_signals
from .scoring import compute_quality, has_contact, has_enough_signal
from .smtp_verify import SmtpVerifier
from .social import TECHNIQUE as SOCIAL_TECHNIQUE
from .social import extract_social_signals
from .team import TECHNIQUE as TEAM_TECHNIQUE
from .team import (
    extract_team_members,
    generate_permutations,
    person_signal,
    verified_email_signals,
)
from .throttle import Deadline, DomainThrottleState, root_domain
from .whois_miner import TECHNIQUE as WHOIS_TECHNIQUE
from .whois_miner import WhoisClient, whois_signals

ExtractorFn = Callable[[str, ExtractionContext], list[Signal]]
ClockFn = Callable[[], float]
LOCATOR_STEP = "page-locator"
FETCH_STEP = "fetch"


@dataclass(frozen=True)
class Technique:
    """One page extractor, registered in priority order."""

    name: str
    tier: int
    run: ExtractorFn


PAGE_TECHNIQUES = (
    Technique(EMAIL_TECHNIQUE, 1, extract_email_signals),
    Technique(SOCIAL_TECHNIQUE, 1, extract_social_signals),
    Technique(FORM_TECHNIQUE, 2, extract_form_signals),
    Technique(PHONE_TECHNIQUE, 1, extract_phone_signals),
)


@dataclass
class _TargetRun:
    target: Target
    info: ContactInfo
    own_domain: str
    logger: logging.Logger
    members: list[ContactPerson] = field(default_factory=list)
    team_context: ExtractionContext | None = None

    def set_state(self, state: TargetState) -> None:
        self.info.extraction_details.state = state.value

    def absorb(self, signals: Iterable[Signal]) -> None:
        self.info = merge(self.info, signals, own_domain=self.own_domain)

    def attempt(self, name: str, run: Callable[[], list[Signal]]) -> list[Signal]:
        """Run one technique; a failure is recorded and means "no signal"."""
        self.info.extraction_details.note_attempt(name)
        try:
            return run()
        except DeadlineExceeded:
            raise
        except Exception as exc:
            self.logger.warning("%s failed for %s: %s", name, self.target.id, exc)
            self.info.extraction_details.note_error(name, f"{type(exc).__name__}: {exc}")
            return []


def _page_html(
    page: CandidatePage, *, run: _TargetRun, fetcher: Fetcher, deadline: Deadline
) -> str:
    if page.html:
        return page.html
    result = fetcher.fetch(page.url, deadline=deadline, root_fallback=False)
    if not result.ok:
        run.info.extraction_details.note_error(FETCH_STEP, f"{page.url}: {result.reason}")
        return ""
    return result.html


def _scan_pages(
    pages: Iterator[CandidatePage],
    *,
    run: _TargetRun,
    config: EngineConfig,
    fetcher: Fetcher,
    deadline: Deadline,
    techniques: tuple[Technique, ...],
) -> bool:
    """Run page techniques over located pages; True when the early-stop rule fired."""
    for page in islice(pages, config.max_pages_per_target):
        deadline.check("page scan")
        html = _page_html(page, run=run, fetcher=fetcher, deadline=deadline)
        if not html:
            continue
        run.info.extraction_details.pages_scanned.append(page.url)
        context = ExtractionContext(run.target, page.url)
        for technique in techniques:
            deadline.check(technique.name)
            run.absorb(run.attempt(technique.name, lambda: technique.run(html, context)))
            if has_enough_signal(run.info):
                run.info.extraction_details.early_stopped = True
                return True
        try:
            members = extract_team_members(html)
        except Exception as exc:
            run.logger.debug("Team scan failed on %s: %s", page.url, exc)
            members = []
        if members and run.team_context is None:
            run.team_context = context
        run.members.extend(members)
    return False


def _team_fallback(
    *,
    run: _TargetRun,
    config: EngineConfig,
    verifier: MailboxVerifier | None,
    deadline: Deadline,
) -> list[Signal]:
    context = run.team_context or ExtractionContext(run.target, run.target.base_url)
    signals: list[Signal] = []
    person = person_signal(run.members, context)
    if person is not None:
        signals.append(person)
    if verifier is None or not config.enable_smtp_verification:
        return signals

    if verifier.is_catch_all(run.own_domain):
        run.info.extraction_details.note_error(
            TEAM_TECHNIQUE, "catch-all domain, verification inconclusive"
        )
        return signals
    candidates = generate_permutations(run.members, run.own_domain, config.max_permutations)
    verified: list[str] = []
    for email in candidates[: config.max_smtp_checks]:
        deadline.check(TEAM_TECHNIQUE)
        if verifier.verify(email) is True:
            verified.append(email)
    signals.extend(verified_email_signals(verified, context))
    return signals


def _run_fallbacks(
    *,
    run: _TargetRun,
    config: EngineConfig,
    whois_client: WhoisLookup | None,
    verifier: MailboxVerifier | None,
    deadline: Deadline,
) -> None:
    budget = config.fallback_budget_for(run.target.is_priority)

    if budget > 0 and whois_client is not None and not run.info.emails:
        deadline.check(WHOIS_TECHNIQUE)
        budget -= 1
        emails = run.attempt(
            WHOIS_TECHNIQUE,
            lambda: whois_signals(whois_client.emails_for(run.own_domain), run.own_domain),
        )
        run.absorb(emails)

    wants_team = run.members or (verifier is not None and config.enable_smtp_verification)
    if budget > 0 and wants_team and not has_enough_signal(run.info):
        deadline.check(TEAM_TECHNIQUE)
        budget -= 1
        run.absorb(
            run.attempt(
                TEAM_TECHNIQUE,
                lambda: _team_fallback(
                    run=run, config=config, verifier=verifier, deadline=deadline
                ),
            )
        )


def discover_target(
    target: Target,
    *,
    config: EngineConfig,
    fetcher: Fetcher,
    whois_client: WhoisLookup | None,
    verifier: MailboxVerifier | None,
    logger: logging.Logger,
    existing: ContactInfo | None = None,
    clock: ClockFn = time.monotonic,
    techniques: tuple[Technique, ...] = PAGE_TECHNIQUES,
) -> TargetResult:
    """Run one target through the state machine; never raises."""
    run = _TargetRun(
        target=target,
        info=copy.deepcopy(existing) if existing is not None else ContactInfo(),
        own_domain=root_domain(target.domain or target.base_url),
        logger=logger,
    )
    run.set_state(TargetState.PENDING)
    deadline = Deadline(config.per_target_deadline, clock=clock)
    error: str | None = None

    try:
        run.set_state(TargetState.LOCATING_PAGES)
        locator = PageLocator(fetcher=fetcher, logger=logger, deadline=deadline)
        pages = locator.locate(target.base_url)
        first = next(pages, None)
        if first is None:
            raise FetchError(locator.base_error or "no candidate pages found")
        if locator.base_error:
            run.info.extraction_details.note_error(
                LOCATOR_STEP, f"base page: {locator.base_error}"
            )

        run.set_state(TargetState.EXTRACTING)
        stopped = _scan_pages(
            chain([first], pages),
            run=run,
            config=config,
            fetcher=fetcher,
            deadline=deadline,
            techniques=techniques,
        )
        if not stopped:
            _run_fallbacks(
                run=run,
                config=config,
                whois_client=whois_client,
                verifier=verifier,
                deadline=deadline,
            )
        run.set_state(TargetState.MERGING)
    except FetchError as exc:
        error = f"no pages located: {exc}"
        run.info.extraction_details.note_error(LOCATOR_STEP, str(exc))
    except DeadlineExceeded as exc:
        error = str(exc)
        run.info.extraction_details.note_error("deadline", str(exc))
    except Exception as exc:
        logger.exception("Unexpected failure for target %s", target.id)
        error = f"unexpected error: {type(exc).__name__}: {exc}"
        run.info.extraction_details.note_error("pipeline", error)

    state = TargetState.DONE if error is None else TargetState.FAILED
    run.set_state(state)
    run.absorb([])
    if error is None:
        logger.info(
            "%s done: %d email(s), %d profile(s), %d form(s)",
            target.id,
            len(run.info.emails),
            len(run.info.social_profiles),
            len(run.info.contact_forms),
        )
    else:
        logger.info("%s failed: %s", target.id, error)
    return TargetResult(target=target, state=state, contact_info=run.info, error=error)


def _failed_result(target: Target, reason: str) -> TargetResult:
    info = ContactInfo()
    info.extraction_details.state = TargetState.FAILED.value
    info.extraction_details.note_error("pipeline", reason)
    return TargetResult(target=target, state=TargetState.FAILED, contact_info=info, error=reason)


def run_batch(
    targets: list[Target],
    *,
    config: EngineConfig,
    fetcher: Fetcher,
    whois_client: WhoisLookup | None,
    verifier: MailboxVerifier | None,
    logger: logging.Logger,
    existing: Mapping[str, ContactInfo] | None = None,
    clock: ClockFn = time.monotonic,
) -> list[TargetResult]:
    """Process targets on a bounded worker pool; results arrive in completion order."""
    previous = existing or {}
    results: list[TargetResult] = []
    with ThreadPoolExecutor(max_workers=config.worker_pool_size) as executor:
        futures = {
            executor.submit(
                discover_target,
                target,
                config=config,
                fetcher=fetcher,
                whois_client=whois_client,
                verifier=verifier,
                logger=logger,
                existing=previous.get(target.id),
                clock=clock,
            ): target
            for target in targets
        }
        iterator = as_completed(futures)
        if config.show_progress:
            iterator = tqdm(iterator, total=len(futures), desc="discovering contacts")
        for future in iterator:
            target = futures[future]
            try:
                results.append(future.result())
            except Exception as exc:  # pragma: no cover - discover_target catches everything
                logger.error("Worker failed for %s: %s", target.id, exc)
                results.append(_failed_result(target, f"worker error: {exc}"))
    return results


def summarize(results: list[TargetResult]) -> RunSummary:
    failed = sum(1 for result in results if result.state is TargetState.FAILED)
    with_contact = sum(
        1
        for result in results
        if result.state is TargetState.DONE and has_contact(result.contact_info)
    )
    return RunSummary(
        total=len(results),
        succeeded_with_contact=with_contact,
        succeeded_empty=len(results) - failed - with_contact,
        failed=failed,
    )


def _to_csv_rows(results: list[TargetResult]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for result in sorted(results, key=lambda item: item.target.id):
        info = result.contact_info
        details = info.extraction_details
        person = info.contact_person
        rows.append(
            {
                "id": result.target.id,
                "domain": result.target.domain,
                "state": result.state.value,
                "emails": ";".join(info.emails),
                "social_profiles": ";".join(profile.url for profile in info.social_profiles),
                "contact_forms": ";".join(info.contact_forms),
                "phone_numbers": ";".join(info.phone_numbers),
                "contact_person": (person.name or "") if person else "",
                "quality": compute_quality(info),
                "techniques": ";".join(details.attempted_techniques),
                "pages_scanned": str(len(details.pages_scanned)),
                "early_stopped": "yes" if details.early_stopped else "no",
                "last_updated": details.last_updated or "",
                "error": result.error or "",
            }
        )
    return rows


def run_pipeline(
    targets: list[Target],
    config: EngineConfig,
    *,
    logger: logging.Logger,
    existing: Mapping[str, ContactInfo] | None = None,
) -> RunSummary:
    """Build concrete dependencies, run the batch, and write JSON and CSV output."""
    session = make_session(config.worker_pool_size, config.max_redirects)
    throttle = DomainThrottleState(config.throttle_interval)
    robots_policy = (
        RobotsPolicy(session=session, timeout=config.request_timeout, throttle=throttle)
        if config.respect_robots
        else None
    )
    fetcher = PoliteFetcher(
        session=session,
        throttle=throttle,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base_ms / 1000.0,
        backoff_max=config.backoff_max_ms / 1000.0,
        logger=logger,
        robots_policy=robots_policy,
    )
    verifier = (
        SmtpVerifier(
            helo_domain=config.smtp_helo_domain,
            mail_from=config.smtp_mail_from,
            timeout=config.smtp_timeout,
            logger=logger,
        )
        if config.enable_smtp_verification
        else None
    )
    results = run_batch(
        targets,
        config=config,
        fetcher=fetcher,
        whois_client=WhoisClient(logger=logger),
        verifier=verifier,
        logger=logger,
        existing=existing,
    )
    write_contact_documents(config.json_output, results)
    write_rows(config.output, _to_csv_rows(results))
    summary = summarize(results)
    logger.info(
        "Run summary: total=%d with_contact=%d empty=%d failed=%d",
        summary.total,
        summary.succeeded_with_contact,
        summary.succeeded_empty,
        summary.failed,
    )
    return summary
