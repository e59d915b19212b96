import csv
import json
import logging
from pathlib import Path

import pytest

from contact_discovery.config import EngineConfig
from contact_discovery.fetchers import root_path_url
from contact_discovery.models import (
    ContactInfo,
    FetchResult,
    RunSummary,
    Signal,
    Target,
    TargetResult,
    TargetState,
    TimeBudget,
)
from contact_discovery.pipeline import (
    PAGE_TECHNIQUES,
    Technique,
    discover_target,
    run_batch,
    run_pipeline,
    summarize,
)

CLEAN_HOME = (
    '<a href="mailto:hello@brand.io">Email us</a>'
    '<a href="https://www.linkedin.com/company/brand">LinkedIn</a>'
)


class DummyFetcher:
    def __init__(
        self,
        pages: dict[str, str],
        existing: set[str] | None = None,
        not_found: set[str] | None = None,
    ) -> None:
        self.pages = pages
        self.existing = existing or set()
        self.not_found = not_found or set()
        self.fetched: list[str] = []

    def fetch(
        self,
        url: str,
        max_retries: int | None = None,
        *,
        deadline: TimeBudget | None = None,
        root_fallback: bool = True,
    ) -> FetchResult:
        self.fetched.append(url)
        if "explode" in url:
            raise RuntimeError("fetcher bug")
        if url in self.pages:
            return FetchResult(self.pages[url], True, 200)
        if url in self.not_found:
            root = root_path_url(url).rstrip("/")
            if root_fallback and root in self.pages:
                return FetchResult(self.pages[root], True, 200)
            return FetchResult("", False, 404, "http 404")
        return FetchResult("", False, None, "dns failure")

    def exists(self, url: str, *, deadline: TimeBudget | None = None) -> bool:
        return url in self.existing


class DummyWhois:
    def __init__(self, emails: dict[str, list[str]] | None = None) -> None:
        self.emails = emails or {}
        self.calls: list[str] = []

    def emails_for(self, domain: str) -> list[str]:
        self.calls.append(domain)
        return self.emails.get(domain, [])


class FakeVerifier:
    def __init__(self, answers: dict[str, bool | None], catch_all: bool = False) -> None:
        self.answers = answers
        self.catch_all = catch_all
        self.verified: list[str] = []
        self.catch_all_checks: list[str] = []

    def verify(self, email: str) -> bool | None:
        self.verified.append(email)
        return self.answers.get(email)

    def is_catch_all(self, domain: str) -> bool:
        self.catch_all_checks.append(domain)
        return self.catch_all


def make_config(**overrides: object) -> EngineConfig:
    settings: dict[str, object] = {"show_progress": False, "worker_pool_size": 2, **overrides}
    return EngineConfig(**settings)  # type: ignore[arg-type]


def discover(
    target: Target,
    fetcher: DummyFetcher,
    whois: DummyWhois | None = None,
    *,
    config: EngineConfig | None = None,
    verifier: FakeVerifier | None = None,
    **kwargs: object,
) -> TargetResult:
    return discover_target(
        target,
        config=config or make_config(),
        fetcher=fetcher,
        whois_client=whois or DummyWhois(),
        verifier=verifier,
        logger=logging.getLogger("test"),
        **kwargs,  # type: ignore[arg-type]
    )


def test_clean_site_stops_early_with_email_and_profile() -> None:
    whois = DummyWhois({"example.org": ["owner@example.org"]})
    home = CLEAN_HOME.replace("brand.io", "example.org")
    fetcher = DummyFetcher({"https://example.org": home})
    result = discover(Target("t1", "example.org", "https://example.org"), fetcher, whois)

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert result.error is None
    assert info.emails == ["hello@example.org"]
    assert [profile.platform for profile in info.social_profiles] == ["linkedin"]
    assert info.extraction_details.early_stopped is True
    assert info.extraction_details.attempted_techniques == ["email-pattern", "social-profile"]
    assert info.extraction_details.state == "done"
    assert info.extraction_details.pages_scanned == ["https://example.org"]
    assert info.extraction_details.to_dict()["searched"] is True
    assert whois.calls == []


def test_obfuscated_email_is_decoded_with_lower_confidence() -> None:
    fetcher = DummyFetcher(
        {"https://brand.io": "<p>Pitches go to press (at) brand (dot) io.</p>"}
    )
    result = discover(Target("t1", "brand.io"), fetcher)

    assert result.state is TargetState.DONE
    assert result.contact_info.emails == ["press@brand.io"]
    assert result.contact_info.confidence_of("emails", "press@brand.io") == 0.8


def test_unreachable_site_fails_with_error_recorded() -> None:
    whois = DummyWhois({"gone.io": ["owner@gone.io"]})
    result = discover(Target("t1", "gone.io"), DummyFetcher({}), whois)

    info = result.contact_info
    assert result.state is TargetState.FAILED
    assert result.error is not None and result.error.startswith("no pages located")
    assert info.is_empty
    assert {"technique": "page-locator", "reason": "dns failure"} in info.extraction_details.errors
    assert info.extraction_details.state == "failed"
    assert whois.calls == []


def test_whois_fills_in_when_pages_have_no_email() -> None:
    whois = DummyWhois({"brand.io": ["owner@brand.io"]})
    fetcher = DummyFetcher({"https://brand.io": "<p>Welcome to Brand.</p>"})
    result = discover(Target("t1", "brand.io"), fetcher, whois)

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert info.emails == ["owner@brand.io"]
    assert [entry.technique for entry in info.provenance] == ["whois"]
    assert info.provenance[0].source_url == "whois:brand.io"
    assert "whois" in info.extraction_details.attempted_techniques
    assert whois.calls == ["brand.io"]


def test_failing_extractor_is_isolated() -> None:
    def boom(_html: str, _context: object) -> list[Signal]:
        raise RuntimeError("kaboom")

    techniques = (Technique("boom", 1, boom), PAGE_TECHNIQUES[0])
    fetcher = DummyFetcher({"https://brand.io": CLEAN_HOME})
    result = discover(Target("t1", "brand.io"), fetcher, techniques=techniques)

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert info.emails == ["hello@brand.io"]
    assert {"technique": "boom", "reason": "RuntimeError: kaboom"} in info.extraction_details.errors


def test_deadline_keeps_partial_results() -> None:
    now = [0.0]

    def slow(_html: str, _context: object) -> list[Signal]:
        now[0] += 1000.0
        return []

    techniques = (PAGE_TECHNIQUES[0], Technique("slow", 2, slow), PAGE_TECHNIQUES[1])
    fetcher = DummyFetcher({"https://brand.io": CLEAN_HOME})
    result = discover(
        Target("t1", "brand.io"), fetcher, techniques=techniques, clock=lambda: now[0]
    )

    info = result.contact_info
    assert result.state is TargetState.FAILED
    assert result.error is not None and "deadline" in result.error
    assert info.emails == ["hello@brand.io"]
    assert info.social_profiles == []
    assert any(entry["technique"] == "deadline" for entry in info.extraction_details.errors)


def test_existing_record_is_merged_not_mutated() -> None:
    existing = ContactInfo(emails=["old@brand.io"])
    result = discover(
        Target("t1", "brand.io"),
        DummyFetcher({"https://brand.io": CLEAN_HOME}),
        existing=existing,
    )
    assert result.contact_info.emails == ["old@brand.io", "hello@brand.io"]
    assert existing.emails == ["old@brand.io"]
    assert existing.provenance == []


def batch_fixture() -> tuple[list[Target], DummyFetcher, DummyWhois]:
    targets = [
        Target("t1", "brand.io"),
        Target("t2", "gone.io"),
        Target("t3", "explode.io"),
        Target("t4", "quiet.io"),
    ]
    fetcher = DummyFetcher(
        {"https://brand.io": CLEAN_HOME, "https://quiet.io": "<p>Nothing to see.</p>"}
    )
    return targets, fetcher, DummyWhois()


def test_run_batch_isolates_failures_between_targets() -> None:
    targets, fetcher, whois = batch_fixture()
    results = run_batch(
        targets,
        config=make_config(),
        fetcher=fetcher,
        whois_client=whois,
        verifier=None,
        logger=logging.getLogger("test"),
    )
    states = {result.target.id: result.state for result in results}
    assert states == {
        "t1": TargetState.DONE,
        "t2": TargetState.FAILED,
        "t3": TargetState.FAILED,
        "t4": TargetState.DONE,
    }
    errors = {result.target.id: result.error for result in results}
    assert errors["t3"] is not None and "fetcher bug" in errors["t3"]
    assert summarize(results) == RunSummary(
        total=4, succeeded_with_contact=1, succeeded_empty=1, failed=2
    )


def test_run_pipeline_writes_json_and_csv(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    targets, fetcher, whois = batch_fixture()

    def fake_run_batch(batch: list[Target], **kwargs: object) -> list[TargetResult]:
        kwargs["fetcher"] = fetcher
        kwargs["whois_client"] = whois
        return run_batch(batch, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr("contact_discovery.pipeline.run_batch", fake_run_batch)
    config = make_config(
        output=str(tmp_path / "report.csv"), json_output=str(tmp_path / "contacts.json")
    )
    summary = run_pipeline(targets, config, logger=logging.getLogger("test"))

    assert summary.total == 4
    documents = json.loads((tmp_path / "contacts.json").read_text(encoding="utf-8"))
    assert list(documents) == ["t1", "t2", "t3", "t4"]
    assert documents["t1"]["emails"] == ["hello@brand.io"]
    assert documents["t1"]["extractionDetails"]["normalized"] is True

    with (tmp_path / "report.csv").open(newline="", encoding="utf-8") as file_obj:
        rows = list(csv.DictReader(file_obj))
    assert [row["id"] for row in rows] == ["t1", "t2", "t3", "t4"]
    assert rows[0]["quality"] == "High"
    assert rows[0]["early_stopped"] == "yes"
    assert rows[1]["state"] == "failed"


def test_conventional_page_is_used_when_home_page_fails() -> None:
    fetcher = DummyFetcher(
        {"https://brand.io/contact": '<a href="mailto:hello@brand.io">Mail</a>'},
        existing={"https://brand.io/contact"},
    )
    result = discover(Target("t1", "brand.io"), fetcher)

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert info.emails == ["hello@brand.io"]
    assert info.extraction_details.pages_scanned == ["https://brand.io/contact"]
    assert {"technique": "page-locator", "reason": "base page: dns failure"} in (
        info.extraction_details.errors
    )


def test_located_page_that_404s_is_not_replaced_by_the_home_page() -> None:
    home = '<p>Welcome to Brand.</p><a href="/contact">Contact</a>'
    fetcher = DummyFetcher(
        {"https://brand.io": home}, not_found={"https://brand.io/contact"}
    )
    result = discover(Target("t1", "brand.io"), fetcher)

    details = result.contact_info.extraction_details
    assert result.state is TargetState.DONE
    assert details.pages_scanned == ["https://brand.io"]
    assert {"technique": "fetch", "reason": "https://brand.io/contact: http 404"} in (
        details.errors
    )


def test_page_scan_stops_at_the_page_cap() -> None:
    quiet = "<p>Nothing here.</p>"
    fetcher = DummyFetcher(
        {
            "https://brand.io": quiet,
            "https://brand.io/contact": quiet,
            "https://brand.io/about": quiet,
            "https://brand.io/team": quiet,
        },
        existing={"https://brand.io/contact", "https://brand.io/about", "https://brand.io/team"},
    )
    result = discover(
        Target("t1", "brand.io"), fetcher, config=make_config(max_pages_per_target=2)
    )

    assert result.state is TargetState.DONE
    assert result.contact_info.extraction_details.pages_scanned == [
        "https://brand.io",
        "https://brand.io/contact",
    ]
    assert fetcher.fetched == ["https://brand.io", "https://brand.io/contact"]


TEAM_PAGE = """
<section class="our-team">
  <div class="member"><h3>Jane Doe</h3><p class="role">Editor in Chief</p></div>
</section>
"""


def team_site() -> DummyFetcher:
    return DummyFetcher(
        {"https://brand.io": "<p>Welcome to Brand.</p>", "https://brand.io/team": TEAM_PAGE},
        existing={"https://brand.io/team"},
    )


def smtp_config() -> EngineConfig:
    return make_config(enable_smtp_verification=True, max_smtp_checks=3)


def test_priority_target_runs_team_permutation_after_whois() -> None:
    whois = DummyWhois()
    verifier = FakeVerifier(
        {"jane.doe@brand.io": False, "jdoe@brand.io": True, "jane@brand.io": None}
    )
    result = discover(
        Target("t1", "brand.io", is_priority=True),
        team_site(),
        whois,
        config=smtp_config(),
        verifier=verifier,
    )

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert whois.calls == ["brand.io"]
    assert verifier.catch_all_checks == ["brand.io"]
    assert verifier.verified == ["jane.doe@brand.io", "jdoe@brand.io", "jane@brand.io"]
    assert info.emails == ["jdoe@brand.io"]
    assert info.confidence_of("emails", "jdoe@brand.io") == 0.5
    assert info.contact_person is not None
    assert info.contact_person.name == "Jane Doe"
    assert info.contact_person.title == "Editor in Chief"
    assert info.extraction_details.attempted_techniques[-2:] == ["whois", "team-permutation"]
    assert info.extraction_details.pages_scanned == [
        "https://brand.io",
        "https://brand.io/team",
    ]


def test_standard_target_stops_after_whois() -> None:
    whois = DummyWhois()
    verifier = FakeVerifier({"jane.doe@brand.io": True})
    result = discover(
        Target("t1", "brand.io"), team_site(), whois, config=smtp_config(), verifier=verifier
    )

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert whois.calls == ["brand.io"]
    assert verifier.verified == []
    assert verifier.catch_all_checks == []
    assert info.emails == []
    assert info.contact_person is None
    assert "team-permutation" not in info.extraction_details.attempted_techniques


def test_catch_all_domain_adds_no_guessed_emails() -> None:
    verifier = FakeVerifier({"jane.doe@brand.io": True}, catch_all=True)
    result = discover(
        Target("t1", "brand.io", is_priority=True),
        team_site(),
        config=smtp_config(),
        verifier=verifier,
    )

    info = result.contact_info
    assert result.state is TargetState.DONE
    assert verifier.verified == []
    assert info.emails == []
    assert info.contact_person is not None and info.contact_person.name == "Jane Doe"
    assert {
        "technique": "team-permutation",
        "reason": "catch-all domain, verification inconclusive",
    } in info.extraction_details.errors


def test_inconclusive_verification_adds_nothing() -> None:
    verifier = FakeVerifier({})
    result = discover(
        Target("t1", "brand.io", is_priority=True),
        team_site(),
        config=smtp_config(),
        verifier=verifier,
    )

    assert len(verifier.verified) == 3
    assert result.contact_info.emails == []
    assert [entry.technique for entry in result.contact_info.provenance] == ["team-permutation"]
    assert result.contact_info.provenance[0].field == "contactPerson"
