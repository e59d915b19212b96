"""Candidate contact-page discovery for one target."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, NamedTuple

from .extraction import (
    as_list,
    canonicalize_url,
    is_followable_href,
    is_same_site,
    iter_json_ld,
    json_ld_types,
    matches_contact_keyword,
    parse_html,
    url_key,
)
from .fetchers import root_path_url
from .models import Fetcher, TimeBudget
from .throttle import root_domain

CONVENTIONAL_PATHS = (
    "/contact",
    "/contact-us",
    "/about",
    "/about-us",
    "/team",
    "/our-team",
    "/write-for-us",
    "/get-in-touch",
    "/support",
    "/impressum",
)
BASE_CONFIDENCE = 1.0
STRUCTURED_CONFIDENCE = 0.8
ANCHOR_CONFIDENCE = 0.7
CONVENTIONAL_CONFIDENCE = 0.4


class CandidatePage(NamedTuple):
    """A page worth extracting from; ``html`` is set only for the base page."""

    url: str
    source: str
    confidence: float
    html: str = ""


def _structured_links(node: dict[str, Any]) -> Iterator[str]:
    types = json_ld_types(node)
    if "ContactPage" in types and isinstance(node.get("url"), str):
        yield node["url"]
    if isinstance(node.get("contactPage"), str):
        yield node["contactPage"]
    for point in as_list(node.get("contactPoint")):
        if isinstance(point, dict) and isinstance(point.get("url"), str):
            yield point["url"]
    for value in as_list(node.get("sameAs")):
        if isinstance(value, str):
            yield value


def scan_page_links(html: str, base_url: str) -> list[CandidatePage]:
    """Same-site contact-ish links from structured data first, then anchors."""
    site_root = root_domain(base_url)
    soup = parse_html(html)
    found: list[CandidatePage] = []

    for node in iter_json_ld(soup):
        for link in _structured_links(node):
            if not is_followable_href(link):
                continue
            url = canonicalize_url(link, base_url)
            if is_same_site(url, site_root):
                found.append(CandidatePage(url, "structured-data", STRUCTURED_CONFIDENCE))

    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"])
        if not is_followable_href(href):
            continue
        if not matches_contact_keyword(anchor.get_text(" "), href):
            continue
        url = canonicalize_url(href, base_url)
        if is_same_site(url, site_root):
            found.append(CandidatePage(url, "anchor", ANCHOR_CONFIDENCE))
    return found


class PageLocator:
    """Lazily yields candidate pages; every ``locate`` call starts from scratch."""

    def __init__(
        self,
        *,
        fetcher: Fetcher,
        logger: logging.Logger,
        deadline: TimeBudget | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._logger = logger
        self._deadline = deadline
        self.base_error: str | None = None

    def _expired(self) -> bool:
        return self._deadline is not None and self._deadline.expired

    def locate(self, base_url: str) -> Iterator[CandidatePage]:
        self.base_error = None
        seen: set[str] = set()

        def first_sighting(url: str) -> bool:
            key = url_key(url)
            if key in seen:
                return False
            seen.add(key)
            return True

        result = self._fetcher.fetch(base_url, deadline=self._deadline)
        if result.ok:
            origin = root_path_url(base_url)
            first_sighting(base_url)
            yield CandidatePage(base_url, "base", BASE_CONFIDENCE, result.html)
            for page in scan_page_links(result.html, base_url):
                if first_sighting(page.url):
                    yield page
        else:
            self.base_error = result.reason or "base fetch failed"
            self._logger.info("Base fetch failed for %s: %s", base_url, self.base_error)
            origin = f"https://{root_domain(base_url)}/"

        for path in CONVENTIONAL_PATHS:
            if self._expired():
                return
            url = canonicalize_url(path, origin)
            if url_key(url) in seen:
                continue
            if self._fetcher.exists(url, deadline=self._deadline) and first_sighting(url):
                yield CandidatePage(url, "conventional", CONVENTIONAL_CONFIDENCE)


def find_contact_pages(
    base_url: str,
    *,
    fetcher: Fetcher,
    logger: logging.Logger,
    deadline: TimeBudget | None = None,
) -> Iterator[str]:
    """URL-only view over :class:`PageLocator`."""
    locator = PageLocator(fetcher=fetcher, logger=logger, deadline=deadline)
    for page in locator.locate(base_url):
        yield page.url
