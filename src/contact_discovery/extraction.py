"""Shared HTML parsing and URL normalization utilities for the extractors."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .models import Target
from .throttle import root_domain

CONTACT_KEYWORDS = (
    "contact",
    "about",
    "team",
    "support",
    "write-for-us",
    "write for us",
    "get-in-touch",
    "get in touch",
    "reach-us",
    "staff",
    "people",
    "contribute",
    "guest-post",
    "press",
    "kontakt",
    "impressum",
)
NON_TEXT_TAGS = ("script", "style", "noscript", "template")
ASSET_EXTENSIONS = (
    ".pdf",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".webp",
    ".zip",
    ".mp4",
    ".mp3",
    ".css",
    ".js",
)
SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "sms:")


@dataclass(frozen=True)
class ExtractionContext:
    """What an extractor knows besides the HTML itself."""

    target: Target
    page_url: str

    @property
    def root_domain(self) -> str:
        return root_domain(self.target.domain or self.target.base_url)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def visible_text(html: str) -> str:
    """Return the text body with scripts, styles and templates stripped."""
    soup = parse_html(html)
    for tag in soup.find_all(list(NON_TEXT_TAGS)):
        tag.decompose()
    return soup.get_text(" ")


def canonicalize_url(href: str, base: str) -> str:
    """Resolve relative URLs and strip hash fragments."""
    return urljoin(base, href.strip()).split("#", maxsplit=1)[0]


def url_key(url: str) -> str:
    """Comparison key: lowercase scheme-less host plus path without trailing slash."""
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{host}{path}{query}"


def is_same_site(url: str, site_root: str) -> bool:
    return bool(site_root) and root_domain(url) == site_root


def is_followable_href(href: str) -> bool:
    lowered = href.strip().lower()
    if not lowered or lowered.startswith("#") or lowered.startswith(SKIPPED_SCHEMES):
        return False
    path = urlparse(lowered).path
    return not path.endswith(ASSET_EXTENSIONS)


def matches_contact_keyword(*values: str) -> bool:
    haystack = " ".join(value.lower() for value in values if value)
    return any(keyword in haystack for keyword in CONTACT_KEYWORDS)


def iter_json_ld(soup: BeautifulSoup) -> Iterator[dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening lists and @graph.

    Blocks that fail to parse are skipped; one malformed block does not hide
    the others.
    """
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            continue
        yield from _flatten_json_ld(payload)


def _flatten_json_ld(payload: Any) -> Iterator[dict[str, Any]]:
    if isinstance(payload, list):
        for item in payload:
            yield from _flatten_json_ld(item)
        return
    if not isinstance(payload, dict):
        return
    yield payload
    graph = payload.get("@graph")
    if graph is not None:
        yield from _flatten_json_ld(graph)


def json_ld_types(node: dict[str, Any]) -> set[str]:
    value = node.get("@type", [])
    values = value if isinstance(value, list) else [value]
    return {str(item) for item in values}


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def iter_strings(value: Any) -> Iterator[str]:
    """Yield every string nested in a JSON-like structure."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            yield from iter_strings(item)
