"""Social-profile detection from anchors, JSON-LD sameAs and icon hints."""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import urlparse

from bs4.element import Tag

from .extraction import (
    ExtractionContext,
    as_list,
    canonicalize_url,
    is_same_site,
    iter_json_ld,
    parse_html,
)
from .models import Signal, SignalKind, SocialProfile

TECHNIQUE = "social-profile"


@dataclass(frozen=True)
class PlatformPattern:
    platform: str
    hosts: tuple[str, ...]
    path: re.Pattern[str]


PLATFORM_PATTERNS = (
    PlatformPattern(
        "linkedin",
        ("linkedin.com",),
        re.compile(r"^/(?:company|in|school|showcase)/(?P<username>[^/?#]+)", re.IGNORECASE),
    ),
    PlatformPattern(
        "twitter",
        ("twitter.com", "x.com"),
        re.compile(r"^/@?(?P<username>[a-z0-9_]{1,15})/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "facebook",
        ("facebook.com", "fb.com", "fb.me"),
        re.compile(r"^/(?P<username>[a-z0-9.\-]{2,})/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "instagram",
        ("instagram.com", "instagr.am"),
        re.compile(r"^/(?P<username>[a-z0-9_.]{1,30})/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "youtube",
        ("youtube.com",),
        re.compile(r"^/(?:(?:channel|user|c)/)?(?P<username>@?[a-z0-9_.\-]+)/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "github",
        ("github.com",),
        re.compile(r"^/(?P<username>[a-z0-9\-]+)/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "medium",
        ("medium.com",),
        re.compile(r"^/(?P<username>@[a-z0-9_.\-]+)/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "pinterest",
        ("pinterest.com",),
        re.compile(r"^/(?P<username>[a-z0-9_]{3,30})/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "tiktok",
        ("tiktok.com",),
        re.compile(r"^/(?P<username>@[a-z0-9_.]+)/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "reddit",
        ("reddit.com",),
        re.compile(r"^/(?:r|u|user)/(?P<username>[a-z0-9_\-]+)/?$", re.IGNORECASE),
    ),
    PlatformPattern(
        "threads",
        ("threads.net",),
        re.compile(r"^/(?P<username>@[a-z0-9_.]+)/?$", re.IGNORECASE),
    ),
)
RESERVED_USERNAMES = frozenset(
    {
        "share",
        "sharer",
        "sharer.php",
        "intent",
        "home",
        "login",
        "signup",
        "hashtag",
        "search",
        "explore",
        "watch",
        "embed",
        "plugins",
        "dialog",
        "privacy",
        "terms",
        "help",
        "about",
        "policies",
        "settings",
        "tr",
        "events",
        "groups",
        "pages",
        "p",
        "reel",
        "stories",
        "status",
        "i",
        "feed",
        "results",
        "marketplace",
        "gaming",
    }
)
ICON_HINTS = {
    "linkedin": "linkedin",
    "twitter": "twitter",
    "x-twitter": "twitter",
    "facebook": "facebook",
    "instagram": "instagram",
    "youtube": "youtube",
    "github": "github",
    "medium": "medium",
    "pinterest": "pinterest",
    "tiktok": "tiktok",
    "reddit": "reddit",
}
GENERIC_LABELS = frozenset({"follow", "follow us", "share", "link", "profile"})


def _host_matches(host: str, hosts: tuple[str, ...]) -> bool:
    return any(host == candidate or host.endswith(f".{candidate}") for candidate in hosts)


def _is_platform_host(url: str) -> bool:
    host = urlparse(url).netloc.lower().split(":", maxsplit=1)[0]
    return any(_host_matches(host, pattern.hosts) for pattern in PLATFORM_PATTERNS)


def canonical_profile_url(url: str) -> str:
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    path = parsed.path.rstrip("/")
    return f"https://{host}{path}"


def match_profile(url: str, display_name: str | None = None) -> SocialProfile | None:
    """Map a URL to ``(platform, username)`` using the platform table."""
    parsed = urlparse(url)
    host = parsed.netloc.lower().split(":", maxsplit=1)[0]
    if not host:
        return None
    for pattern in PLATFORM_PATTERNS:
        if not _host_matches(host, pattern.hosts):
            continue
        found = pattern.path.match(parsed.path or "/")
        if found is None:
            return None
        username = found.group("username")
        if username.lstrip("@").lower() in RESERVED_USERNAMES:
            return None
        return SocialProfile(
            platform=pattern.platform,
            url=canonical_profile_url(url),
            username=username,
            display_name=display_name,
        )
    return None


def _icon_platform(anchor: Tag) -> str | None:
    hints: list[str] = []
    for node in [anchor, *anchor.find_all(["i", "svg", "span", "img"])]:
        classes = node.get("class") or []
        hints.extend(str(item) for item in classes)
        for attribute in ("aria-label", "title", "alt", "data-icon"):
            value = node.get(attribute)
            if value:
                hints.append(str(value))
    haystack = " ".join(hints).lower()
    for needle, platform in ICON_HINTS.items():
        if needle in haystack:
            return platform
    return None


def _label(anchor: Tag) -> str | None:
    text = " ".join(anchor.get_text(" ").split())
    if not text or text.lower() in GENERIC_LABELS or len(text) > 80:
        return None
    return text


def _profiles_from_anchors(
    context: ExtractionContext, anchors: list[Tag]
) -> Iterator[tuple[SocialProfile, int]]:
    for anchor in anchors:
        url = canonicalize_url(str(anchor["href"]), context.page_url)
        if urlparse(url).scheme not in {"http", "https"}:
            continue
        profile = match_profile(url, display_name=_label(anchor))
        if profile is not None:
            yield profile, 1
            continue
        # unmatched external link with an icon hint, e.g. a shortener behind a LinkedIn icon
        if is_same_site(url, context.root_domain) or _is_platform_host(url):
            continue
        platform = _icon_platform(anchor)
        path = urlparse(url).path.strip("/")
        if platform and path:
            username = path.split("/")[-1]
            if username.lower() not in RESERVED_USERNAMES:
                yield SocialProfile(platform, canonical_profile_url(url), username), 2


def _profiles_from_json_ld(context: ExtractionContext, html: str) -> Iterator[SocialProfile]:
    for node in iter_json_ld(parse_html(html)):
        name = node.get("name") if isinstance(node.get("name"), str) else None
        for value in as_list(node.get("sameAs")):
            if not isinstance(value, str):
                continue
            profile = match_profile(canonicalize_url(value, context.page_url), display_name=name)
            if profile is not None:
                yield profile


def extract_social_signals(html: str, context: ExtractionContext) -> list[Signal]:
    soup = parse_html(html)
    found: list[tuple[SocialProfile, int]] = list(
        _profiles_from_anchors(context, soup.find_all("a", href=True))
    )
    found.extend((profile, 1) for profile in _profiles_from_json_ld(context, html))

    signals: list[Signal] = []
    seen: set[tuple[str, str]] = set()
    for profile, tier in found:
        if profile.key in seen:
            continue
        seen.add(profile.key)
        signals.append(
            Signal(
                kind=SignalKind.SOCIAL,
                value=profile.url,
                technique=TECHNIQUE,
                tier=tier,
                source_url=context.page_url,
                profile=profile,
            )
        )
    return signals
