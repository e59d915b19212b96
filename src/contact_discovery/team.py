"""Team-member discovery and email-permutation generation."""

from __future__ import annotations

import re
import unicodedata

from bs4 import BeautifulSoup
from bs4.element import Tag

from .extraction import ExtractionContext, iter_json_ld, json_ld_types, parse_html
from .models import ContactPerson, Signal, SignalKind

TECHNIQUE = "team-permutation"
PERSON_CONFIDENCE = 0.6
VERIFIED_CONFIDENCE = 0.5

TEAM_CONTAINER_HINTS = ("team", "staff", "people", "member", "author", "founder", "leadership")
TITLE_CLASS_HINTS = ("title", "role", "position", "job", "designation")
ROLE_ALIASES = ("contact", "hello", "info", "editor", "press", "team")
DEPARTMENT_KEYWORDS = (
    ("editor", "Editorial"),
    ("content", "Editorial"),
    ("writer", "Editorial"),
    ("marketing", "Marketing"),
    ("seo", "Marketing"),
    ("outreach", "Marketing"),
    ("growth", "Marketing"),
    ("sales", "Sales"),
    ("partnership", "Partnerships"),
    ("business development", "Partnerships"),
    ("engineer", "Engineering"),
    ("developer", "Engineering"),
    ("cto", "Engineering"),
    ("support", "Support"),
    ("customer", "Support"),
    ("founder", "Leadership"),
    ("ceo", "Leadership"),
    ("owner", "Leadership"),
    ("director", "Leadership"),
    ("president", "Leadership"),
    ("head of", "Leadership"),
)
NON_NAME_WORDS = frozenset(
    {
        "about",
        "our",
        "team",
        "the",
        "contact",
        "us",
        "meet",
        "staff",
        "people",
        "get",
        "in",
        "touch",
        "company",
        "services",
        "blog",
        "news",
        "read",
        "more",
        "home",
        "privacy",
        "policy",
        "terms",
        "join",
        "careers",
        "leadership",
    }
)
NAME_REGEX = re.compile(r"^[A-Z][a-zA-Z'\-]+(?:\s+[A-Z]\.?)?(?:\s+[A-Z][a-zA-Z'\-]+){1,2}$")
HEADING_TAGS = ("h2", "h3", "h4", "h5", "strong")
TITLE_SIBLING_TAGS = ("p", "span", "div", "small", "em", "h4", "h5", "h6")


def infer_department(title: str | None) -> str | None:
    if not title:
        return None
    lowered = title.lower()
    for keyword, department in DEPARTMENT_KEYWORDS:
        if re.search(rf"\b{re.escape(keyword)}\b", lowered):
            return department
    return None


def looks_like_name(text: str) -> bool:
    value = " ".join(text.split())
    if not NAME_REGEX.match(value):
        return False
    return not any(word.lower().strip(".") in NON_NAME_WORDS for word in value.split())


def split_name(name: str) -> tuple[str, str]:
    """Return ASCII-folded ``(first, last)``; middle names and initials are dropped."""
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    parts = [re.sub(r"[^a-z]", "", part.lower()) for part in folded.split()]
    parts = [part for part in parts if len(part) > 1]
    if not parts:
        return "", ""
    return parts[0], parts[-1] if len(parts) > 1 else ""


def _title_near(heading: Tag) -> str | None:
    """Title text from the next one or two siblings of a name heading."""
    for sibling in heading.find_next_siblings(limit=2):
        if looks_like_name(sibling.get_text(" ")):
            return None
        classes = " ".join(str(item) for item in sibling.get("class") or []).lower()
        if sibling.name not in TITLE_SIBLING_TAGS and not any(
            hint in classes for hint in TITLE_CLASS_HINTS
        ):
            continue
        text = " ".join(sibling.get_text(" ").split())
        if text and len(text) <= 80:
            return text
    return None


def _team_containers(soup: BeautifulSoup) -> list[Tag]:
    containers: list[Tag] = []
    for node in soup.find_all(["section", "div", "ul", "article"]):
        marker = " ".join(
            [str(node.get("id", "")), *(str(item) for item in node.get("class") or [])]
        ).lower()
        if any(hint in marker for hint in TEAM_CONTAINER_HINTS):
            containers.append(node)
    return containers


def extract_team_members(html: str) -> list[ContactPerson]:
    """People named on a page, from JSON-LD ``Person`` nodes and team sections."""
    soup = parse_html(html)
    members: list[ContactPerson] = []
    seen: set[str] = set()

    def add(name: str, title: str | None) -> None:
        key = name.lower()
        if key in seen:
            return
        seen.add(key)
        members.append(ContactPerson(name=name, title=title, department=infer_department(title)))

    for node in iter_json_ld(soup):
        if "Person" not in json_ld_types(node):
            continue
        name = node.get("name")
        if isinstance(name, str) and looks_like_name(name):
            title = node.get("jobTitle")
            add(" ".join(name.split()), title if isinstance(title, str) else None)

    for container in _team_containers(soup):
        for heading in container.find_all(list(HEADING_TAGS)):
            text = " ".join(heading.get_text(" ").split())
            if looks_like_name(text):
                add(text, _title_near(heading))
    return members


def generate_permutations(members: list[ContactPerson], domain: str, limit: int) -> list[str]:
    """Conventional address formats for each member, then role aliases, capped at ``limit``."""
    if limit <= 0:
        return []
    domain = domain.lower().strip()
    candidates: list[str] = []
    for member in members:
        first, last = split_name(member.name or "")
        if not first:
            continue
        if last:
            patterns = [
                f"{first}.{last}",
                f"{first[0]}{last}",
                first,
                f"{first}{last}",
                f"{first}_{last}",
                f"{first}{last[0]}",
                last,
            ]
        else:
            patterns = [first]
        candidates.extend(f"{local}@{domain}" for local in patterns)
    candidates.extend(f"{alias}@{domain}" for alias in ROLE_ALIASES)

    output: list[str] = []
    for candidate in candidates:
        if candidate not in output:
            output.append(candidate)
        if len(output) >= limit:
            break
    return output


def person_signal(members: list[ContactPerson], context: ExtractionContext) -> Signal | None:
    """First member with both a name and a title becomes the contact person."""
    for member in members:
        if member.name and member.title:
            return Signal(
                kind=SignalKind.PERSON,
                value=member.name,
                technique=TECHNIQUE,
                tier=2,
                source_url=context.page_url,
                confidence=PERSON_CONFIDENCE,
                person=member,
            )
    return None


def verified_email_signals(emails: list[str], context: ExtractionContext) -> list[Signal]:
    return [
        Signal(
            kind=SignalKind.EMAIL,
            value=email,
            technique=TECHNIQUE,
            tier=3,
            source_url=context.page_url,
            confidence=VERIFIED_CONFIDENCE,
        )
        for email in emails
    ]
