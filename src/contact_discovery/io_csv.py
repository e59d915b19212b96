"""CSV input and report serialization helpers."""

from __future__ import annotations

import csv
from pathlib import Path

from .errors import ConfigError
from .models import Target
from .throttle import host_from_url
from .validation import load_lines_from_file

CSV_FIELDS = [
    "id",
    "domain",
    "state",
    "emails",
    "social_profiles",
    "contact_forms",
    "phone_numbers",
    "contact_person",
    "quality",
    "techniques",
    "pages_scanned",
    "early_stopped",
    "last_updated",
    "error",
]
TRUTHY = frozenset({"1", "true", "yes", "y", "priority"})


def _target_from_row(row: dict[str, str], line_number: int) -> Target | None:
    domain = (row.get("domain") or "").strip()
    url = (row.get("url") or "").strip()
    if not (domain or url):
        return None
    domain = domain or host_from_url(url)
    target_id = (row.get("id") or row.get("opportunityId") or "").strip() or f"row-{line_number}"
    priority = (row.get("is_priority") or row.get("isPriority") or "").strip().lower()
    return Target(id=target_id, domain=domain, url=url, is_priority=priority in TRUTHY)


def read_targets(path: str) -> list[Target]:
    """Read targets from a CSV file, or a plain list with one domain per line."""
    input_path = Path(path)
    if not input_path.exists():
        raise ConfigError(f"Targets file not found: {path}")
    if input_path.suffix.lower() != ".csv":
        return [Target(id=domain, domain=domain) for domain in load_lines_from_file(path)]

    targets: list[Target] = []
    with input_path.open("r", newline="", encoding="utf-8") as file_obj:
        reader = csv.DictReader(file_obj)
        if not reader.fieldnames or not {"domain", "url"} & set(reader.fieldnames):
            raise ConfigError(f"Targets CSV needs a 'domain' or 'url' column: {path}")
        for line_number, row in enumerate(reader, start=2):
            target = _target_from_row(row, line_number)
            if target is not None:
                targets.append(target)
    return targets


def write_rows(path: str, rows: list[dict[str, str]]) -> None:
    """Write report rows to CSV with stable schema."""
    output_path = Path(path)
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
