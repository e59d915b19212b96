from pathlib import Path

import pytest

from contact_discovery.errors import ConfigError
from contact_discovery.io_csv import CSV_FIELDS, read_targets, write_rows
from contact_discovery.models import Target


def test_read_targets_from_csv(tmp_path: Path) -> None:
    source = tmp_path / "targets.csv"
    source.write_text(
        "id,domain,url,is_priority\n"
        "a1,brand.io,,yes\n"
        ",,https://shop.other.io/about,\n"
        ",,,\n",
        encoding="utf-8",
    )
    assert read_targets(str(source)) == [
        Target(id="a1", domain="brand.io", url="", is_priority=True),
        Target(id="row-3", domain="shop.other.io", url="https://shop.other.io/about"),
    ]


def test_read_targets_accepts_camel_case_columns(tmp_path: Path) -> None:
    source = tmp_path / "targets.csv"
    source.write_text("opportunityId,domain,isPriority\nopp-9,brand.io,true\n", encoding="utf-8")
    assert read_targets(str(source)) == [Target(id="opp-9", domain="brand.io", is_priority=True)]


def test_read_targets_from_plain_domain_list(tmp_path: Path) -> None:
    source = tmp_path / "domains.txt"
    source.write_text("brand.io\n\nother.io\n", encoding="utf-8")
    assert [target.id for target in read_targets(str(source))] == ["brand.io", "other.io"]


def test_read_targets_rejects_missing_file_and_bad_header(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        read_targets(str(tmp_path / "missing.csv"))

    source = tmp_path / "targets.csv"
    source.write_text("name,notes\nBrand,hello\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        read_targets(str(source))


def test_write_rows_creates_csv_with_schema(tmp_path: Path) -> None:
    output = tmp_path / "out.csv"
    write_rows(
        str(output),
        [
            {
                "id": "a1",
                "domain": "brand.io",
                "state": "done",
                "emails": "hello@brand.io",
                "social_profiles": "https://www.linkedin.com/company/brand",
                "contact_forms": "",
                "phone_numbers": "",
                "contact_person": "",
                "quality": "High",
                "techniques": "email-pattern;social-profile",
                "pages_scanned": "1",
                "early_stopped": "yes",
                "last_updated": "2026-01-01T00:00:00Z",
                "error": "",
            }
        ],
    )
    text = output.read_text(encoding="utf-8")
    assert text.splitlines()[0] == ",".join(CSV_FIELDS)
    assert "hello@brand.io" in text
