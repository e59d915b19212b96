"""JSON document output keyed by target id."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .models import ContactInfo, TargetResult


def contact_documents(results: list[TargetResult]) -> dict[str, dict[str, Any]]:
    return {
        result.target.id: result.contact_info.to_dict()
        for result in sorted(results, key=lambda item: item.target.id)
    }


def write_contact_documents(path: str, results: list[TargetResult]) -> None:
    """Write one canonical ContactInfo document per target id."""
    write_documents(path, contact_documents(results))


def write_documents(path: str, documents: dict[str, dict[str, Any]]) -> None:
    output_path = Path(path)
    with output_path.open("w", encoding="utf-8") as file_obj:
        json.dump(documents, file_obj, indent=2, ensure_ascii=False)
        file_obj.write("\n")


def read_documents(path: str) -> dict[str, Any]:
    """Load a JSON object keyed by target id; values are left as raw dicts."""
    input_path = Path(path)
    try:
        payload = json.loads(input_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"JSON file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Expected a JSON object keyed by target id in {path}")
    return payload


def read_contact_documents(path: str) -> dict[str, ContactInfo]:
    """Load canonical documents written by a previous run."""
    return {
        key: ContactInfo.from_dict(value)
        for key, value in read_documents(path).items()
        if isinstance(value, dict)
    }
