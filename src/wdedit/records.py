from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

import jsonschema

from . import config
from .utils import is_qid, iter_records

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "annotation_request.schema.json"


class RecordValidationError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class AnnotationRecord:
    entity_id: str
    file: str
    labels: list[tuple[str, str]] = field(default_factory=list)
    title: Optional[str] = None
    location_matches: Optional[bool] = None
    record_id: Optional[str] = None

    def preferences(self) -> dict[str, Any]:
        """Upload-flow preferences for this record; absent fields reset to the upload defaults."""
        return {
            config.PREF_TITLE: self.title if self.title is not None else "",
            config.PREF_LOCATION_MATCHES: self.location_matches if self.location_matches is not None else True,
        }


def load_schema(path: Path | str = SCHEMA_PATH) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_against_schema(obj: dict[str, Any], schema: dict[str, Any]) -> None:
    validator = jsonschema.Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(obj), key=lambda e: len(list(e.absolute_path)))
    if errors:
        error = errors[0]
        details = {
            "path": list(error.absolute_path),
            "schema_path": list(error.absolute_schema_path),
            "message": error.message,
        }
        raise RecordValidationError("SCHEMA_VIOLATION", "Schema validation failed.", details)


def _parse_input(obj: Any) -> dict[str, Any]:
    if isinstance(obj, str):
        try:
            obj = json.loads(obj)
        except json.JSONDecodeError as exc:
            details = {"message": exc.msg, "line": exc.lineno, "column": exc.colno}
            raise RecordValidationError("INVALID_JSON", "Input is not valid JSON.", details)
    if not isinstance(obj, dict):
        raise RecordValidationError("SCHEMA_VIOLATION", "Record must be an object.", {"value": obj})
    return obj


def _minimal_normalize(obj: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(obj)
    entity_id = normalized.get("entity_id")
    if isinstance(entity_id, str):
        normalized["entity_id"] = entity_id.strip().upper()
    file_ref = normalized.get("file")
    if isinstance(file_ref, str):
        normalized["file"] = file_ref.strip()
    return normalized


def _normalize_labels(labels: Any) -> list[tuple[str, str]]:
    if not labels:
        return []
    if isinstance(labels, dict):
        pairs = list(labels.items())
    else:
        pairs = [(entry["language"], entry["text"]) for entry in labels]
    normalized = []
    for idx, (language, text) in enumerate(pairs):
        language = language.strip().lower()
        if not config.LANGUAGE_CODE_PATTERN.match(language):
            raise RecordValidationError(
                "INVALID_VALUE", "Invalid language code.", {"field": f"labels[{idx}].language", "value": language}
            )
        text = text.strip()
        if not text:
            raise RecordValidationError("INVALID_VALUE", "Empty label text.", {"field": f"labels[{idx}].text"})
        normalized.append((language, text))
    return normalized


def normalize_record(obj: Any, schema: Optional[dict[str, Any]] = None) -> AnnotationRecord:
    parsed = _parse_input(obj)
    minimal = _minimal_normalize(parsed)
    validate_against_schema(minimal, schema or load_schema())

    entity_id = minimal["entity_id"]
    if not is_qid(entity_id):
        raise RecordValidationError("INVALID_ID", "Invalid QID.", {"field": "entity_id", "value": entity_id})

    return AnnotationRecord(
        entity_id=entity_id,
        file=minimal["file"],
        labels=_normalize_labels(minimal.get("labels")),
        title=minimal.get("title"),
        location_matches=minimal.get("location_matches"),
        record_id=minimal.get("id"),
    )


def load_records(path: Path | str, schema: Optional[dict[str, Any]] = None) -> Iterator[AnnotationRecord]:
    """Yield normalized records from a .jsonl or .json file; stops at the first invalid one."""
    schema_obj = schema or load_schema()
    for idx, raw in enumerate(iter_records(path)):
        try:
            yield normalize_record(raw, schema=schema_obj)
        except RecordValidationError as exc:
            exc.details.setdefault("record_index", idx)
            raise
