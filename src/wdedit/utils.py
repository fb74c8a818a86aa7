import json
from datetime import datetime, timezone
from pathlib import Path

import ijson

from . import config


def is_qid(value):
    """Return True if the value looks like a Wikidata item id (Q*)."""
    if not isinstance(value, str):
        return False
    return bool(config.QID_EXACT_PATTERN.fullmatch(value.strip()))


def is_mid(value):
    """Return True if the value looks like a Commons MediaInfo id (M*)."""
    if not isinstance(value, str):
        return False
    return bool(config.MID_EXACT_PATTERN.fullmatch(value.strip()))


def utc_now_iso():
    """Return a UTC timestamp string in ISO 8601 format (second precision)."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def strip_file_namespace(file_ref):
    """Drop a leading File: namespace prefix (any case, or the Image: alias) from a file reference."""
    return config.FILE_NAMESPACE_PATTERN.sub("", file_ref, count=1)


def format_file_property_value(file_ref):
    """
    Format a file name as accepted by wbcreateclaim for a commonsMedia snak.
    The value parameter is JSON, so the bare name is quoted.
    """
    return json.dumps(strip_file_namespace(file_ref), ensure_ascii=False)


def format_item_value(entity_id):
    """Return the wbcreateclaim JSON value for a wikibase-item snak."""
    return json.dumps({"entity-type": "item", "numeric-id": int(entity_id.strip()[1:])})


def mediainfo_id(pageid):
    """MediaInfo entity id for a Commons page id."""
    return f"{config.MEDIAINFO_PREFIX}{pageid}"


def normalize_labels(labels):
    """Return labels as an ordered list of (language, text) pairs."""
    if not labels:
        return []
    if hasattr(labels, "items"):
        labels = labels.items()
    return [(str(language), str(text)) for language, text in labels]


def read_json(path):
    """Read JSON from disk and return the decoded payload."""
    with open(Path(path), "r", encoding="utf-8") as fh:
        return json.load(fh)


def iter_jsonl(path):
    """Yield objects from a JSONL file."""
    with open(Path(path), "r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            yield json.loads(line)


def iter_records(path):
    """
    Supports:
      - .jsonl: one object per line
      - .json: either a JSON array (streamed with ijson) or a single object
    """
    path = Path(path)
    if path.suffix == ".jsonl":
        yield from iter_jsonl(path)
        return

    with open(path, "r", encoding="utf-8") as fh:
        start = fh.read(2048)
    first = next((c for c in start if not c.isspace()), "")

    if first == "[":
        with open(path, "rb") as fh:
            for obj in ijson.items(fh, "item", use_float=True):
                yield obj
        return

    obj = read_json(path)
    if isinstance(obj, list):
        yield from obj
    else:
        yield obj
