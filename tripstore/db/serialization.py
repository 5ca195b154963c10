"""JSON wire/persisted format helpers.

Documents are stored as JSON with ISO-8601 timestamps. On read only strings
in the exact ``YYYY-MM-DDTHH:mm:ss.sssZ`` shape are turned back into
``datetime`` values; anything else (plain dates, other offsets) stays a string.
"""

from __future__ import annotations

import copy
import json
import re
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel

ISO_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:mm:ss.sssZ`` (naive means UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)


def revive_dates(value: Any) -> Any:
    if isinstance(value, str):
        if not ISO_TIMESTAMP_RE.match(value):
            return value
        try:
            return parse_timestamp(value)
        except ValueError:
            # Timestamp-shaped text that is not a real date, e.g. Feb 30
            return value
    if isinstance(value, dict):
        return {k: revive_dates(v) for k, v in value.items()}
    if isinstance(value, list):
        return [revive_dates(v) for v in value]
    return value


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any, *, pretty: bool = False) -> str:
    return json.dumps(value, default=_encode, ensure_ascii=False, indent=2 if pretty else None)


def loads(text: str) -> Any:
    return revive_dates(json.loads(text))


def canonical(value: Any) -> str:
    """Canonical JSON form used for structural equality.

    Keys are sorted and dates normalised to ISO strings, so two values compare
    equal iff they would persist identically.
    """
    return json.dumps(value, default=_encode, sort_keys=True, separators=(",", ":"))


def to_jsonable(value: Any) -> Any:
    """Plain JSON-compatible copy (datetimes rendered as ISO strings)."""
    return json.loads(canonical(value))


def clone(value: Any) -> Any:
    return copy.deepcopy(value)
