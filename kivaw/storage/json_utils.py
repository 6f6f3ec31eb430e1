"""JSON column helpers that never raise."""

import json
from datetime import datetime
from typing import Any

from kivaw.logging import get_logger

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value) if isinstance(value, (set, frozenset)) else list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def safe_json_dumps(data: Any, default: str = "{}") -> str:
    """Serialize data to a compact JSON string, returning `default` on failure.

    Datetimes are written as ISO strings and sets as sorted lists.
    """
    if data is None:
        return default

    try:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=_json_default)
    except (TypeError, ValueError, OverflowError) as e:
        logger.warning(f"Failed to serialize JSON: {e}")
        return default


def safe_json_loads(text: str | None, default: dict | list | None = None) -> Any:
    """Parse a JSON string, returning `default` (an empty dict if unset) on failure."""
    if default is None:
        default = {}

    if not text:
        return default

    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse JSON: {e}")
        return default


def load_str_list(text: str | None) -> list[str]:
    """Parse a JSON array column into a list of non-empty strings.

    Scalars are wrapped; anything unparseable becomes an empty list.
    """
    data = safe_json_loads(text, default=[])
    if isinstance(data, str):
        data = [data]
    if not isinstance(data, list):
        return []
    return [str(value).strip() for value in data if value is not None and str(value).strip()]
