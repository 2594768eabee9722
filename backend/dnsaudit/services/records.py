"""
Tolerant accessors for raw controller JSON records.

Controller exports drift between firmware versions: fields go missing, change
type, or arrive wrapped in {"data": [...]}.  These helpers never raise; a
field of the wrong type reads as absent.
"""
from typing import Any, Optional


def unwrap_data_array(payload: Any) -> list[dict]:
    """Return the list of record dicts from a bare list or a {"data": [...]} wrapper."""
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def get_str(record: Any, key: str) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    value = record.get(key)
    if isinstance(value, str):
        return value
    # Ports and ids occasionally arrive as bare numbers
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def get_bool(record: Any, key: str, default: bool = False) -> bool:
    if not isinstance(record, dict):
        return default
    value = record.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return default


def get_int(record: Any, key: str, default: int = 0) -> int:
    if not isinstance(record, dict):
        return default
    value = record.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def get_dict(record: Any, key: str) -> dict:
    if not isinstance(record, dict):
        return {}
    value = record.get(key)
    return value if isinstance(value, dict) else {}


def get_str_list(record: Any, key: str) -> list[str]:
    if not isinstance(record, dict):
        return []
    value = record.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v]


def get_int_list(record: Any, key: str) -> list[int]:
    if not isinstance(record, dict):
        return []
    value = record.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, int) and not isinstance(v, bool)]
