"""General helper functions"""

from datetime import datetime, timezone
from typing import Any
from bson import ObjectId


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision"""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_number(value: Any) -> bool:
    """True for int/float values, excluding bool"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def split_csv(value: Any) -> list:
    """Split a comma-separated query value into a list, dropping blanks"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def serialize_objectids(data: Any) -> Any:
    """
    Recursively convert all BSON ObjectIds to strings for JSON serialization.

    Handles:
    - Single ObjectId values
    - Nested dictionaries
    - Lists of items

    Example:
        >>> doc = {"_id": ObjectId("..."), "assignment": {"by": ObjectId("...")}}
        >>> serialize_objectids(doc)
        {"_id": "...", "assignment": {"by": "..."}}
    """
    if isinstance(data, ObjectId):
        return str(data)
    elif isinstance(data, dict):
        return {key: serialize_objectids(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [serialize_objectids(item) for item in data]
    elif isinstance(data, datetime):
        return data.isoformat()
    return data
