from typing import Any

from bson import ObjectId


def to_object_id(value: Any) -> Any:
    """Return an ObjectId for 24-char hex ids, the raw value otherwise."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def normalize_id(doc: dict) -> dict:
    doc["_id"] = str(doc.get("_id"))
    return doc
