from typing import Any, Dict
from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId
from datetime import datetime
import time

from .errors import InvalidDocumentId


def to_jsonable(obj: Any) -> Any:
    """Recursively convert Mongo objects (e.g., ObjectId) to JSON-serializable types."""
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, Decimal128):
        # Convert Decimal128 to string to preserve precision in JSON
        return str(obj.to_decimal())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(i) for i in obj]
    return obj


def from_jsonable(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Convert _id string to ObjectId if present, leave others as-is."""
    d = dict(doc)
    _id = d.get("_id")
    if isinstance(_id, str) and ObjectId.is_valid(_id):
        d["_id"] = ObjectId(_id)
    return d


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidDocumentId(value)


def now_ms() -> int:
    return int(time.time() * 1000)


def to_int(value: Any, default: int) -> int:
    """Lenient int coercion: anything unparseable falls back to ``default``."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
