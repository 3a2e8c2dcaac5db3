from datetime import date, datetime, timezone
from typing import Any, Dict

from bson import ObjectId
from fastapi import HTTPException

PRIVATE_FIELDS = ("passwordHash",)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id format")


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        # pymongo hands back naive datetimes that are already UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {k: v for k, v in doc.items() if k not in PRIVATE_FIELDS}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return {k: _jsonable(v) for k, v in d.items()}
