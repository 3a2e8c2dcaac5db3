"""
MongoDB access.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured so the app
can still start; request handlers obtain the database through `get_db`.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import Config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if Config.DATABASE_URL and Config.DATABASE_NAME:
    client = MongoClient(Config.DATABASE_URL)
    db = client[Config.DATABASE_NAME]


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database unavailable")
    return db


def create_document(database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping createdAt/updatedAt. Returns the new id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True, exclude_none=True)
    else:
        doc = {k: v for k, v in data.items() if v is not None}
    now = datetime.now(timezone.utc)
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    res = database[collection_name].insert_one(doc)
    return str(res.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort_field: str = "createdAt") -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {}).sort(sort_field, DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database):
    database["admin"].create_index("adminId", unique=True)
    database["faculty"].create_index("facultyId", unique=True)
    database["student"].create_index([("class", ASCENDING), ("rollNo", ASCENDING)], unique=True)
    database["student"].create_index("mobileNo", unique=True, sparse=True)
    database["subject"].create_index([("code", ASCENDING), ("className", ASCENDING)], unique=True)
    database["attendance"].create_index(
        [("subject", ASCENDING), ("date", ASCENDING), ("student", ASCENDING)], unique=True
    )
    database["fees"].create_index([("className", ASCENDING), ("createdAt", DESCENDING)])
    logger.info("Database indexes ensured")
