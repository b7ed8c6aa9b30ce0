"""
Database helpers

The MongoDB client is created lazily and handed to request handlers through the
``get_db`` dependency, so tests (or another deployment) can swap the database
without touching module state.
"""
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import config
from errors import NotFound


@lru_cache(maxsize=1)
def get_client() -> MongoClient:
    return MongoClient(config.DATABASE_URL)


def get_db() -> Database:
    return get_client()[config.DATABASE_NAME]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: str, not_found: str = "Not found") -> ObjectId:
    """Parse a path id; a malformed id can never match a document, so it is a 404."""
    if not id_str:
        raise NotFound(not_found)
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise NotFound(not_found)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = now_utc()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize(doc: Optional[Dict[str, Any]], id_key: str = "id") -> Optional[Dict[str, Any]]:
    """Copy a stored document into a JSON-friendly dict with its id under ``id_key``."""
    if doc is None:
        return None
    d = {**doc}
    if "_id" in d:
        d[id_key] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
        elif isinstance(v, datetime):
            d[k] = v.isoformat()
    return d
