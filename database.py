"""
Database Helper Functions

MongoDB helper functions used by the service modules.
Every helper takes an optional `session` so it can run inside `run_transaction`.
"""

from pymongo import MongoClient, ReturnDocument
from bson import ObjectId
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union
from pydantic import BaseModel

import config

_client = None
db = None

# Tests switch this off when running against a server without replica sets
USE_TRANSACTIONS = config.DATABASE_TRANSACTIONS

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def _ensure_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def to_object_id(_id: Any) -> Optional[ObjectId]:
    if isinstance(_id, ObjectId):
        return _id
    if isinstance(_id, str) and ObjectId.is_valid(_id):
        return ObjectId(_id)
    return None


# CRUD helpers

def create_document(collection_name: str, data: Union[BaseModel, dict], session=None) -> str:
    _ensure_db()
    payload = _to_dict(data)
    now = datetime.now(timezone.utc)
    payload['created_at'] = now
    payload['updated_at'] = now
    result = db[collection_name].insert_one(payload, session=session)
    return str(result.inserted_id)


def create_documents(collection_name: str, items: List[Union[BaseModel, dict]], session=None) -> List[str]:
    _ensure_db()
    if not items:
        return []
    now = datetime.now(timezone.utc)
    payloads = []
    for item in items:
        payload = _to_dict(item)
        payload['created_at'] = now
        payload['updated_at'] = now
        payloads.append(payload)
    result = db[collection_name].insert_many(payloads, session=session)
    return [str(_id) for _id in result.inserted_ids]


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None, session=None) -> List[dict]:
    _ensure_db()
    cursor = db[collection_name].find(filter_dict or {}, session=session)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return [serialize_doc(doc) for doc in cursor]


def get_document_by_id(collection_name: str, _id: str, session=None) -> Optional[dict]:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    doc = db[collection_name].find_one({"_id": oid}, session=session)
    return serialize_doc(doc) if doc else None


def update_document(collection_name: str, _id: str, update_data: Dict[str, Any], session=None) -> bool:
    """Set fields on one document. Returns True when the document exists."""
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return False
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = datetime.now(timezone.utc)
    result = db[collection_name].update_one({"_id": oid}, update, session=session)
    return result.matched_count > 0


def update_documents(collection_name: str, filter_dict: dict, update_data: Dict[str, Any], session=None) -> int:
    _ensure_db()
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = datetime.now(timezone.utc)
    result = db[collection_name].update_many(filter_dict, update, session=session)
    return result.modified_count


def increment_field(collection_name: str, _id: str, field: str, amount: int = 1, session=None) -> Optional[dict]:
    """Atomically `$inc` a counter and return the updated document."""
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    doc = db[collection_name].find_one_and_update(
        {"_id": oid},
        {"$inc": {field: amount}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    return serialize_doc(doc) if doc else None


def delete_document(collection_name: str, _id: str, session=None) -> bool:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return False
    result = db[collection_name].delete_one({"_id": oid}, session=session)
    return result.deleted_count > 0


def delete_documents(collection_name: str, filter_dict: dict, session=None) -> int:
    _ensure_db()
    result = db[collection_name].delete_many(filter_dict, session=session)
    return result.deleted_count


def count_documents(collection_name: str, filter_dict: Optional[dict] = None, session=None) -> int:
    _ensure_db()
    return db[collection_name].count_documents(filter_dict or {}, session=session)


# Transactions

def run_transaction(callback: Callable[[Any], Any]) -> Any:
    """
    Run `callback(session)` so that all its writes commit together.

    Without transaction support the callback gets `session=None` and its
    writes are applied one by one.
    """
    _ensure_db()
    if not USE_TRANSACTIONS or _client is None:
        return callback(None)
    with _client.start_session() as session:
        return session.with_transaction(callback)


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d
