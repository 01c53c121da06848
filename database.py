"""
MongoDB access for the portal.

Each schema in schemas.py maps to a collection named after the lowercase
class name (``student``, ``marks``, ``timetable``...). Routes get the database
through the ``get_db`` dependency so tests can swap it out.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from errors import StoreError, ValidationError
from logging_config import get_logger
from settings import settings

logger = get_logger("database")

_client: Optional[MongoClient] = None
db: Optional[Database] = None
_has_connected = False


def connect() -> Optional[Database]:
    """Create the client once. The server is not contacted until first use."""
    global _client, db
    if db is not None:
        return db
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL is not set, starting without a database")
        return None
    _client = MongoClient(
        settings.DATABASE_URL,
        serverSelectionTimeoutMS=settings.DATABASE_TIMEOUT_MS,
        tz_aware=True,
    )
    db = _client[settings.DATABASE_NAME]
    logger.info(f"MongoDB client created for database '{settings.DATABASE_NAME}'")
    return db


def close() -> None:
    global _client, db, _has_connected
    if _client is not None:
        _client.close()
    _client = None
    db = None
    _has_connected = False


def get_db() -> Database:
    """FastAPI dependency returning the configured database"""
    if db is None:
        raise StoreError("Database not configured")
    return db


def get_optional_db() -> Optional[Database]:
    return db


def ping(database: Database) -> None:
    database.client.admin.command("ping")


def connection_state(database: Optional[Database]) -> str:
    """``connected``, ``connecting`` (never reached yet) or ``disconnected``"""
    global _has_connected
    if database is None:
        return "disconnected"
    try:
        ping(database)
    except ServerSelectionTimeoutError:
        return "disconnected" if _has_connected else "connecting"
    except PyMongoError:
        return "disconnected"
    _has_connected = True
    return "connected"


def ensure_indexes(database: Database) -> None:
    database["student"].create_index("student_id", unique=True)
    database["student"].create_index("email", unique=True, sparse=True)
    database["teacher"].create_index("teacher_id", unique=True)
    database["teacher"].create_index("email", unique=True, sparse=True)
    database["admin"].create_index("admin_id", unique=True)
    database["session"].create_index("token_id", unique=True)
    database["session"].create_index("expires_at")
    database["class"].create_index("name", unique=True)
    database["attendance"].create_index([("student_id", ASCENDING), ("date", ASCENDING)], unique=True)
    database["marks"].create_index(
        [("student_id", ASCENDING), ("subject", ASCENDING), ("exam_type", ASCENDING), ("semester", ASCENDING)],
        unique=True,
    )
    database["timetable"].create_index("class_id", unique=True)
    database["audit"].create_index([("timestamp", DESCENDING), ("entity_type", ASCENDING), ("action", ASCENDING)])


# -------------------- Helpers --------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes come back naive unless the client is tz aware"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_start(value: Union[date, datetime, None] = None) -> datetime:
    if value is None:
        value = utcnow().date()
    elif isinstance(value, datetime):
        value = as_utc(value).date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_range(start: Union[date, datetime], end: Union[date, datetime, None] = None) -> Dict[str, datetime]:
    """Filter bound covering whole days, ``end`` inclusive"""
    return {"$gte": day_start(start), "$lt": day_start(end if end is not None else start) + timedelta(days=1)}


def ci_exact(value: str) -> Dict[str, str]:
    """Case-insensitive exact match on a string field"""
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def ci_contains(value: str) -> Dict[str, str]:
    return {"$regex": re.escape(value), "$options": "i"}


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid ID")


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    doc.pop("password_hash", None)
    return _plain(doc)


def to_document(data: Union[BaseModel, dict]) -> dict:
    """Model dump with dates widened to datetimes, the only type BSON stores"""
    if isinstance(data, BaseModel):
        data = data.model_dump()

    def widen(value: Any) -> Any:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return day_start(value)
        if isinstance(value, dict):
            return {k: widen(v) for k, v in value.items()}
        if isinstance(value, list):
            return [widen(v) for v in value]
        return value

    return {k: widen(v) for k, v in data.items()}


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id"""
    doc = to_document(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort: Optional[List[tuple]] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(doc) for doc in cursor]
