"""
MongoDB access.

One pooled MongoClient is opened at application startup and closed at
shutdown. Request handlers borrow the database handle through the get_db
dependency instead of reaching for a module global.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database as MongoDatabase

import config
from errors import Internal, InvalidArgument, NotFound

logger = logging.getLogger(__name__)

# Collection names
USERS = "users"
GUIDE_APPLICATIONS = "guideApplications"
PACKAGES = "packages"
BOOKINGS = "bookings"
STORIES = "stories"


class Database:
    """Owns the client for the lifetime of the application."""

    def __init__(self, url: str = None, name: str = None):
        self.url = url or config.DATABASE_URL
        self.name = name or config.DATABASE_NAME
        self.client: Optional[MongoClient] = None

    def connect(self) -> MongoDatabase:
        if self.client is None:
            self.client = MongoClient(self.url)
            logger.info("MongoDB client opened for database %s", self.name)
        return self.client[self.name]

    def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("MongoDB client closed")

    @property
    def db(self) -> Optional[MongoDatabase]:
        if self.client is None:
            return None
        return self.client[self.name]


database = Database()


def get_db() -> MongoDatabase:
    db = database.db
    if db is None:
        raise Internal("Database not available")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidArgument(f"Invalid id: {value}")


def serialize(value: Any) -> Any:
    """Make a stored document JSON friendly (ObjectId -> str)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def create_document(db: MongoDatabase, collection_name: str, data) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    doc.setdefault("createdAt", now())
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: MongoDatabase, collection_name: str, filter_dict: Optional[Dict] = None,
                  limit: Optional[int] = None, sort: Optional[List] = None) -> List[Dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(d) for d in cursor]


def get_document(db: MongoDatabase, collection_name: str, doc_id: str, message: str = "Not found") -> Dict:
    doc = db[collection_name].find_one({"_id": parse_object_id(doc_id)})
    if not doc:
        raise NotFound(message)
    return serialize(doc)


def ensure_indexes(db: MongoDatabase):
    """One user record per email."""
    db[USERS].create_index("email", unique=True)
