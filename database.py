"""
Database Helper Functions

MongoDB helpers wrapped in an explicit data-access context. A `Database`
is built once at startup and handed to every service function, so tests
can substitute an in-memory database.
"""

import logging
from datetime import datetime, timezone
from typing import Union, Optional, Dict, Any, List

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

logger = logging.getLogger(__name__)


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def to_object_id(_id: Union[str, ObjectId]) -> Optional[ObjectId]:
    """Parse an id, returning None when it is not a valid ObjectId."""
    if isinstance(_id, ObjectId):
        return _id
    try:
        return ObjectId(_id)
    except (InvalidId, TypeError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d


class Database:
    """Thin wrapper around a pymongo database handle."""

    def __init__(self, db, client: Optional[MongoClient] = None):
        self.db = db
        self.client = client

    def __getitem__(self, collection_name: str):
        return self.db[collection_name]

    @property
    def name(self) -> str:
        return self.db.name

    def list_collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def ensure_indexes(self) -> None:
        principal = self.db["principal"]
        principal.create_index([("role", ASCENDING), ("email", ASCENDING)], unique=True)
        principal.create_index([("role", ASCENDING), ("phone", ASCENDING)], unique=True)
        principal.create_index("store_id")
        self.db["store"].create_index([("is_active", ASCENDING), ("city", ASCENDING)])
        self.db["product"].create_index([("store_id", ASCENDING), ("category", ASCENDING)])
        self.db["cart"].create_index("customer_id", unique=True)
        self.db["cart"].create_index("items.item_id")

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    # CRUD helpers

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        payload = _to_dict(data)
        now = utcnow()
        payload['created_at'] = now
        payload['updated_at'] = now
        result = self.db[collection_name].insert_one(payload)
        return str(result.inserted_id)

    def get_documents(self, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
        cursor = self.db[collection_name].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(int(limit))
        return [serialize_doc(doc) for doc in cursor]

    def find_document(self, collection_name: str, filter_dict: dict) -> Optional[dict]:
        return serialize_doc(self.db[collection_name].find_one(filter_dict))

    def get_document_by_id(self, collection_name: str, _id: str, extra: Optional[dict] = None) -> Optional[dict]:
        oid = to_object_id(_id)
        if oid is None:
            return None
        return self.find_document(collection_name, {"_id": oid, **(extra or {})})

    def update_document(self, collection_name: str, _id: str, update_data: Dict[str, Any], extra: Optional[dict] = None) -> bool:
        oid = to_object_id(_id)
        if oid is None:
            return False
        update = {"$set": _to_dict(update_data)}
        update["$set"]["updated_at"] = utcnow()
        result = self.db[collection_name].update_one({"_id": oid, **(extra or {})}, update)
        return result.matched_count > 0

    def delete_document(self, collection_name: str, _id: str, extra: Optional[dict] = None) -> bool:
        oid = to_object_id(_id)
        if oid is None:
            return False
        result = self.db[collection_name].delete_one({"_id": oid, **(extra or {})})
        return result.deleted_count > 0


def connect(database_url: Optional[str], database_name: Optional[str]) -> Optional[Database]:
    """Open the process-wide connection pool, or return None if unconfigured."""
    if not (database_url and database_name):
        logger.warning("DATABASE_URL or DATABASE_NAME not set; database unavailable")
        return None
    client = MongoClient(database_url)
    database = Database(client[database_name], client=client)
    database.ensure_indexes()
    logger.info("Connected to MongoDB database %s", database_name)
    return database
