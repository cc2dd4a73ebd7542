"""
MongoDB connection and document helpers.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; `require_db`
then raises DatabaseUnavailable, which the app answers with "Database not available".
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)


class DatabaseUnavailable(RuntimeError):
    pass


def _connect():
    if not config.DATABASE_URL or not config.DATABASE_NAME:
        logger.warning("DATABASE_URL or DATABASE_NAME not set, running without a database")
        return None
    client = MongoClient(config.DATABASE_URL)
    return client[config.DATABASE_NAME]


db = _connect()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_db():
    if db is None:
        raise DatabaseUnavailable("Database not available")
    return db


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    database = require_db()
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    database = require_db()
    return list(database[collection_name].find(filter_dict or {}))
