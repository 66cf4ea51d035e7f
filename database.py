"""
Database helpers

Shared MongoDB handle plus small helpers for writing and reading documents.
Collections are addressed by name: "user", "product", "order".
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "marvel_store")

_client = None
db = None

if DATABASE_URL:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]
    logger.info(f"MongoDB client configured for database '{DATABASE_NAME}'")
else:
    logger.warning("DATABASE_URL not set, database is unavailable")


def _require_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with createdAt/updatedAt stamps and return its id."""
    database = _require_db()
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
