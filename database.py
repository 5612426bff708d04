"""
MongoDB access for the storefront API.

The client is created once at import time when DATABASE_URL and DATABASE_NAME
are set. Route handlers receive the database through ``get_db`` so tests can
swap in an in-memory one.
"""
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import config
from errors import InternalError
from logging_config import get_logger
from schemas import utcnow

logger = get_logger(__name__)

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


def get_db():
    """FastAPI dependency yielding the configured database."""
    if db is None:
        raise InternalError("Database is not configured")
    return db


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None) -> str:
    """
    Insert a document with created/updated timestamps and return its id.

    A dict is stamped in place, so the caller sees the stored timestamps and
    the ``_id`` pymongo assigns.
    """
    database = database if database is not None else get_db()
    data_dict = data.model_dump() if isinstance(data, BaseModel) else data
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    database=None,
) -> List[dict]:
    database = database if database is not None else get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database) -> None:
    """Create the indexes the aggregates rely on for uniqueness and ordering."""
    database["user"].create_index("email", unique=True)
    database["user"].create_index("user_id", unique=True)
    database["product"].create_index("product_id", unique=True)
    database["product"].create_index("category")
    database["cart"].create_index("user_id", unique=True)
    database["wishlist"].create_index("user_id", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    logger.debug("indexes_ensured", database=database.name)
