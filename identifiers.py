"""
Sequential, human-readable identifiers for users and products.

Each kind owns a counter document in the ``counter`` collection. A single
``find_one_and_update`` with ``$inc`` both reserves and returns the next value,
so concurrent registrations never receive the same identifier. That guarantee
is the server's document-level atomicity; in-memory test doubles do not
provide it.
"""
from pymongo import ReturnDocument

from errors import ValidationError
from logging_config import get_logger

logger = get_logger(__name__)

COUNTER_COLLECTION = "counter"
BASE = 10001

PREFIXES = {
    "user": "USR",
    "product": "PRD",
}


def format_identifier(kind: str, number: int) -> str:
    return f"{PREFIXES[kind]}-{number:05d}"


def allocate(db, kind: str) -> str:
    """Reserve the next identifier for ``kind`` ("user" or "product")."""
    if kind not in PREFIXES:
        raise ValidationError(f"Unknown identifier kind: {kind}")

    counter = db[COUNTER_COLLECTION].find_one_and_update(
        {"_id": kind},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    identifier = format_identifier(kind, BASE - 1 + counter["seq"])
    logger.debug("identifier_allocated", kind=kind, identifier=identifier)
    return identifier
