"""
Catalog lookup and product management.

Products are addressed by their sequential ``product_id`` (PRD-NNNNN), never
by the storage key. Any authenticated caller may create, edit, delete or rate
products; there is no role check.
"""
import math
import re
from typing import Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument

import identifiers
from database import create_document, get_documents
from errors import NotFound, ValidationError
from logging_config import get_logger
from schemas import Product, utcnow

logger = get_logger(__name__)

COLLECTION = "product"

SORTABLE_FIELDS = ("price", "name", "created_at", "rating")
MAX_PAGE_SIZE = 100
UPDATABLE_FIELDS = ("name", "description", "price", "category", "images", "stock", "featured")


def _public(doc: dict) -> dict:
    """Strip the storage key and render timestamps as ISO strings."""
    product = {k: v for k, v in doc.items() if k != "_id"}
    for key in ("created_at", "updated_at"):
        if product.get(key) is not None:
            product[key] = product[key].isoformat()
    return product


def create_product(db, data: dict) -> dict:
    product_id = identifiers.allocate(db, "product")
    stock = int(data.get("stock") or 0)
    product = Product(
        product_id=product_id,
        name=data["name"],
        description=data.get("description"),
        price=data["price"],
        category=(data.get("category") or "general").lower(),
        images=data.get("images") or [],
        stock=stock,
        in_stock=stock > 0,
        featured=bool(data.get("featured")),
    )
    doc = product.model_dump()
    create_document(COLLECTION, doc, database=db)
    logger.info("product_created", product_id=product_id, price=product.price)
    return _public(doc)


def get_product(db, product_id) -> dict:
    doc = db[COLLECTION].find_one({"product_id": str(product_id)})
    if doc is None:
        raise NotFound("Product not found")
    return _public(doc)


def lookup_price(db, product_id):
    """Return ``(price, name)`` for a product that can currently be bought."""
    product = get_product(db, product_id)
    if not product.get("in_stock", True):
        raise ValidationError("Product is out of stock")
    return product["price"], product.get("name")


def _page(db, query: dict, page: int, limit: int, sort_by: str, order: str) -> dict:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORTABLE_FIELDS)}")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'")

    total = db[COLLECTION].count_documents(query)
    cursor = (
        db[COLLECTION]
        .find(query)
        .sort(sort_by, ASCENDING if order == "asc" else DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "products": [_public(doc) for doc in cursor],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
    }


def list_products(db, page=1, limit=10, sort_by="created_at", order="desc", category: Optional[str] = None) -> dict:
    query = {"category": category.lower()} if category else {}
    return _page(db, query, page, limit, sort_by, order)


def search_products(db, q: str, page=1, limit=10, sort_by="created_at", order="desc") -> dict:
    q = (q or "").strip()
    if not q:
        raise ValidationError("Search query is required")
    pattern = {"$regex": re.escape(q), "$options": "i"}
    query = {"$or": [{"name": pattern}, {"description": pattern}, {"category": pattern}]}
    return _page(db, query, page, limit, sort_by, order)


def featured_products(db, limit=10) -> list:
    docs = get_documents(COLLECTION, {"featured": True}, limit=limit, sort=[("rating", DESCENDING)], database=db)
    return [_public(doc) for doc in docs]


def new_arrivals(db, limit=10) -> list:
    docs = get_documents(COLLECTION, limit=limit, sort=[("created_at", DESCENDING)], database=db)
    return [_public(doc) for doc in docs]


def update_product(db, product_id, changes: dict) -> dict:
    updates = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
    if not updates:
        raise ValidationError("No updatable fields supplied")
    if "category" in updates:
        updates["category"] = updates["category"].lower()
    if "stock" in updates:
        updates["in_stock"] = updates["stock"] > 0
    updates["updated_at"] = utcnow()

    doc = db[COLLECTION].find_one_and_update(
        {"product_id": str(product_id)},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Product not found")
    logger.info("product_updated", product_id=str(product_id), fields=sorted(updates))
    return _public(doc)


def delete_product(db, product_id) -> None:
    result = db[COLLECTION].delete_one({"product_id": str(product_id)})
    if result.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info("product_deleted", product_id=str(product_id))


def rate_product(db, product_id, rating: int) -> dict:
    """
    Fold one rating into the product's average.

    The exact ``rating_sum`` and ``rating_count`` move together in one atomic
    ``$inc``; the rounded ``rating`` is derived from them. Only the write for
    the latest count lands, so a slower request never overwrites a newer
    average.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be a whole number between 1 and 5")

    doc = db[COLLECTION].find_one_and_update(
        {"product_id": str(product_id)},
        {"$inc": {"rating_sum": rating, "rating_count": 1}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Product not found")

    average = round(doc["rating_sum"] / doc["rating_count"], 2)
    db[COLLECTION].update_one(
        {"product_id": str(product_id), "rating_count": doc["rating_count"]},
        {"$set": {"rating": average}},
    )
    doc["rating"] = average
    logger.info("product_rated", product_id=str(product_id), rating=rating, rating_count=doc["rating_count"])
    return _public(doc)
