"""
Wishlist aggregate: a per-user set of product references.

Adding a product that is already present is rejected rather than ignored.
Unlike the cart, clearing a wishlist that was never created is an error.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from errors import Conflict, NotFound
from logging_config import get_logger
from schemas import WishlistItem, utcnow

logger = get_logger(__name__)

COLLECTION = "wishlist"


class Wishlist(BaseModel):
    """
    Products a shopper saved for later
    Collection: "wishlist"
    """
    user_id: str
    items: List[WishlistItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def create(cls, user_id):
        now = utcnow()
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def contains(self, product_id) -> bool:
        return any(i.product_id == str(product_id) for i in self.items)

    def add(self, product_id):
        if self.contains(product_id):
            raise Conflict("Product already in wishlist")
        now = utcnow()
        self.items.append(WishlistItem(product_id=str(product_id), added_at=now))
        self.updated_at = now

    def remove(self, product_id):
        item = next((i for i in self.items if i.product_id == str(product_id)), None)
        if item is None:
            raise NotFound("Product not found in wishlist")
        self.items.remove(item)
        self.updated_at = utcnow()

    def clear(self):
        self.items = []
        self.updated_at = utcnow()

    def to_view(self) -> dict:
        return {
            "user_id": self.user_id,
            "items": [item.model_dump(mode="json") for item in self.items],
            "count": len(self.items),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def _load(db, user_id) -> Optional[Wishlist]:
    doc = db[COLLECTION].find_one({"user_id": str(user_id)})
    if doc is None:
        return None
    return Wishlist.model_validate(doc)


def _save(db, wishlist: Wishlist) -> None:
    db[COLLECTION].replace_one({"user_id": wishlist.user_id}, wishlist.model_dump(), upsert=True)


def get(db, user_id) -> Wishlist:
    return _load(db, user_id) or Wishlist(user_id=str(user_id))


def add(db, user_id, product_id) -> Wishlist:
    wishlist = _load(db, user_id) or Wishlist.create(str(user_id))
    wishlist.add(product_id)
    _save(db, wishlist)
    logger.info("wishlist_item_added", user_id=str(user_id), product_id=str(product_id))
    return wishlist


def remove(db, user_id, product_id) -> Wishlist:
    wishlist = _load(db, user_id)
    if wishlist is None:
        raise NotFound("Wishlist not found")
    wishlist.remove(product_id)
    _save(db, wishlist)
    logger.info("wishlist_item_removed", user_id=str(user_id), product_id=str(product_id))
    return wishlist


def clear(db, user_id) -> Wishlist:
    wishlist = _load(db, user_id)
    if wishlist is None:
        raise NotFound("Wishlist not found")
    wishlist.clear()
    _save(db, wishlist)
    logger.info("wishlist_cleared", user_id=str(user_id))
    return wishlist
