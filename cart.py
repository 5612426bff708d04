"""
Cart aggregate: one mutable line-item collection per user.

A cart holds at most one line per product. Adding a product that is already
in the cart increments that line's quantity and keeps the price captured by
the first add. Lines never hold a quantity below one; setting a quantity to
zero or less removes the line instead.

Persistence is load, mutate in memory, replace. Two concurrent writes to the
same user's cart can lose an update.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from errors import NotFound, ValidationError
from logging_config import get_logger
from schemas import CartItem, utcnow

logger = get_logger(__name__)

COLLECTION = "cart"


def _require_whole(quantity):
    # Lines are mutated in place without model validation, so check here.
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be a whole number")


class Cart(BaseModel):
    """
    A shopper's pending purchase lines
    Collection: "cart"
    """
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def create(cls, user_id):
        now = utcnow()
        return cls(user_id=user_id, created_at=now, updated_at=now)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> float:
        return round(sum(item.price * item.quantity for item in self.items), 2)

    def find_item(self, product_id) -> Optional[CartItem]:
        return next((i for i in self.items if i.product_id == str(product_id)), None)

    def add_item(self, product_id, quantity, price, name=None):
        """Add a product, or increase its quantity if it is already present."""
        _require_whole(quantity)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if price is None or price < 0:
            raise ValidationError("Price must be zero or more")

        now = utcnow()
        existing = self.find_item(product_id)
        if existing:
            existing.quantity += quantity
        else:
            self.items.append(
                CartItem(
                    product_id=str(product_id),
                    name=name,
                    quantity=quantity,
                    price=price,
                    added_at=now,
                )
            )
        self.updated_at = now

    def set_item_quantity(self, product_id, quantity):
        _require_whole(quantity)
        item = self.find_item(product_id)
        if item is None:
            raise NotFound("Product not found in cart")

        if quantity <= 0:
            self.items.remove(item)
        else:
            item.quantity = quantity
        self.updated_at = utcnow()

    def remove_item(self, product_id):
        item = self.find_item(product_id)
        if item is None:
            raise NotFound("Product not found in cart")
        self.items.remove(item)
        self.updated_at = utcnow()

    def clear(self):
        self.items = []
        self.updated_at = utcnow()

    def to_view(self, user=None) -> dict:
        """JSON-ready representation, optionally enriched with the owner's display fields."""
        view = {
            "user_id": self.user_id,
            "items": [item.model_dump(mode="json") for item in self.items],
            "item_count": self.item_count,
            "subtotal": self.subtotal,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if user:
            view["user"] = {"name": user.get("name"), "email": user.get("email")}
        return view


def _load(db, user_id) -> Optional[Cart]:
    doc = db[COLLECTION].find_one({"user_id": str(user_id)})
    if doc is None:
        return None
    return Cart.model_validate(doc)


def _save(db, cart: Cart) -> None:
    db[COLLECTION].replace_one({"user_id": cart.user_id}, cart.model_dump(), upsert=True)


def get(db, user_id) -> Cart:
    """Return the user's cart, or an unsaved empty one if none exists yet."""
    return _load(db, user_id) or Cart(user_id=str(user_id))


def add_item(db, user_id, product_id, quantity, unit_price, name=None) -> Cart:
    cart = _load(db, user_id) or Cart.create(str(user_id))
    cart.add_item(product_id, quantity, unit_price, name=name)
    _save(db, cart)
    logger.info("cart_item_added", user_id=str(user_id), product_id=str(product_id), quantity=quantity)
    return cart


def set_item_quantity(db, user_id, product_id, quantity) -> Cart:
    cart = _load(db, user_id)
    if cart is None:
        raise NotFound("Cart not found")
    cart.set_item_quantity(product_id, quantity)
    _save(db, cart)
    logger.info("cart_quantity_set", user_id=str(user_id), product_id=str(product_id), quantity=quantity)
    return cart


def remove_item(db, user_id, product_id) -> Cart:
    cart = _load(db, user_id)
    if cart is None:
        raise NotFound("Cart not found")
    cart.remove_item(product_id)
    _save(db, cart)
    logger.info("cart_item_removed", user_id=str(user_id), product_id=str(product_id))
    return cart


def clear(db, user_id) -> Cart:
    """Empty the cart. A user without a cart already has an empty one."""
    cart = _load(db, user_id)
    if cart is None:
        return Cart(user_id=str(user_id))
    cart.clear()
    _save(db, cart)
    logger.info("cart_cleared", user_id=str(user_id))
    return cart
