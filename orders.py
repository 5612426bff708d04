"""
Order lifecycle: turns a list of priced lines into an immutable order.

State machine:
    pending -> processing -> shipped -> delivered
    pending, processing -> cancelled
    delivered, cancelled are terminal

Once placed, an order only ever changes its status. It is the record of what
was paid for each line, whatever the catalog says later.

Line prices are taken from the caller as given and are not re-read from the
catalog at placement time.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError
from pymongo import DESCENDING

import cart
from database import create_document, get_documents
from errors import InvalidState, NotFound, ValidationError
from logging_config import get_logger
from schemas import OrderItem, ShippingAddress, utcnow

logger = get_logger(__name__)

COLLECTION = "order"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.PROCESSING}


class Order(BaseModel):
    """
    Orders placed by shoppers
    Collection: "order"
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    order_id: Optional[str] = None
    user_id: str
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def create(cls, user_id, items, shipping_address):
        """Build a pending order whose total is the sum of its frozen lines."""
        if not items:
            raise ValidationError("Order must contain at least one item")

        try:
            lines = [item if isinstance(item, OrderItem) else OrderItem.model_validate(item) for item in items]
            if not isinstance(shipping_address, ShippingAddress):
                shipping_address = ShippingAddress.model_validate(shipping_address)
        except SchemaError as exc:
            raise ValidationError(f"Invalid order: {exc.errors()[0]['msg']}")

        now = utcnow()
        return cls(
            user_id=str(user_id),
            items=lines,
            total=round(sum(line.price * line.quantity for line in lines), 2),
            shipping_address=shipping_address,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_document(cls, doc):
        return cls.model_validate({**doc, "order_id": str(doc["_id"])})

    def can_transition_to(self, target) -> bool:
        return OrderStatus(target) in _VALID_TRANSITIONS[OrderStatus(self.status)]

    def transition_to(self, target):
        target = OrderStatus(target)
        current = OrderStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidState(f"Cannot change order status from {current.value} to {target.value}")
        self.status = target.value
        self.updated_at = utcnow()

    def cancel(self):
        current = OrderStatus(self.status)
        if current not in _CANCELLABLE_STATES:
            raise InvalidState(f"Order cannot be cancelled once it is {current.value}")
        self.transition_to(OrderStatus.CANCELLED)

    def to_view(self) -> dict:
        return self.model_dump(mode="json")


def _object_id(order_id) -> Optional[ObjectId]:
    try:
        return ObjectId(str(order_id))
    except (InvalidId, TypeError):
        return None


def _owned_by(user_id, order_id) -> dict:
    oid = _object_id(order_id)
    if oid is None:
        raise NotFound("Order not found")
    return {"_id": oid, "user_id": str(user_id)}


def place(db, user_id, items, shipping_address) -> Order:
    """Persist a new pending order and empty the user's cart."""
    order = Order.create(user_id, items, shipping_address)
    order.order_id = create_document(COLLECTION, order.model_dump(exclude={"order_id"}), database=db)

    cart.clear(db, user_id)

    logger.info(
        "order_placed",
        order_id=order.order_id,
        user_id=str(user_id),
        total=order.total,
        lines=len(order.items),
    )
    return order


def list_for_user(db, user_id) -> List[Order]:
    docs = get_documents(COLLECTION, {"user_id": str(user_id)}, sort=[("created_at", DESCENDING)], database=db)
    return [Order.from_document(doc) for doc in docs]


def get_detail(db, user_id, order_id) -> Order:
    doc = db[COLLECTION].find_one(_owned_by(user_id, order_id))
    if doc is None:
        raise NotFound("Order not found")
    return Order.from_document(doc)


def _apply(db, user_id, order: Order, previous_status) -> None:
    result = db[COLLECTION].update_one(
        {**_owned_by(user_id, order.order_id), "status": previous_status},
        {"$set": {"status": order.status, "updated_at": order.updated_at}},
    )
    if result.matched_count == 0:
        raise InvalidState("Order was modified by another request")


def cancel(db, user_id, order_id) -> Order:
    order = get_detail(db, user_id, order_id)
    previous = order.status
    order.cancel()
    _apply(db, user_id, order, previous)
    logger.info("order_cancelled", order_id=order.order_id, user_id=str(user_id), previous_status=previous)
    return order


def transition(db, user_id, order_id, status) -> Order:
    """Move an order one step along the state machine."""
    try:
        target = OrderStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown order status: {status}")

    order = get_detail(db, user_id, order_id)
    previous = order.status
    order.transition_to(target)
    _apply(db, user_id, order, previous)
    logger.info("order_status_changed", order_id=order.order_id, previous_status=previous, status=order.status)
    return order
