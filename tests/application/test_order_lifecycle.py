"""Tests for placing, reading and cancelling orders."""

from datetime import datetime, timezone

import pytest
from bson import ObjectId

import cart
import orders
from errors import InvalidState, NotFound, ValidationError
from orders import OrderStatus

ITEMS = [
    {"product_id": "P1", "quantity": 2, "price": 10},
    {"product_id": "P2", "quantity": 1, "price": 5},
]


class TestPlace:
    def test_place_prices_order_and_starts_pending(self, db, shipping_address):
        order = orders.place(db, "user-1", ITEMS, shipping_address)

        assert order.total == 25
        assert order.status == OrderStatus.PENDING.value
        assert order.order_id is not None
        assert db["order"].count_documents({"user_id": "user-1"}) == 1

    def test_place_clears_cart(self, db, shipping_address):
        cart.add_item(db, "user-1", "P9", 3, 7.0)
        orders.place(db, "user-1", ITEMS, shipping_address)
        assert cart.get(db, "user-1").items == []

    def test_place_without_cart_succeeds(self, db, shipping_address):
        orders.place(db, "user-1", ITEMS, shipping_address)
        assert cart.get(db, "user-1").items == []

    def test_place_leaves_other_users_cart_alone(self, db, shipping_address):
        cart.add_item(db, "user-2", "P9", 1, 7.0)
        orders.place(db, "user-1", ITEMS, shipping_address)
        assert len(cart.get(db, "user-2").items) == 1

    def test_empty_items_rejected(self, db, shipping_address):
        with pytest.raises(ValidationError):
            orders.place(db, "user-1", [], shipping_address)
        assert db["order"].count_documents({}) == 0

    def test_client_price_is_recorded_as_sent(self, db, shipping_address):
        order = orders.place(db, "user-1", [{"product_id": "P1", "quantity": 1, "price": 0.01}], shipping_address)
        assert order.items[0].price == 0.01


class TestReads:
    def test_list_for_user_newest_first(self, db, shipping_address):
        first = orders.place(db, "user-1", ITEMS, shipping_address)
        db["order"].update_one({"_id": ObjectId(first.order_id)}, {"$set": {"created_at": datetime(2020, 1, 1, tzinfo=timezone.utc)}})
        second = orders.place(db, "user-1", ITEMS[:1], shipping_address)
        orders.place(db, "user-2", ITEMS, shipping_address)

        listed = orders.list_for_user(db, "user-1")
        assert [o.order_id for o in listed] == [second.order_id, first.order_id]

    def test_list_for_user_without_orders(self, db):
        assert orders.list_for_user(db, "user-1") == []

    def test_get_detail(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        found = orders.get_detail(db, "user-1", placed.order_id)

        assert found.total == 25
        assert found.shipping_address.city == "Springfield"

    def test_get_detail_of_other_users_order_is_not_found(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        with pytest.raises(NotFound):
            orders.get_detail(db, "user-2", placed.order_id)

    @pytest.mark.parametrize("order_id", ["not-an-id", str(ObjectId())])
    def test_get_detail_unknown_id_is_not_found(self, db, order_id):
        with pytest.raises(NotFound):
            orders.get_detail(db, "user-1", order_id)


class TestCancel:
    def test_cancel_pending(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        cancelled = orders.cancel(db, "user-1", placed.order_id)

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert orders.get_detail(db, "user-1", placed.order_id).status == OrderStatus.CANCELLED.value

    def test_second_cancel_raises_invalid_state(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        orders.cancel(db, "user-1", placed.order_id)
        with pytest.raises(InvalidState):
            orders.cancel(db, "user-1", placed.order_id)

    def test_cancel_shipped_raises_invalid_state_and_keeps_status(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        orders.transition(db, "user-1", placed.order_id, "processing")
        orders.transition(db, "user-1", placed.order_id, "shipped")

        with pytest.raises(InvalidState):
            orders.cancel(db, "user-1", placed.order_id)
        assert orders.get_detail(db, "user-1", placed.order_id).status == OrderStatus.SHIPPED.value

    def test_cancel_other_users_order_is_not_found(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        with pytest.raises(NotFound):
            orders.cancel(db, "user-2", placed.order_id)
        assert orders.get_detail(db, "user-1", placed.order_id).status == OrderStatus.PENDING.value


class TestTransition:
    def test_full_path_to_delivered(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        for status in ("processing", "shipped", "delivered"):
            orders.transition(db, "user-1", placed.order_id, status)
        assert orders.get_detail(db, "user-1", placed.order_id).status == "delivered"

    def test_unknown_status_rejected(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        with pytest.raises(ValidationError):
            orders.transition(db, "user-1", placed.order_id, "lost")

    def test_skipping_a_step_is_invalid(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        with pytest.raises(InvalidState):
            orders.transition(db, "user-1", placed.order_id, "delivered")

    def test_stale_status_write_is_rejected(self, db, shipping_address):
        placed = orders.place(db, "user-1", ITEMS, shipping_address)
        stale = orders.get_detail(db, "user-1", placed.order_id)
        orders.cancel(db, "user-1", placed.order_id)

        stale.transition_to("processing")
        with pytest.raises(InvalidState):
            orders._apply(db, "user-1", stale, "pending")
        assert orders.get_detail(db, "user-1", placed.order_id).status == "cancelled"
