"""Tests for wishlist operations against the document store."""

import pytest

import wishlist
from errors import Conflict, NotFound


class TestWishlistOperations:
    def test_add_creates_wishlist(self, db):
        wishlist.add(db, "user-1", "PRD-10001")
        assert [i.product_id for i in wishlist.get(db, "user-1").items] == ["PRD-10001"]

    def test_duplicate_add_conflicts_without_duplicating(self, db):
        wishlist.add(db, "user-1", "PRD-10001")
        with pytest.raises(Conflict):
            wishlist.add(db, "user-1", "PRD-10001")

        doc = db["wishlist"].find_one({"user_id": "user-1"})
        assert len(doc["items"]) == 1

    def test_remove(self, db):
        wishlist.add(db, "user-1", "PRD-10001")
        wishlist.remove(db, "user-1", "PRD-10001")
        assert wishlist.get(db, "user-1").items == []

    def test_remove_absent_entry_raises_not_found(self, db):
        wishlist.add(db, "user-1", "PRD-10001")
        with pytest.raises(NotFound):
            wishlist.remove(db, "user-1", "PRD-10002")

    def test_remove_without_wishlist_raises_not_found(self, db):
        with pytest.raises(NotFound):
            wishlist.remove(db, "user-1", "PRD-10001")

    def test_clear_existing(self, db):
        wishlist.add(db, "user-1", "PRD-10001")
        wishlist.clear(db, "user-1")
        assert db["wishlist"].find_one({"user_id": "user-1"})["items"] == []

    def test_clear_without_wishlist_raises_not_found(self, db):
        with pytest.raises(NotFound):
            wishlist.clear(db, "user-1")

    def test_get_missing_returns_empty(self, db):
        assert wishlist.get(db, "user-1").items == []
