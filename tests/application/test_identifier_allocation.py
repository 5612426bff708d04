"""Tests for sequential identifier allocation."""

import pytest

import identifiers
from errors import ValidationError


class TestAllocate:
    def test_first_user_identifier_starts_at_base(self, db):
        assert identifiers.allocate(db, "user") == "USR-10001"

    def test_identifiers_increment(self, db):
        first = identifiers.allocate(db, "product")
        second = identifiers.allocate(db, "product")
        assert (first, second) == ("PRD-10001", "PRD-10002")

    def test_kinds_have_independent_counters(self, db):
        identifiers.allocate(db, "user")
        identifiers.allocate(db, "user")
        assert identifiers.allocate(db, "product") == "PRD-10001"
        assert identifiers.allocate(db, "user") == "USR-10003"

    def test_many_allocations_are_distinct(self, db):
        allocated = [identifiers.allocate(db, "user") for _ in range(50)]
        assert len(set(allocated)) == 50

    def test_allocation_uses_a_single_counter_document(self, db):
        for _ in range(3):
            identifiers.allocate(db, "user")
        assert db["counter"].count_documents({}) == 1
        assert db["counter"].find_one({"_id": "user"})["seq"] == 3

    def test_unknown_kind_rejected(self, db):
        with pytest.raises(ValidationError):
            identifiers.allocate(db, "order")

    def test_format_identifier_pads_to_five_digits(self):
        assert identifiers.format_identifier("user", 42) == "USR-00042"
