# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the in-memory entity store.
"""

import pytest
from datetime import datetime

from civic_api.services.memory_store import MemoryStore
from civic_api.services.store import BIDS, ISSUES, PROFILES, TENDERS, DuplicateRecord


class TestMemoryStore:
    """Entity store contract on the in-memory backend."""

    def test_create_and_get_return_copies(self, store):
        store.create(ISSUES, {"id": "i1", "title": "A", "location": {"area": "Central"}})
        fetched = store.get(ISSUES, "i1")
        fetched["title"] = "mutated"
        assert store.get(ISSUES, "i1")["title"] == "A"

    def test_duplicate_id_rejected(self, store):
        store.create(BIDS, {"id": "b1"})
        with pytest.raises(DuplicateRecord):
            store.create(BIDS, {"id": "b1"})

    def test_filters(self, store):
        store.create(ISSUES, {"id": "i1", "status": "pending", "location": {"area": "Central"}, "n": 1})
        store.create(ISSUES, {"id": "i2", "status": "closed", "location": {"area": "North"}, "n": 5})
        assert [d["id"] for d in store.find(ISSUES, {"location.area": "North"})] == ["i2"]
        assert [d["id"] for d in store.find(ISSUES, {"status": {"$ne": "closed"}})] == ["i1"]
        assert store.count(ISSUES, {"id": {"$in": ["i1", "i2"]}}) == 2
        assert store.count(ISSUES, {"n": {"$gte": 2}}) == 1

    def test_unsupported_operator(self, store):
        store.create(ISSUES, {"id": "i1"})
        with pytest.raises(ValueError):
            store.find(ISSUES, {"n": {"$regex": "x"}})

    def test_compare_and_set(self, store):
        store.create(TENDERS, {"id": "t1", "status": "available"})
        assert store.compare_and_set(TENDERS, "t1", "status", "awarded", {"status": "completed"}) is None
        updated = store.compare_and_set(TENDERS, "t1", "status", "available", {"status": "awarded"})
        assert updated["status"] == "awarded"
        assert store.compare_and_set(TENDERS, "missing", "status", "available", {}) is None

    def test_one_active_tender_per_issue(self, store):
        store.create(TENDERS, {"id": "t1", "source_issue_id": "i1", "status": "available"})
        with pytest.raises(DuplicateRecord):
            store.create(TENDERS, {"id": "t2", "source_issue_id": "i1", "status": "available"})
        store.update(TENDERS, "t1", {"status": "cancelled"})
        store.create(TENDERS, {"id": "t3", "source_issue_id": "i1", "status": "available"})

    def test_increment_upserts(self, store):
        store.increment(PROFILES, "u1", "points", 10, on_insert={"full_name": "Ana"})
        profile = store.increment(PROFILES, "u1", "points", 5)
        assert profile["points"] == 15
        assert profile["full_name"] == "Ana"

    def test_transaction_rolls_back(self, store):
        store.create(TENDERS, {"id": "t1", "status": "available"})

        def unit():
            store.update(TENDERS, "t1", {"status": "awarded"})
            store.create(BIDS, {"id": "b1"})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.run_in_transaction(unit)
        assert store.get(TENDERS, "t1")["status"] == "available"
        assert store.get(BIDS, "b1") is None

    def test_nested_units_join_outer(self, store):
        def inner():
            store.create(BIDS, {"id": "b1"})

        def outer():
            store.run_in_transaction(inner)
            raise RuntimeError("outer failed")

        with pytest.raises(RuntimeError):
            store.run_in_transaction(outer)
        assert store.get(BIDS, "b1") is None

    def test_paginate_sorts_newest_first(self, store):
        for day in range(1, 6):
            store.create(ISSUES, {"id": f"i{day}", "created_at": datetime(2024, 1, day)})
        page = store.paginate(ISSUES, page=2, page_size=2)
        assert [d["id"] for d in page.items] == ["i3", "i2"]
        assert page.total == 5
        assert page.total_pages == 3
        assert page.has_next and page.has_prev

    def test_health_check(self):
        assert MemoryStore().health_check()["status"] == "healthy"
