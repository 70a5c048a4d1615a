# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Entity store contract shared by the MongoDB and in-process backends.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from ..domain.errors import CustomException

T = TypeVar("T")

# Collection names
ISSUES = "issues"
TENDERS = "tenders"
BIDS = "bids"
WORK_PROGRESS = "work_progress"
ASSIGNMENTS = "assignments"
PROFILES = "profiles"
POSTS = "posts"
AREAS = "areas"
DEPARTMENTS = "departments"


class StoreUnavailable(CustomException):
    """The entity store could not be reached. The only retryable error."""

    title = "Service Unavailable"
    retryable = True

    def __init__(self, message: str):
        super().__init__(message, 503, "service-unavailable")


class DuplicateRecord(Exception):
    """A unique constraint rejected a write."""

    def __init__(self, collection: str, detail: str):
        super().__init__(f"Duplicate record in {collection}: {detail}")
        self.collection = collection


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


class EntityStore(ABC):
    """
    Durable record storage for the resolution engine.

    Documents are plain dicts keyed by ``id``. Filters use the MongoDB query
    subset ``{field: value}``, ``$in``, ``$ne`` and ``$gte``.
    """

    @abstractmethod
    def create(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document and return it. Raises DuplicateRecord on unique violations."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply field updates and return the updated document, or None if missing."""

    @abstractmethod
    def update_many(self, collection: str, filters: Dict[str, Any], updates: Dict[str, Any]) -> int:
        """Apply field updates to every matching document and return the count."""

    @abstractmethod
    def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[Tuple[str, int]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Find documents matching filters."""

    @abstractmethod
    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching filters."""

    @abstractmethod
    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically apply updates if ``field`` still equals ``expected``.

        Returns:
            The updated document, or None when the expectation no longer holds
        """

    @abstractmethod
    def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int,
        on_insert: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Atomically add to a numeric field, creating the document from on_insert if missing."""

    @abstractmethod
    def run_in_transaction(self, callback: Callable[[], T]) -> T:
        """
        Run callback as one unit of work.

        Every store call made by the callback on this thread joins the unit
        of work. Any exception rolls all of it back and propagates. Nested
        calls join the outer unit of work.
        """

    @abstractmethod
    def leaderboard_rows(self, since: datetime) -> List[Dict[str, Any]]:
        """
        Raw per-user activity rows for profiles with points > 0.

        Each row carries id, full_name, total_score, issues_reported,
        posts_created and badges, with counters limited to records created
        at or after ``since``.
        """

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """Report backend health."""

    def paginate(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "created_at",
        sort_order: int = -1
    ) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        total = self.count(collection, filters)
        documents = self.find(collection, filters, sort=(sort_by, sort_order))
        skip = (page - 1) * page_size
        return PaginationResult(documents[skip:skip + page_size], total, page, page_size)

    # Filtered queries

    def find_by_stage(self, stage: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        query = dict(filters or {})
        query["workflow_stage"] = stage
        return self.find(ISSUES, query, sort=("created_at", -1))

    def find_by_department(
        self,
        collection: str,
        department_id: str,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        field = "assigned_department_id" if collection == ISSUES else "department_id"
        query = dict(filters or {})
        query[field] = department_id
        return self.find(collection, query, sort=("created_at", -1))

    def find_by_tender(
        self,
        collection: str,
        tender_id: str,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        query = dict(filters or {})
        query["tender_id"] = tender_id
        return self.find(collection, query, sort=("created_at", 1))
