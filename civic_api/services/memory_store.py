# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
In-process entity store for development and tests.

A single re-entrant lock serializes every operation; a unit of work holds the
lock for its whole duration and restores a snapshot if the callback raises.
"""

import copy
import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from opentelemetry import trace

from ..models.base import utcnow
from ..models.entities import ACTIVE_TENDER_STATUSES
from .store import (
    EntityStore,
    DuplicateRecord,
    ISSUES,
    POSTS,
    PROFILES,
    TENDERS
)

T = TypeVar("T")

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

_ACTIVE_TENDER_VALUES = [status.value for status in ACTIVE_TENDER_STATUSES]


def _lookup(document: Dict[str, Any], field: str) -> Any:
    """Resolve a dotted field path."""
    value: Any = document
    for part in field.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(document: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    """Evaluate the supported MongoDB filter subset against a document."""
    for field, condition in (filters or {}).items():
        value = _lookup(document, field)
        if isinstance(condition, dict):
            for operator, operand in condition.items():
                if operator == "$in" and value not in operand:
                    return False
                if operator == "$ne" and value == operand:
                    return False
                if operator == "$gte" and (value is None or value < operand):
                    return False
                if operator not in ("$in", "$ne", "$gte"):
                    raise ValueError(f"Unsupported filter operator: {operator}")
        elif value != condition:
            return False
    return True


class MemoryStore(EntityStore):
    """Entity store backed by dicts."""

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._depth = threading.local()
        logger.info("In-memory entity store initialized")

    def _check_unique(self, collection: str, document: Dict[str, Any]) -> None:
        # Mirrors the partial unique index on tenders.source_issue_id
        if collection != TENDERS or not document.get("source_issue_id"):
            return
        if document.get("status") not in _ACTIVE_TENDER_VALUES:
            return
        for other in self._collections[TENDERS].values():
            if (
                other["id"] != document["id"]
                and other.get("source_issue_id") == document["source_issue_id"]
                and other.get("status") in _ACTIVE_TENDER_VALUES
            ):
                raise DuplicateRecord(TENDERS, f"source_issue_id={document['source_issue_id']}")

    def create(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            document = copy.deepcopy(document)
            if collection in self._collections and document["id"] in self._collections[collection]:
                raise DuplicateRecord(collection, f"id={document['id']}")
            self._check_unique(collection, document)
            self._collections[collection][document["id"]] = document
            logger.debug(f"Created document in {collection}: {document['id']}")
            return copy.deepcopy(document)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._collections[collection].get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._collections[collection].get(doc_id)
            if document is None:
                logger.warning(f"No document updated for {doc_id} in {collection}")
                return None
            candidate = {**document, **copy.deepcopy(updates)}
            self._check_unique(collection, candidate)
            document.update(copy.deepcopy(updates))
            return copy.deepcopy(document)

    def update_many(self, collection: str, filters: Dict[str, Any], updates: Dict[str, Any]) -> int:
        with self._lock:
            modified = 0
            for document in self._collections[collection].values():
                if _matches(document, filters):
                    document.update(copy.deepcopy(updates))
                    modified += 1
            return modified

    def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[Tuple[str, int]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        with self._lock:
            documents = [
                copy.deepcopy(document)
                for document in self._collections[collection].values()
                if _matches(document, filters)
            ]
        if sort is not None:
            field, direction = sort
            documents.sort(key=lambda d: d.get(field), reverse=direction < 0)
        if limit is not None:
            documents = documents[:limit]
        return documents

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for d in self._collections[collection].values() if _matches(d, filters))

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        with tracer.start_as_current_span("memory_store.compare_and_set") as span:
            span.set_attributes({"store.collection": collection, "store.field": field})
            with self._lock:
                document = self._collections[collection].get(doc_id)
                if document is None or document.get(field) != expected:
                    span.set_attribute("store.cas_hit", False)
                    return None
                document.update(copy.deepcopy(updates))
                span.set_attribute("store.cas_hit", True)
                return copy.deepcopy(document)

    def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int,
        on_insert: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        with self._lock:
            document = self._collections[collection].get(doc_id)
            if document is None:
                document = copy.deepcopy(on_insert or {})
                document["id"] = doc_id
                document[field] = 0
                self._collections[collection][doc_id] = document
            document[field] = document.get(field, 0) + amount
            document["updated_at"] = utcnow()
            return copy.deepcopy(document)

    def run_in_transaction(self, callback: Callable[[], T]) -> T:
        with self._lock:
            depth = getattr(self._depth, "value", 0)
            if depth > 0:
                return callback()

            snapshot = copy.deepcopy(self._collections)
            self._depth.value = 1
            try:
                with tracer.start_as_current_span("memory_store.transaction"):
                    return callback()
            except Exception:
                self._collections = snapshot
                logger.debug("Rolled back in-memory unit of work")
                raise
            finally:
                self._depth.value = 0

    def leaderboard_rows(self, since: datetime) -> List[Dict[str, Any]]:
        with self._lock:
            rows = []
            for profile in self._collections[PROFILES].values():
                if profile.get("points", 0) <= 0:
                    continue
                user_id = profile["id"]
                issues = self.count(ISSUES, {"reporter_id": user_id, "created_at": {"$gte": since}})
                posts = self.count(POSTS, {"author_id": user_id, "created_at": {"$gte": since}})
                rows.append({
                    "id": user_id,
                    "full_name": profile.get("full_name"),
                    "total_score": profile.get("points", 0),
                    "issues_reported": issues,
                    "posts_created": posts,
                    "badges": list(profile.get("badges") or []),
                })
            return rows

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "status": "healthy",
                "backend": "memory",
                "collections": {name: len(docs) for name, docs in self._collections.items()},
            }

    def clear(self) -> None:
        """Drop all data."""
        with self._lock:
            self._collections = defaultdict(dict)
