# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB entity store with connection pooling and session-scoped transactions.
"""

import os
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError
)
from bson import ObjectId
from opentelemetry import trace

from ..models.entities import ACTIVE_TENDER_STATUSES
from .store import (
    EntityStore,
    DuplicateRecord,
    PaginationResult,
    StoreUnavailable,
    ISSUES,
    TENDERS,
    BIDS,
    WORK_PROGRESS,
    ASSIGNMENTS,
    PROFILES,
    POSTS,
    AREAS,
    DEPARTMENTS
)

T = TypeVar("T")

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def _doc_id(doc_id: str) -> Union[ObjectId, str]:
    """Stored _id for an entity id. Profile ids come from the identity provider and may not be ObjectIds."""
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        return ObjectId(doc_id)
    return doc_id


def _from_mongo(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert _id to a string id."""
    if document is None:
        return None
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return document


def _to_query(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    query = dict(filters or {})
    if "id" in query:
        condition = query.pop("id")
        if isinstance(condition, dict) and "$in" in condition:
            condition = {**condition, "$in": [_doc_id(i) for i in condition["$in"]]}
        elif isinstance(condition, str):
            condition = _doc_id(condition)
        query["_id"] = condition
    return query


class MongoDBService(EntityStore):
    """MongoDB entity store with connection pooling."""

    def __init__(
        self,
        connection_string: str = None,
        database_name: str = None,
        max_pool_size: int = None,
        min_pool_size: int = None,
        server_selection_timeout_ms: int = None
    ):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/civic_resolution_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'civic_resolution_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None
        self._local = threading.local()

        # Connection pool settings
        self.max_pool_size = max_pool_size or int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = min_pool_size or int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = server_selection_timeout_ms or int(
            os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000')
        )

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except ConnectionFailure as e:
                self._client = None
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise StoreUnavailable(f"MongoDB is unreachable: {e}") from e

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def _session(self) -> Optional[ClientSession]:
        return getattr(self._local, "session", None)

    @contextmanager
    def _operation(self, operation: str, collection: str):
        """Trace a store call and translate driver errors."""
        with tracer.start_as_current_span(f"mongodb.{operation}") as span:
            span.set_attributes({
                "db.system": "mongodb",
                "db.name": self.database_name,
                "db.mongodb.collection": collection,
                "db.in_transaction": self._session() is not None
            })
            try:
                yield span
            except DuplicateKeyError as e:
                logger.warning(f"Duplicate key error in {collection}: {e}")
                raise DuplicateRecord(collection, str(e)) from e
            except ConnectionFailure as e:
                span.record_exception(e)
                logger.error(
                    f"MongoDB unavailable during {operation}",
                    extra={"collection": collection, "error": str(e)}
                )
                raise StoreUnavailable(f"MongoDB is unreachable: {e}") from e

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            # Ping the database
            result = self.client.admin.command('ping')

            # Get server info
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'backend': 'mongodb',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except (ConnectionFailure, StoreUnavailable) as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'backend': 'mongodb',
                'error': str(e),
                'database': self.database_name
            }

    # CRUD operations

    def create(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new document."""
        with self._operation("create", collection):
            stored = dict(document)
            stored["_id"] = _doc_id(stored.pop("id")) if "id" in stored else ObjectId()
            result = self.get_collection(collection).insert_one(stored, session=self._session())
            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return _from_mongo(dict(stored))

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Find a single document by ID."""
        with self._operation("get", collection):
            document = self.get_collection(collection).find_one(
                {"_id": _doc_id(doc_id)},
                session=self._session()
            )
            if document is None:
                logger.debug(f"Document {doc_id} not found in {collection}")
            return _from_mongo(document)

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a document by ID and return the new version."""
        with self._operation("update", collection):
            document = self.get_collection(collection).find_one_and_update(
                {"_id": _doc_id(doc_id)},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
                session=self._session()
            )
            if document is None:
                logger.warning(f"No document updated for {doc_id} in {collection}")
            return _from_mongo(document)

    def update_many(self, collection: str, filters: Dict[str, Any], updates: Dict[str, Any]) -> int:
        with self._operation("update_many", collection):
            result = self.get_collection(collection).update_many(
                _to_query(filters),
                {"$set": updates},
                session=self._session()
            )
            return result.modified_count

    def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[Tuple[str, int]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Find documents with optional filters."""
        with self._operation("find", collection):
            cursor = self.get_collection(collection).find(_to_query(filters), session=self._session())
            if sort is not None:
                cursor = cursor.sort(*sort)
            if limit is not None:
                cursor = cursor.limit(limit)
            documents = [_from_mongo(doc) for doc in cursor]
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count documents with optional filters."""
        with self._operation("count", collection):
            return self.get_collection(collection).count_documents(
                _to_query(filters),
                session=self._session()
            )

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
        with self._operation("paginate", collection):
            query = _to_query(filters)
            collection_obj = self.get_collection(collection)

            # Calculate skip value
            skip = (page - 1) * page_size

            total = collection_obj.count_documents(query, session=self._session())
            cursor = (
                collection_obj.find(query, session=self._session())
                .sort(sort_by, sort_order)
                .skip(skip)
                .limit(page_size)
            )
            documents = [_from_mongo(doc) for doc in cursor]

            logger.debug(f"Paginated {len(documents)} documents from {collection} (page {page})")
            return PaginationResult(documents, total, page, page_size)

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Update a document only if ``field`` still holds ``expected``."""
        with self._operation("compare_and_set", collection) as span:
            document = self.get_collection(collection).find_one_and_update(
                {"_id": _doc_id(doc_id), field: expected},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
                session=self._session()
            )
            span.set_attribute("store.cas_hit", document is not None)
            return _from_mongo(document)

    def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        amount: int,
        on_insert: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        with self._operation("increment", collection):
            set_on_insert = {
                k: v for k, v in (on_insert or {}).items()
                if k not in (field, "id", "_id", "updated_at")
            }
            update: Dict[str, Any] = {
                "$inc": {field: amount},
                "$currentDate": {"updated_at": True}
            }
            if set_on_insert:
                update["$setOnInsert"] = set_on_insert
            document = self.get_collection(collection).find_one_and_update(
                {"_id": _doc_id(doc_id)},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=self._session()
            )
            return _from_mongo(document)

    def run_in_transaction(self, callback: Callable[[], T]) -> T:
        """
        Run callback inside a MongoDB transaction.

        ``ClientSession.with_transaction`` retries the callback on
        TransientTransactionError and the commit on
        UnknownTransactionCommitResult. Requires a replica set.
        """
        if self._session() is not None:
            return callback()

        with self._operation("transaction", "*"):
            with self.client.start_session() as session:
                self._local.session = session
                try:
                    return session.with_transaction(lambda _session: callback())
                finally:
                    self._local.session = None

    def leaderboard_rows(self, since: datetime) -> List[Dict[str, Any]]:
        """Profiles with points, joined with their issue and post counts since a date."""

        def count_since(source: str, owner_field: str) -> Dict[str, Any]:
            return {
                "$lookup": {
                    "from": source,
                    "let": {"uid": {"$toString": "$_id"}},
                    "pipeline": [
                        {"$match": {"$expr": {"$and": [
                            {"$eq": [f"${owner_field}", "$$uid"]},
                            {"$gte": ["$created_at", since]}
                        ]}}},
                        {"$count": "n"}
                    ],
                    "as": f"{source}_count"
                }
            }

        pipeline = [
            {"$match": {"points": {"$gt": 0}}},
            count_since(ISSUES, "reporter_id"),
            count_since(POSTS, "author_id"),
            {"$project": {
                "_id": 0,
                "id": {"$toString": "$_id"},
                "full_name": "$full_name",
                "total_score": "$points",
                "issues_reported": {"$ifNull": [{"$arrayElemAt": [f"${ISSUES}_count.n", 0]}, 0]},
                "posts_created": {"$ifNull": [{"$arrayElemAt": [f"${POSTS}_count.n", 0]}, 0]},
                "badges": {"$ifNull": ["$badges", []]}
            }}
        ]

        with self._operation("aggregate", PROFILES):
            results = list(self.get_collection(PROFILES).aggregate(pipeline, session=self._session()))
            logger.debug(f"Leaderboard aggregation returned {len(results)} rows")
            return results

    # Index management

    def create_indexes(self) -> None:
        """Create query and constraint indexes for all collections."""
        logger.info("Creating MongoDB indexes...")
        with self._operation("create_indexes", "*"):
            issues = self.get_collection(ISSUES)
            issues.create_index([("workflow_stage", ASCENDING), ("created_at", DESCENDING)])
            issues.create_index([("assigned_department_id", ASCENDING), ("created_at", DESCENDING)])
            issues.create_index([("location.area", ASCENDING), ("location.ward", ASCENDING)])
            issues.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
            issues.create_index([("reporter_id", ASCENDING), ("created_at", DESCENDING)])

            # One non-cancelled tender per issue
            tenders = self.get_collection(TENDERS)
            tenders.create_index(
                "source_issue_id",
                unique=True,
                name="uniq_active_tender_per_issue",
                partialFilterExpression={
                    "status": {"$in": [status.value for status in ACTIVE_TENDER_STATUSES]}
                }
            )
            tenders.create_index([("department_id", ASCENDING), ("status", ASCENDING)])
            tenders.create_index([("awarded_contractor_id", ASCENDING), ("status", ASCENDING)])

            bids = self.get_collection(BIDS)
            bids.create_index([("tender_id", ASCENDING), ("status", ASCENDING)])
            bids.create_index([("contractor_id", ASCENDING), ("created_at", DESCENDING)])

            progress = self.get_collection(WORK_PROGRESS)
            progress.create_index([("tender_id", ASCENDING), ("created_at", ASCENDING)])
            progress.create_index([("tender_id", ASCENDING), ("progress_type", ASCENDING), ("status", ASCENDING)])

            assignments = self.get_collection(ASSIGNMENTS)
            assignments.create_index([("issue_id", ASCENDING), ("created_at", ASCENDING)])

            profiles = self.get_collection(PROFILES)
            profiles.create_index([("points", DESCENDING)])

            posts = self.get_collection(POSTS)
            posts.create_index([("author_id", ASCENDING), ("created_at", DESCENDING)])

            areas = self.get_collection(AREAS)
            areas.create_index([("name", ASCENDING), ("ward", ASCENDING)])

            departments = self.get_collection(DEPARTMENTS)
            departments.create_index("category")

        logger.info("MongoDB indexes created successfully")


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
