# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Entity stores, workflow operations and response formatting.
"""

from .store import EntityStore, PaginationResult, DuplicateRecord, StoreUnavailable
from .memory_store import MemoryStore
from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .workflow import WorkflowService
from .tendering import TenderService
from .leaderboard import LeaderboardService

__all__ = [
    "EntityStore",
    "PaginationResult",
    "DuplicateRecord",
    "StoreUnavailable",
    "MemoryStore",
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "WorkflowService",
    "TenderService",
    "LeaderboardService"
]
