# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the civic issue resolution engine.
"""

# Base models
from .base import BaseEntity, BaseEntityCreate, generate_object_id, utcnow

# Enumerations
from .enums import (
    IssueCategory,
    IssuePriority,
    IssueStatus,
    WorkflowStage,
    AssignmentType,
    TenderStatus,
    BidStatus,
    ProgressType,
    ProgressStatus,
    UserRole,
    LeaderboardPeriod
)

# Core entities
from .entities import (
    Location,
    Issue,
    Assignment,
    Tender,
    Bid,
    WorkProgress,
    Profile,
    Department,
    Area,
    UserContext,
    ACTIVE_TENDER_STATUSES,
    TERMINAL_ISSUE_STATUSES
)

# Request models
from .requests import (
    ReportIssueRequest,
    AdvanceIssueRequest,
    RejectIssueRequest,
    CloseIssueRequest,
    CreateTenderRequest,
    SubmitBidRequest,
    SubmitWorkProgressRequest,
    VerifyWorkProgressRequest
)

# Response models
from .responses import (
    HalLink,
    LeaderboardRow,
    LeaderboardEntry,
    LeaderboardStats,
    LeaderboardResult,
    ContractorStats,
    HealthCheckResponse,
    ErrorResponse
)

__all__ = [
    # Base
    "BaseEntity",
    "BaseEntityCreate",
    "generate_object_id",
    "utcnow",

    # Enums
    "IssueCategory",
    "IssuePriority",
    "IssueStatus",
    "WorkflowStage",
    "AssignmentType",
    "TenderStatus",
    "BidStatus",
    "ProgressType",
    "ProgressStatus",
    "UserRole",
    "LeaderboardPeriod",

    # Entities
    "Location",
    "Issue",
    "Assignment",
    "Tender",
    "Bid",
    "WorkProgress",
    "Profile",
    "Department",
    "Area",
    "UserContext",
    "ACTIVE_TENDER_STATUSES",
    "TERMINAL_ISSUE_STATUSES",

    # Requests
    "ReportIssueRequest",
    "AdvanceIssueRequest",
    "RejectIssueRequest",
    "CloseIssueRequest",
    "CreateTenderRequest",
    "SubmitBidRequest",
    "SubmitWorkProgressRequest",
    "VerifyWorkProgressRequest",

    # Responses
    "HalLink",
    "LeaderboardRow",
    "LeaderboardEntry",
    "LeaderboardStats",
    "LeaderboardResult",
    "ContractorStats",
    "HealthCheckResponse",
    "ErrorResponse"
]
