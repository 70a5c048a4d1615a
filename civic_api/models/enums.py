# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the civic issue resolution engine.
"""

from enum import Enum


class IssueCategory(str, Enum):
    """Civic issue category."""
    ROADS = "roads"
    UTILITIES = "utilities"
    ENVIRONMENT = "environment"
    SAFETY = "safety"
    PARKS = "parks"
    OTHER = "other"


class IssuePriority(str, Enum):
    """Issue priority as reported by the citizen."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class IssueStatus(str, Enum):
    """User-facing issue status."""
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"


class WorkflowStage(str, Enum):
    """Position of an issue in the reported -> resolved pipeline."""
    REPORTED = "reported"
    AREA_REVIEW = "area_review"
    DEPARTMENT_ASSIGNED = "department_assigned"
    CONTRACTOR_ASSIGNED = "contractor_assigned"
    IN_PROGRESS = "in_progress"
    DEPARTMENT_REVIEW = "department_review"
    RESOLVED = "resolved"


class AssignmentType(str, Enum):
    """Kind of ownership hand-over recorded in the assignment trail."""
    AREA_TO_DEPARTMENT = "area_to_department"
    DEPARTMENT_TO_CONTRACTOR = "department_to_contractor"


class TenderStatus(str, Enum):
    """Tender lifecycle status."""
    AVAILABLE = "available"
    AWARDED = "awarded"
    WORK_IN_PROGRESS = "work_in_progress"
    WORK_COMPLETED = "work_completed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    """Bid decision status."""
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ProgressType(str, Enum):
    """Kind of work progress report."""
    UPDATE = "update"
    COMPLETION = "completion"


class ProgressStatus(str, Enum):
    """Verification status of a work progress report."""
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, Enum):
    """Caller roles as asserted by the identity provider."""
    CITIZEN = "citizen"
    CONTRACTOR = "contractor"
    AREA_SUPER_ADMIN = "area_super_admin"
    DEPARTMENT_ADMIN = "department_admin"
    ADMIN = "admin"


class LeaderboardPeriod(str, Enum):
    """Leaderboard aggregation window."""
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
