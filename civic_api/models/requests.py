# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from .base import BaseEntityCreate
from .entities import Location
from .enums import (
    IssueCategory,
    IssuePriority,
    IssueStatus,
    WorkflowStage,
    TenderStatus,
    ProgressType,
    LeaderboardPeriod
)


class ReportIssueRequest(BaseEntityCreate):
    """Request model for reporting a new issue."""

    title: str = Field(..., min_length=1, max_length=200, description="Issue title")
    description: str = Field(..., min_length=1, max_length=2000, description="Issue description")
    category: IssueCategory = Field(default=IssueCategory.OTHER, description="Issue category")
    priority: IssuePriority = Field(default=IssuePriority.MEDIUM, description="Issue priority")
    location: Location = Field(..., description="Issue location")


class AdvanceIssueRequest(BaseEntityCreate):
    """Request model for moving an issue to another workflow stage."""

    target_stage: WorkflowStage = Field(..., description="Stage to move the issue into")
    department_id: Optional[str] = Field(None, description="Department for area-to-department hand-over")
    notes: Optional[str] = Field(None, max_length=1000, description="Assignment notes")


class RejectIssueRequest(BaseEntityCreate):
    """Request model for rejecting an issue."""

    reason: str = Field(..., min_length=1, max_length=500, description="Rejection reason")

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        """Reason must carry actual text."""
        if not v.strip():
            raise ValueError('Rejection reason is required')
        return v


class CloseIssueRequest(BaseEntityCreate):
    """Request model for closing an issue."""

    notes: Optional[str] = Field(None, max_length=2000, description="Resolution notes")


class CreateTenderRequest(BaseEntityCreate):
    """Request model for creating a tender from an issue."""

    issue_id: str = Field(..., min_length=1, description="Source issue ID")
    department_id: Optional[str] = Field(None, description="Department running the tender")
    title: Optional[str] = Field(None, min_length=1, max_length=200, description="Tender title")
    description: Optional[str] = Field(None, min_length=1, max_length=5000, description="Scope of work")
    budget_min: float = Field(..., ge=0, description="Lower budget bound")
    budget_max: float = Field(..., ge=0, description="Upper budget bound")
    deadline_date: datetime = Field(..., description="Work deadline")

    @model_validator(mode='after')
    def validate_budget_range(self):
        """Validate budget range ordering."""
        if self.budget_min > self.budget_max:
            raise ValueError('budget_min cannot exceed budget_max')
        return self


class SubmitBidRequest(BaseEntityCreate):
    """Request model for submitting a bid."""

    amount: float = Field(..., gt=0, description="Quoted amount")
    details: str = Field(..., min_length=1, max_length=5000, description="Proposal details")
    timeline: str = Field(..., min_length=1, max_length=200, description="Proposed timeline")


class SubmitWorkProgressRequest(BaseEntityCreate):
    """Request model for submitting work progress."""

    tender_id: str = Field(..., min_length=1, description="Tender ID")
    progress_type: ProgressType = Field(..., description="Update or completion claim")
    progress_percentage: Optional[int] = Field(None, ge=0, le=100, description="Completion percentage")
    description: Optional[str] = Field(None, max_length=2000, description="What was done")


class VerifyWorkProgressRequest(BaseEntityCreate):
    """Request model for verifying a completion claim."""

    approved: bool = Field(..., description="Whether the completion is accepted")
    notes: Optional[str] = Field(None, max_length=1000, description="Verifier notes")


# Path parameter models

class IssuePath(BaseModel):
    issue_id: str = Field(..., description="Issue ID")


class TenderPath(BaseModel):
    tender_id: str = Field(..., description="Tender ID")


class BidPath(BaseModel):
    bid_id: str = Field(..., description="Bid ID")


class ProgressPath(BaseModel):
    progress_id: str = Field(..., description="Work progress ID")


class ContractorPath(BaseModel):
    contractor_id: str = Field(..., description="Contractor ID")


# Query parameter models

class PaginationQuery(BaseModel):
    """Common pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number")
    size: int = Field(default=20, ge=1, le=100, description="Items per page")


class IssueListQuery(PaginationQuery):
    """Filters for the issue list."""

    stage: Optional[WorkflowStage] = Field(None, description="Filter by workflow stage")
    department: Optional[str] = Field(None, description="Filter by department ID")
    area: Optional[str] = Field(None, description="Filter by area")
    status: Optional[IssueStatus] = Field(None, description="Filter by status")


class TenderListQuery(PaginationQuery):
    """Filters for the tender list."""

    status: Optional[TenderStatus] = Field(None, description="Filter by tender status")
    department: Optional[str] = Field(None, description="Filter by department ID")


class ContractorStatsQuery(BaseModel):
    department: Optional[str] = Field(None, description="Restrict to one department")


class LeaderboardQuery(BaseModel):
    period: LeaderboardPeriod = Field(default=LeaderboardPeriod.MONTH, description="Aggregation window")
