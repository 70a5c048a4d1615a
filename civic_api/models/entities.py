# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the civic issue resolution engine.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, utcnow
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
    UserRole
)

TERMINAL_ISSUE_STATUSES = (IssueStatus.RESOLVED, IssueStatus.CLOSED, IssueStatus.REJECTED)
ACTIVE_TENDER_STATUSES = (
    TenderStatus.AVAILABLE,
    TenderStatus.AWARDED,
    TenderStatus.WORK_IN_PROGRESS,
    TenderStatus.WORK_COMPLETED,
    TenderStatus.COMPLETED
)


class Location(BaseModel):
    """Where the issue was observed."""

    name: Optional[str] = Field(None, max_length=200, description="Landmark or place name")
    address: Optional[str] = Field(None, max_length=500, description="Street address")
    area: str = Field(..., min_length=1, max_length=100, description="Administrative area")
    ward: Optional[str] = Field(None, max_length=100, description="Ward within the area")

    @field_validator('area')
    @classmethod
    def validate_area(cls, v):
        """Validate area name."""
        if not v.strip():
            raise ValueError('Area cannot be empty')
        return v.strip()


class Issue(BaseEntity):
    """Citizen-reported civic issue tracked through the resolution workflow."""

    title: str = Field(..., min_length=1, max_length=200, description="Issue title")
    description: str = Field(..., min_length=1, max_length=2000, description="Issue description")
    category: IssueCategory = Field(default=IssueCategory.OTHER, description="Issue category")
    priority: IssuePriority = Field(default=IssuePriority.MEDIUM, description="Issue priority")
    status: IssueStatus = Field(default=IssueStatus.PENDING, description="User-facing status")
    workflow_stage: WorkflowStage = Field(default=WorkflowStage.REPORTED, description="Workflow stage")
    reporter_id: str = Field(..., description="Reporting citizen ID")
    location: Location = Field(..., description="Issue location")
    assigned_department_id: Optional[str] = Field(None, description="Owning department")
    current_assignee_id: Optional[str] = Field(None, description="Actor currently responsible")
    requires_manual_assignment: bool = Field(default=False, description="Routing could not pick an owner")
    rejection_reason: Optional[str] = Field(None, max_length=500, description="Reason given on rejection")
    resolution_notes: Optional[str] = Field(None, max_length=2000, description="Closing notes")
    resolved_at: Optional[datetime] = Field(None, description="Resolution timestamp")

    @model_validator(mode='after')
    def validate_resolution_timestamp(self):
        """resolved_at is set exactly when the issue is resolved."""
        resolved = self.status == IssueStatus.RESOLVED
        if resolved and self.resolved_at is None:
            raise ValueError('Resolved issues must have resolved_at set')
        if not resolved and self.resolved_at is not None:
            raise ValueError('resolved_at can only be set on resolved issues')
        return self

    def is_terminal(self) -> bool:
        """Check if the issue reached a terminal status."""
        return self.status in TERMINAL_ISSUE_STATUSES


class Assignment(BaseEntity):
    """Append-only record of an ownership hand-over."""

    issue_id: str = Field(..., description="Issue reference")
    assignment_type: AssignmentType = Field(..., description="Hand-over kind")
    assigned_by: str = Field(..., description="Actor who made the assignment")
    assigned_to: Optional[str] = Field(None, description="Actor receiving ownership")
    department_id: Optional[str] = Field(None, description="Department involved")
    notes: Optional[str] = Field(None, max_length=1000, description="Assignment notes")


class Tender(BaseEntity):
    """Solicitation for contractor bids created from an issue."""

    source_issue_id: Optional[str] = Field(None, description="Issue the tender was created from")
    department_id: str = Field(..., description="Department running the tender")
    title: str = Field(..., min_length=1, max_length=200, description="Tender title")
    description: str = Field(..., min_length=1, max_length=5000, description="Scope of work")
    budget_min: float = Field(..., ge=0, description="Lower budget bound")
    budget_max: float = Field(..., ge=0, description="Upper budget bound")
    deadline_date: datetime = Field(..., description="Work deadline")
    status: TenderStatus = Field(default=TenderStatus.AVAILABLE, description="Tender status")
    awarded_contractor_id: Optional[str] = Field(None, description="Winning contractor")
    awarded_amount: Optional[float] = Field(None, ge=0, description="Winning bid amount")
    awarded_bid_id: Optional[str] = Field(None, description="Winning bid")
    work_started_at: Optional[datetime] = Field(None, description="When the contractor started")
    completed_at: Optional[datetime] = Field(None, description="When completion was approved")

    @model_validator(mode='after')
    def validate_budget_range(self):
        """Validate budget range ordering."""
        if self.budget_min > self.budget_max:
            raise ValueError('budget_min cannot exceed budget_max')
        return self

    def is_active(self) -> bool:
        """Check if the tender still counts against its source issue."""
        return self.status != TenderStatus.CANCELLED

    def is_open_for_bids(self) -> bool:
        """Check if contractors can still bid."""
        return self.status == TenderStatus.AVAILABLE


class Bid(BaseEntity):
    """Contractor's priced proposal against a tender."""

    tender_id: str = Field(..., description="Tender reference")
    contractor_id: str = Field(..., description="Bidding contractor")
    amount: float = Field(..., gt=0, description="Quoted amount")
    details: str = Field(..., min_length=1, max_length=5000, description="Proposal details")
    timeline: str = Field(..., min_length=1, max_length=200, description="Proposed timeline")
    status: BidStatus = Field(default=BidStatus.SUBMITTED, description="Decision status")
    submitted_at: datetime = Field(default_factory=utcnow, description="Submission timestamp")
    decided_at: Optional[datetime] = Field(None, description="Acceptance or rejection timestamp")

    def is_pending(self) -> bool:
        """Check if the bid still awaits a decision."""
        return self.status == BidStatus.SUBMITTED


class WorkProgress(BaseEntity):
    """Contractor progress update or completion claim."""

    tender_id: str = Field(..., description="Tender reference")
    contractor_id: str = Field(..., description="Reporting contractor")
    progress_type: ProgressType = Field(..., description="Update or completion claim")
    status: ProgressStatus = Field(default=ProgressStatus.SUBMITTED, description="Verification status")
    progress_percentage: Optional[int] = Field(None, ge=0, le=100, description="Completion percentage")
    description: Optional[str] = Field(None, max_length=2000, description="What was done")
    verified_by: Optional[str] = Field(None, description="Verifying department admin")
    verified_at: Optional[datetime] = Field(None, description="Verification timestamp")
    verification_notes: Optional[str] = Field(None, max_length=1000, description="Verifier notes")

    def is_pending_completion(self) -> bool:
        """Check if this is a completion claim awaiting verification."""
        return (
            self.progress_type == ProgressType.COMPLETION
            and self.status == ProgressStatus.SUBMITTED
        )


class Profile(BaseEntity):
    """Read model of a platform user, maintained by the identity collaborator."""

    full_name: Optional[str] = Field(None, max_length=200, description="Display name")
    role: UserRole = Field(default=UserRole.CITIZEN, description="User role")
    points: int = Field(default=0, ge=0, description="Cumulative contribution score")
    badges: List[str] = Field(default_factory=list, description="Earned badges")
    assigned_area: Optional[str] = Field(None, description="Area for area super admins")
    assigned_department_id: Optional[str] = Field(None, description="Department for department admins")


class Department(BaseEntity):
    """Municipal department that can own issues and run tenders."""

    name: str = Field(..., min_length=1, max_length=200, description="Department name")
    category: IssueCategory = Field(..., description="Issue category the department handles")
    admin_id: Optional[str] = Field(None, description="Department admin")


class Area(BaseEntity):
    """Administrative area with its reviewer and department mapping."""

    name: str = Field(..., min_length=1, max_length=100, description="Area name")
    ward: Optional[str] = Field(None, max_length=100, description="Ward, when the mapping is ward specific")
    admin_id: Optional[str] = Field(None, description="Area super admin")
    departments_by_category: Dict[str, str] = Field(
        default_factory=dict,
        description="Issue category to department ID"
    )


class UserContext(BaseModel):
    """User context for request processing with authentication and authorization data."""

    user_id: str = Field(..., description="Authenticated user ID")
    role: UserRole = Field(..., description="Role asserted by the identity provider")
    name: Optional[str] = Field(None, description="User display name")
    department_id: Optional[str] = Field(None, description="Department for department admins")
    area: Optional[str] = Field(None, description="Area for area super admins")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")

    model_config = ConfigDict(
        use_enum_values=True
    )
