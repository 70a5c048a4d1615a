# SPDX-License-Identifier: Apache-2.0

"""
Issue workflow domain logic.

This module contains pure functions for the issue stage machine: successor
rules, the stage -> status mapping, transition guards and the field updates
each workflow operation applies. Persistence and serialization live in
services.workflow.
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from ..models.entities import Issue, Tender, TERMINAL_ISSUE_STATUSES
from ..models.enums import (
    IssuePriority,
    IssueStatus,
    WorkflowStage,
    TenderStatus
)

SUCCESSORS = {
    WorkflowStage.REPORTED: {WorkflowStage.AREA_REVIEW, WorkflowStage.DEPARTMENT_ASSIGNED},
    WorkflowStage.AREA_REVIEW: {WorkflowStage.DEPARTMENT_ASSIGNED},
    WorkflowStage.DEPARTMENT_ASSIGNED: {WorkflowStage.CONTRACTOR_ASSIGNED},
    WorkflowStage.CONTRACTOR_ASSIGNED: {WorkflowStage.IN_PROGRESS},
    WorkflowStage.IN_PROGRESS: {WorkflowStage.DEPARTMENT_REVIEW},
    WorkflowStage.DEPARTMENT_REVIEW: {WorkflowStage.RESOLVED},
    WorkflowStage.RESOLVED: set(),
}

# Only reachable from tender cancellation and rejected completion claims
REVERSALS = {
    (WorkflowStage.CONTRACTOR_ASSIGNED, WorkflowStage.DEPARTMENT_ASSIGNED),
    (WorkflowStage.DEPARTMENT_REVIEW, WorkflowStage.IN_PROGRESS),
}

STAGE_STATUS = {
    WorkflowStage.REPORTED: IssueStatus.PENDING,
    WorkflowStage.AREA_REVIEW: IssueStatus.PENDING,
    WorkflowStage.DEPARTMENT_ASSIGNED: IssueStatus.ACKNOWLEDGED,
    WorkflowStage.CONTRACTOR_ASSIGNED: IssueStatus.IN_PROGRESS,
    WorkflowStage.IN_PROGRESS: IssueStatus.IN_PROGRESS,
    WorkflowStage.DEPARTMENT_REVIEW: IssueStatus.IN_PROGRESS,
    WorkflowStage.RESOLVED: IssueStatus.RESOLVED,
}

REPORT_POINTS = {
    IssuePriority.LOW: 5,
    IssuePriority.MEDIUM: 10,
    IssuePriority.HIGH: 15,
    IssuePriority.URGENT: 20,
}


@dataclass
class ValidationResult:
    """Result of workflow validation."""
    is_valid: bool
    errors: List[str]


@dataclass
class TransitionContext:
    """Facts about related records that stage guards depend on."""
    active_tender: Optional[Tender] = None
    has_pending_completion: bool = False
    has_approved_completion: bool = False


@dataclass
class StageChange:
    """Event emitted after a committed stage transition."""
    issue_id: str
    from_stage: Optional[str]
    to_stage: str
    actor_id: str
    assignee_id: Optional[str] = None
    department_id: Optional[str] = None
    occurred_at: datetime = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def is_terminal(issue: Issue) -> bool:
    """Check whether no further workflow operation may touch the issue."""
    return issue.status in TERMINAL_ISSUE_STATUSES


def is_successor(current_stage: str, target_stage: str) -> bool:
    """Check if target is a direct successor of current."""
    return WorkflowStage(target_stage) in SUCCESSORS[WorkflowStage(current_stage)]


def status_for_stage(stage: str, current_status: str) -> IssueStatus:
    """
    Map a workflow stage to the user-facing status.

    An issue that was acknowledged while still under area review keeps
    its acknowledged status.
    """
    stage = WorkflowStage(stage)
    if stage in (WorkflowStage.REPORTED, WorkflowStage.AREA_REVIEW):
        if current_status == IssueStatus.ACKNOWLEDGED:
            return IssueStatus.ACKNOWLEDGED
    return STAGE_STATUS[stage]


def report_points(priority: str) -> int:
    """Points a citizen earns for reporting an issue of the given priority."""
    return REPORT_POINTS.get(IssuePriority(priority), REPORT_POINTS[IssuePriority.MEDIUM])


def check_guards(target_stage: str, context: TransitionContext) -> List[str]:
    """
    Check the record-level preconditions for entering a stage.

    Args:
        target_stage: Stage being entered
        context: Related tender and work progress facts

    Returns:
        List of guard failures, empty when the stage may be entered
    """
    errors = []
    target = WorkflowStage(target_stage)
    tender = context.active_tender

    if target == WorkflowStage.CONTRACTOR_ASSIGNED:
        if tender is None or tender.status == TenderStatus.CANCELLED:
            errors.append("Entering contractor_assigned requires an active tender")
    elif target == WorkflowStage.IN_PROGRESS:
        if tender is None or tender.status not in (TenderStatus.AWARDED, TenderStatus.WORK_IN_PROGRESS):
            errors.append("Entering in_progress requires an awarded tender")
    elif target == WorkflowStage.DEPARTMENT_REVIEW:
        if not context.has_pending_completion:
            errors.append("Entering department_review requires a submitted completion")
    elif target == WorkflowStage.RESOLVED:
        if not context.has_approved_completion:
            errors.append("Resolution requires an approved completion")

    return errors


def validate_stage_transition(
    issue: Issue,
    target_stage: str,
    context: TransitionContext,
    allow_reversal: bool = False
) -> ValidationResult:
    """
    Validate moving an issue into a new workflow stage.

    Role permissions are checked separately; this covers the stage graph
    and the guards.

    Args:
        issue: Issue being moved
        target_stage: Requested stage
        context: Related tender and work progress facts
        allow_reversal: Permit the two internal backwards moves

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []

    if is_terminal(issue):
        errors.append(f"Issue is {issue.status} and can no longer change stage")
        return ValidationResult(is_valid=False, errors=errors)

    current = WorkflowStage(issue.workflow_stage)
    target = WorkflowStage(target_stage)
    reversal = allow_reversal and (current, target) in REVERSALS

    if not reversal and not is_successor(current, target):
        errors.append(f"{target.value} is not a direct successor of {current.value}")
        return ValidationResult(is_valid=False, errors=errors)

    if not reversal:
        errors.extend(check_guards(target, context))

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def stage_updates(
    issue: Issue,
    target_stage: str,
    now: datetime,
    assignee_id: Optional[str] = None,
    department_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the field updates for moving an issue into a stage.

    Stage and status always change together, and resolved_at follows status.
    """
    target = WorkflowStage(target_stage)
    updates = {
        "workflow_stage": target.value,
        "status": status_for_stage(target, issue.status).value,
        "current_assignee_id": assignee_id,
        "updated_at": now,
    }
    if target == WorkflowStage.RESOLVED:
        updates["resolved_at"] = now
        updates["current_assignee_id"] = None
    if department_id is not None:
        updates["assigned_department_id"] = department_id
    return updates


def validate_side_entry(issue: Issue, action: str) -> ValidationResult:
    """Validate acknowledge/reject/close, which share the non-terminal precondition."""
    if is_terminal(issue):
        return ValidationResult(
            is_valid=False,
            errors=[f"Cannot {action} an issue that is already {issue.status}"]
        )
    return ValidationResult(is_valid=True, errors=[])


def acknowledge_updates(now: datetime) -> Dict[str, Any]:
    return {"status": IssueStatus.ACKNOWLEDGED.value, "updated_at": now}


def reject_updates(reason: str, now: datetime) -> Dict[str, Any]:
    return {
        "status": IssueStatus.REJECTED.value,
        "rejection_reason": reason.strip(),
        "current_assignee_id": None,
        "updated_at": now,
    }


def close_updates(notes: Optional[str], now: datetime) -> Dict[str, Any]:
    return {
        "status": IssueStatus.CLOSED.value,
        "resolution_notes": notes,
        "current_assignee_id": None,
        "updated_at": now,
    }


def build_stage_change(
    issue_id: str,
    from_stage: Optional[str],
    to_stage: str,
    actor_id: str,
    now: datetime,
    assignee_id: Optional[str] = None,
    department_id: Optional[str] = None,
    **metadata
) -> StageChange:
    """Build the event published after a stage transition commits. from_stage is None for new issues."""
    return StageChange(
        issue_id=issue_id,
        from_stage=WorkflowStage(from_stage).value if from_stage else None,
        to_stage=WorkflowStage(to_stage).value,
        actor_id=actor_id,
        assignee_id=assignee_id,
        department_id=department_id,
        occurred_at=now,
        metadata=metadata
    )
