# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role-based access control.

This module holds the role -> allowed-transition table and the pure checks
the services consult before mutating anything. Roles are asserted by the
identity provider; nothing here looks them up.
"""

from typing import Dict, FrozenSet, List, Optional, Tuple
from dataclasses import dataclass, field
from ..models.entities import UserContext
from ..models.enums import UserRole, WorkflowStage

Transition = Tuple[WorkflowStage, WorkflowStage]


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    missing_roles: List[str] = field(default_factory=list)


_AREA_TRANSITIONS: FrozenSet[Transition] = frozenset({
    (WorkflowStage.REPORTED, WorkflowStage.AREA_REVIEW),
    (WorkflowStage.REPORTED, WorkflowStage.DEPARTMENT_ASSIGNED),
    (WorkflowStage.AREA_REVIEW, WorkflowStage.DEPARTMENT_ASSIGNED),
})

_DEPARTMENT_TRANSITIONS: FrozenSet[Transition] = frozenset({
    (WorkflowStage.DEPARTMENT_ASSIGNED, WorkflowStage.CONTRACTOR_ASSIGNED),
    (WorkflowStage.CONTRACTOR_ASSIGNED, WorkflowStage.IN_PROGRESS),
    (WorkflowStage.IN_PROGRESS, WorkflowStage.DEPARTMENT_REVIEW),
    (WorkflowStage.DEPARTMENT_REVIEW, WorkflowStage.RESOLVED),
})

ROLE_TRANSITIONS: Dict[UserRole, FrozenSet[Transition]] = {
    UserRole.CITIZEN: frozenset(),
    UserRole.CONTRACTOR: frozenset(),
    UserRole.AREA_SUPER_ADMIN: _AREA_TRANSITIONS,
    UserRole.DEPARTMENT_ADMIN: _DEPARTMENT_TRANSITIONS,
    UserRole.ADMIN: _AREA_TRANSITIONS | _DEPARTMENT_TRANSITIONS,
}

REVIEWER_ROLES = (UserRole.AREA_SUPER_ADMIN, UserRole.DEPARTMENT_ADMIN, UserRole.ADMIN)
TENDER_MANAGER_ROLES = (UserRole.DEPARTMENT_ADMIN, UserRole.ADMIN)
REPORTER_ROLES = (UserRole.CITIZEN, UserRole.ADMIN)
BIDDER_ROLES = (UserRole.CONTRACTOR,)


def allowed_transitions(role: str) -> FrozenSet[Transition]:
    """
    Get the stage transitions a role may request through advance.

    Args:
        role: Role value as carried by the user context

    Returns:
        Set of (from_stage, to_stage) pairs, empty for unknown roles
    """
    try:
        return ROLE_TRANSITIONS[UserRole(role)]
    except ValueError:
        return frozenset()


def check_transition_permission(
    user_context: UserContext,
    from_stage: str,
    to_stage: str
) -> AuthorizationResult:
    """
    Check if the user's role may move an issue between two stages.

    Args:
        user_context: Authenticated caller
        from_stage: Current workflow stage
        to_stage: Requested workflow stage

    Returns:
        AuthorizationResult indicating if the transition is permitted
    """
    transition = (WorkflowStage(from_stage), WorkflowStage(to_stage))
    if transition in allowed_transitions(user_context.role):
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Role '{user_context.role}' cannot move an issue from {from_stage} to {to_stage}"
    )


def check_stage_entry_permission(user_context: UserContext, stage: str) -> AuthorizationResult:
    """
    Check if the user's role may move an issue into a stage from any stage.

    Repeated advance requests that find the issue already at the target
    are answered only for callers who could have made the move.
    """
    stage = WorkflowStage(stage)
    if any(to_stage == stage for _, to_stage in allowed_transitions(user_context.role)):
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Role '{user_context.role}' cannot move an issue to {stage.value}"
    )


def check_role(user_context: UserContext, roles: Tuple[UserRole, ...], action: str) -> AuthorizationResult:
    """
    Check if the user holds one of the roles required for an action.

    Args:
        user_context: Authenticated caller
        roles: Roles that may perform the action
        action: Human readable action name for the denial reason

    Returns:
        AuthorizationResult indicating if the action is permitted
    """
    if user_context.role in roles:
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Role '{user_context.role}' cannot {action}",
        missing_roles=[role.value for role in roles]
    )


def check_department_scope(user_context: UserContext, department_id: Optional[str]) -> AuthorizationResult:
    """
    Check that a department admin only acts on their own department.

    Admins are unscoped. A department admin whose token carries no
    department claim is treated as unscoped as well.
    """
    if user_context.role != UserRole.DEPARTMENT_ADMIN:
        return AuthorizationResult(allowed=True)
    if not user_context.department_id or user_context.department_id == department_id:
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Department admin of {user_context.department_id} cannot act on department {department_id}"
    )


def check_area_scope(user_context: UserContext, area: Optional[str]) -> AuthorizationResult:
    """Check that an area super admin only acts inside their own area."""
    if user_context.role != UserRole.AREA_SUPER_ADMIN:
        return AuthorizationResult(allowed=True)
    if not user_context.area or (area and user_context.area.lower() == area.lower()):
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Area super admin of {user_context.area} cannot act on area {area}"
    )
