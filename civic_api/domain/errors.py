# SPDX-License-Identifier: Apache-2.0

"""
Application exception hierarchy.

Every error raised by the workflow and tendering layers is terminal and
user-visible: retrying with the same input gives the same answer. The one
retryable class, StoreUnavailable, lives with the entity store contract.
"""

from typing import Any, Dict, List, Optional


class CustomException(Exception):
    """Base class for custom application exceptions."""

    title = "Application Error"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_type: str = "application-error",
        current: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.current = current


class ValidationException(CustomException):
    """Exception for validation errors."""

    title = "Validation Error"

    def __init__(self, message: str, validation_errors: List[Dict[str, Any]] = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationException(CustomException):
    """Missing or unusable bearer token."""

    def __init__(
        self,
        message: str,
        error_type: str = "authentication-required",
        title: str = "Authentication Required"
    ):
        super().__init__(message, 401, error_type)
        self.title = title


# Workflow and tendering taxonomy

class WorkflowError(CustomException):
    """Base for workflow, routing and tendering rule violations."""

    status_code = 409
    error_type = "workflow-error"
    title = "Workflow Error"

    def __init__(self, message: str, current: Optional[Dict[str, Any]] = None):
        super().__init__(message, type(self).status_code, type(self).error_type, current)


class InvalidTransition(WorkflowError):
    error_type = "invalid-transition"
    title = "Invalid Transition"


class ConflictingTender(WorkflowError):
    error_type = "conflicting-tender"
    title = "Conflicting Tender"


class DuplicateTender(WorkflowError):
    error_type = "duplicate-tender"
    title = "Duplicate Tender"


class TenderClosed(WorkflowError):
    error_type = "tender-closed"
    title = "Tender Closed"


class AlreadyAwarded(WorkflowError):
    error_type = "already-awarded"
    title = "Already Awarded"


class AlreadyDecided(WorkflowError):
    error_type = "already-decided"
    title = "Already Decided"


class NotPendingVerification(WorkflowError):
    error_type = "not-pending-verification"
    title = "Not Pending Verification"


class NoResponsibleActor(WorkflowError):
    """Routing found nobody to own the issue; it needs manual assignment."""

    status_code = 422
    error_type = "no-responsible-actor"
    title = "No Responsible Actor"


class NotFound(WorkflowError):
    status_code = 404
    error_type = "resource-not-found"
    title = "Resource Not Found"

    @classmethod
    def for_entity(cls, entity: str, entity_id: str) -> "NotFound":
        return cls(f"{entity} {entity_id} not found")


class Unauthorized(WorkflowError):
    status_code = 403
    error_type = "insufficient-permissions"
    title = "Insufficient Permissions"
