# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Issue workflow service.

Applies the workflow rules from domain.workflow against the entity store.
Every mutating operation runs as one unit of work; stage writes are
serialized per issue by a compare-and-set on ``workflow_stage``. StageChange
events are delivered to listeners after the unit of work commits.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace

from ..domain import workflow as workflow_domain
from ..domain.authorization import (
    REPORTER_ROLES,
    REVIEWER_ROLES,
    AuthorizationResult,
    check_area_scope,
    check_department_scope,
    check_role,
    check_stage_entry_permission,
    check_transition_permission
)
from ..domain.errors import (
    ConflictingTender,
    InvalidTransition,
    NoResponsibleActor,
    NotFound,
    Unauthorized,
    ValidationException
)
from ..domain.routing import Taxonomy, resolve_department, route
from ..domain.tendering import cancel_updates, decision_updates, ensure_cancellable
from ..domain.workflow import StageChange, TransitionContext
from ..models.base import utcnow
from ..models.entities import (
    Area,
    Assignment,
    Department,
    Issue,
    Profile,
    Tender,
    UserContext
)
from ..models.enums import (
    AssignmentType,
    BidStatus,
    IssueStatus,
    ProgressStatus,
    ProgressType,
    TenderStatus,
    WorkflowStage
)
from ..models.requests import ReportIssueRequest
from .store import (
    AREAS,
    ASSIGNMENTS,
    BIDS,
    DEPARTMENTS,
    ISSUES,
    PROFILES,
    TENDERS,
    WORK_PROGRESS,
    EntityStore,
    PaginationResult
)

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

StageListener = Callable[[StageChange], None]


def _require(result: AuthorizationResult) -> None:
    if not result.allowed:
        raise Unauthorized(result.reason)


class WorkflowService:
    """Issue lifecycle operations over an entity store."""

    def __init__(self, store: EntityStore, listeners: Optional[List[StageListener]] = None):
        self.store = store
        self._listeners: List[StageListener] = list(listeners or [])

    # Events

    def subscribe(self, listener: StageListener) -> None:
        """Register a callback for committed stage changes."""
        self._listeners.append(listener)

    def publish(self, events: List[StageChange]) -> None:
        """Deliver committed stage changes to every listener."""
        for event in events:
            logger.info(
                "Issue stage changed",
                extra={
                    "issue_id": event.issue_id,
                    "from_stage": event.from_stage,
                    "to_stage": event.to_stage,
                    "actor_id": event.actor_id,
                    "assignee_id": event.assignee_id
                }
            )
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    # The transition is already committed; a listener cannot undo it
                    logger.exception(
                        "Stage change listener failed",
                        extra={"issue_id": event.issue_id, "listener": getattr(listener, "__name__", repr(listener))}
                    )

    # Lookups

    def get_issue(self, issue_id: str) -> Issue:
        document = self.store.get(ISSUES, issue_id)
        if document is None:
            raise NotFound.for_entity("Issue", issue_id)
        return Issue.model_validate(document)

    def load_taxonomy(self) -> Taxonomy:
        """Read areas and departments for the router."""
        return Taxonomy(
            areas=[Area.model_validate(doc) for doc in self.store.find(AREAS)],
            departments=[Department.model_validate(doc) for doc in self.store.find(DEPARTMENTS)]
        )

    def active_tender_for(self, issue_id: str) -> Optional[Tender]:
        """The issue's non-cancelled tender, if any."""
        documents = self.store.find(
            TENDERS,
            {"source_issue_id": issue_id, "status": {"$ne": TenderStatus.CANCELLED.value}},
            limit=1
        )
        return Tender.model_validate(documents[0]) if documents else None

    def transition_context(self, issue: Issue) -> TransitionContext:
        """Collect the tender and completion facts stage guards need."""
        tender = self.active_tender_for(issue.id)
        if tender is None:
            return TransitionContext()

        completion = {"tender_id": tender.id, "progress_type": ProgressType.COMPLETION.value}
        return TransitionContext(
            active_tender=tender,
            has_pending_completion=self.store.count(
                WORK_PROGRESS, {**completion, "status": ProgressStatus.SUBMITTED.value}
            ) > 0,
            has_approved_completion=self.store.count(
                WORK_PROGRESS, {**completion, "status": ProgressStatus.APPROVED.value}
            ) > 0
        )

    # Shared write paths

    def record_assignment(
        self,
        issue_id: str,
        assignment_type: AssignmentType,
        user: UserContext,
        assigned_to: Optional[str] = None,
        department_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Assignment:
        """Append an ownership hand-over to the issue's assignment trail."""
        assignment = Assignment(
            issue_id=issue_id,
            assignment_type=assignment_type,
            assigned_by=user.user_id,
            assigned_to=assigned_to,
            department_id=department_id,
            notes=notes,
            created_by=user.user_id,
            updated_by=user.user_id
        )
        self.store.create(ASSIGNMENTS, assignment.to_document())
        return assignment

    def cancel_tender_records(self, tender: Tender, user: UserContext) -> Tender:
        """
        Cancel an available tender and reject its pending bids.

        Raises:
            ConflictingTender: If the tender is no longer available
        """
        ensure_cancellable(tender)
        now = utcnow()
        document = self.store.compare_and_set(
            TENDERS,
            tender.id,
            "status",
            TenderStatus.AVAILABLE.value,
            cancel_updates(user.user_id, now)
        )
        if document is None:
            current = self.store.get(TENDERS, tender.id)
            raise ConflictingTender(f"Tender {tender.id} changed before it could be cancelled", current=current)

        rejected = self.store.update_many(
            BIDS,
            {"tender_id": tender.id, "status": BidStatus.SUBMITTED.value},
            decision_updates(BidStatus.REJECTED, user.user_id, now)
        )
        logger.info(
            "Tender cancelled",
            extra={"tender_id": tender.id, "issue_id": tender.source_issue_id, "rejected_bids": rejected}
        )
        return Tender.model_validate(document)

    def _route(self, issue: Issue, context: TransitionContext) -> Dict[str, Any]:
        """Pick the new owner; a routing failure flags the issue instead of failing the transition."""
        awarded = context.active_tender.awarded_contractor_id if context.active_tender else None
        try:
            decision = route(issue, self.load_taxonomy(), awarded)
        except NoResponsibleActor as e:
            logger.warning(
                "No responsible actor for issue, manual assignment required",
                extra={"issue_id": issue.id, "stage": issue.workflow_stage, "reason": e.message}
            )
            return {"current_assignee_id": None, "requires_manual_assignment": True}
        return {"current_assignee_id": decision.actor_id, "requires_manual_assignment": False}

    def _transition(
        self,
        issue: Issue,
        target_stage: WorkflowStage,
        user: UserContext,
        context: TransitionContext,
        events: List[StageChange],
        allow_reversal: bool = False,
        department_id: Optional[str] = None
    ) -> Issue:
        validation = workflow_domain.validate_stage_transition(issue, target_stage, context, allow_reversal)
        if not validation.is_valid:
            raise InvalidTransition("; ".join(validation.errors), current=issue.to_document())

        now = utcnow()
        updates = workflow_domain.stage_updates(issue, target_stage, now, department_id=department_id)
        updates.update(self._route(issue.with_updates(updates), context))
        updates["updated_by"] = user.user_id
        # Raises if the result would break an entity invariant
        issue.with_updates(updates)

        document = self.store.compare_and_set(ISSUES, issue.id, "workflow_stage", issue.workflow_stage, updates)
        if document is None:
            current = self.get_issue(issue.id)
            if current.workflow_stage == target_stage:
                logger.info(
                    "Concurrent transition already reached target",
                    extra={"issue_id": issue.id, "target_stage": WorkflowStage(target_stage).value}
                )
                return current
            raise InvalidTransition(
                f"Issue {issue.id} moved to {current.workflow_stage} concurrently",
                current=current.to_document()
            )

        updated = Issue.model_validate(document)
        events.append(workflow_domain.build_stage_change(
            issue.id,
            issue.workflow_stage,
            target_stage,
            user.user_id,
            now,
            assignee_id=updated.current_assignee_id,
            department_id=updated.assigned_department_id
        ))
        return updated

    def move_issue(
        self,
        issue_id: str,
        target_stage: WorkflowStage,
        user: UserContext,
        events: List[StageChange],
        allow_reversal: bool = False,
        enforce_role: bool = True
    ) -> Issue:
        """
        Move an issue as a side effect of a tendering operation.

        Must be called inside the caller's unit of work. ``enforce_role``
        is off for transitions the calling operation authorizes itself,
        such as a contractor's completion claim.
        """
        issue = self.get_issue(issue_id)
        if enforce_role:
            permission = check_transition_permission(user, issue.workflow_stage, target_stage)
            if not permission.allowed:
                raise InvalidTransition(permission.reason, current=issue.to_document())
        context = self.transition_context(issue)
        return self._transition(issue, target_stage, user, context, events, allow_reversal=allow_reversal)

    def _check_scope(self, issue: Issue, user: UserContext) -> None:
        _require(check_area_scope(user, issue.location.area))
        _require(check_department_scope(user, issue.assigned_department_id))

    # Operations

    def report(self, request: ReportIssueRequest, user: UserContext) -> Issue:
        """
        Create an issue in reported/pending and credit the reporter.

        Raises:
            Unauthorized: If the caller cannot report issues
        """
        with tracer.start_as_current_span("workflow.report") as span:
            span.set_attributes({"user.id": user.user_id, "issue.category": str(request.category)})
            _require(check_role(user, REPORTER_ROLES, "report issues"))

            issue = Issue(
                title=request.title,
                description=request.description,
                category=request.category,
                priority=request.priority,
                location=request.location,
                reporter_id=user.user_id,
                created_by=user.user_id,
                updated_by=user.user_id
            )
            issue = issue.with_updates(self._route(issue, TransitionContext()))
            points = workflow_domain.report_points(issue.priority)
            profile_defaults = Profile(id=user.user_id, full_name=user.name, role=user.role).to_document()

            def unit() -> Issue:
                self.store.create(ISSUES, issue.to_document())
                self.store.increment(PROFILES, user.user_id, "points", points, on_insert=profile_defaults)
                return issue

            created = self.store.run_in_transaction(unit)
            span.set_attribute("issue.id", created.id)
            logger.info(
                "Issue reported",
                extra={
                    "issue_id": created.id,
                    "reporter_id": user.user_id,
                    "area": created.location.area,
                    "requires_manual_assignment": created.requires_manual_assignment,
                    "points_awarded": points
                }
            )
            self.publish([workflow_domain.build_stage_change(
                created.id,
                None,
                WorkflowStage.REPORTED,
                user.user_id,
                created.created_at,
                assignee_id=created.current_assignee_id
            )])
            return created

    def advance(
        self,
        issue_id: str,
        target_stage: str,
        user: UserContext,
        department_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Issue:
        """
        Move an issue to a successor stage.

        Re-requesting the current stage returns the issue unchanged, provided
        the caller could have made the move.

        Raises:
            ConflictingTender: If moving to department_assigned while a tender is active
            InvalidTransition: If the stage is not a permitted successor or a guard fails
            NoResponsibleActor: If no department can take the issue
            Unauthorized: If the issue is outside the caller's area or department
        """
        target = WorkflowStage(target_stage)
        events: List[StageChange] = []

        with tracer.start_as_current_span("workflow.advance") as span:
            span.set_attributes({
                "issue.id": issue_id,
                "workflow.target_stage": target.value,
                "user.id": user.user_id,
                "user.role": user.role
            })

            def unit() -> Issue:
                events.clear()
                issue = self.get_issue(issue_id)
                if issue.workflow_stage == target:
                    entry = check_stage_entry_permission(user, target)
                    if not entry.allowed:
                        raise InvalidTransition(entry.reason, current=issue.to_document())
                    self._check_scope(issue, user)
                    span.set_attribute("workflow.idempotent", True)
                    return issue

                context = self.transition_context(issue)
                if target == WorkflowStage.DEPARTMENT_ASSIGNED and context.active_tender is not None:
                    raise ConflictingTender(
                        f"Issue {issue.id} has active tender {context.active_tender.id}",
                        current=issue.to_document()
                    )

                permission = check_transition_permission(user, issue.workflow_stage, target)
                if not permission.allowed:
                    raise InvalidTransition(permission.reason, current=issue.to_document())
                self._check_scope(issue, user)

                department = None
                if target == WorkflowStage.DEPARTMENT_ASSIGNED:
                    taxonomy = self.load_taxonomy()
                    if department_id:
                        department = taxonomy.department(department_id)
                        if department is None:
                            raise NotFound.for_entity("Department", department_id)
                    else:
                        department = resolve_department(issue, taxonomy)

                updated = self._transition(
                    issue,
                    target,
                    user,
                    context,
                    events,
                    department_id=department.id if department else None
                )
                if department is not None and events:
                    self.record_assignment(
                        issue.id,
                        AssignmentType.AREA_TO_DEPARTMENT,
                        user,
                        assigned_to=updated.current_assignee_id,
                        department_id=department.id,
                        notes=notes
                    )
                return updated

            issue = self.store.run_in_transaction(unit)
            self.publish(events)
            return issue

    def acknowledge(self, issue_id: str, user: UserContext) -> Issue:
        """
        Mark a pending issue as acknowledged.

        Issues already past pending are returned unchanged.
        """
        with tracer.start_as_current_span("workflow.acknowledge") as span:
            span.set_attributes({"issue.id": issue_id, "user.id": user.user_id})
            _require(check_role(user, REVIEWER_ROLES, "acknowledge issues"))

            def unit() -> Issue:
                issue = self.get_issue(issue_id)
                validation = workflow_domain.validate_side_entry(issue, "acknowledge")
                if not validation.is_valid:
                    raise InvalidTransition("; ".join(validation.errors), current=issue.to_document())
                self._check_scope(issue, user)
                if issue.status != IssueStatus.PENDING:
                    return issue

                updates = workflow_domain.acknowledge_updates(utcnow())
                updates["updated_by"] = user.user_id
                document = self.store.compare_and_set(
                    ISSUES, issue.id, "status", IssueStatus.PENDING.value, updates
                )
                if document is None:
                    current = self.get_issue(issue.id)
                    if current.is_terminal():
                        raise InvalidTransition(
                            f"Issue {issue.id} became {current.status} concurrently",
                            current=current.to_document()
                        )
                    return current
                return Issue.model_validate(document)

            return self.store.run_in_transaction(unit)

    def _terminate(
        self,
        issue_id: str,
        user: UserContext,
        final_status: IssueStatus,
        updates: Dict[str, Any],
        action: str
    ) -> Issue:
        _require(check_role(user, REVIEWER_ROLES, f"{action} issues"))

        def unit() -> Issue:
            issue = self.get_issue(issue_id)
            if issue.status == final_status:
                return issue
            validation = workflow_domain.validate_side_entry(issue, action)
            if not validation.is_valid:
                raise InvalidTransition("; ".join(validation.errors), current=issue.to_document())
            self._check_scope(issue, user)

            tender = self.active_tender_for(issue.id)
            if tender is not None:
                if tender.status != TenderStatus.AVAILABLE:
                    raise ConflictingTender(
                        f"Cannot {action} issue {issue.id}: tender {tender.id} is {tender.status}",
                        current=issue.to_document()
                    )
                self.cancel_tender_records(tender, user)

            changes = dict(updates, updated_by=user.user_id)
            document = self.store.compare_and_set(ISSUES, issue.id, "status", issue.status, changes)
            if document is None:
                current = self.get_issue(issue.id)
                if current.status == final_status:
                    return current
                raise InvalidTransition(
                    f"Issue {issue.id} changed to {current.status} concurrently",
                    current=current.to_document()
                )
            logger.info(
                f"Issue {final_status.value}",
                extra={"issue_id": issue.id, "actor_id": user.user_id, "stage": issue.workflow_stage}
            )
            return Issue.model_validate(document)

        return self.store.run_in_transaction(unit)

    def reject(self, issue_id: str, user: UserContext, reason: str) -> Issue:
        """
        Reject an issue with a reason. Terminal.

        Raises:
            ValidationException: If the reason is blank
            ConflictingTender: If the issue's tender is past available
        """
        if not reason or not reason.strip():
            raise ValidationException(
                "Rejection reason is required",
                [{"field": "reason", "message": "Rejection reason is required", "type": "missing", "input": reason}]
            )
        with tracer.start_as_current_span("workflow.reject") as span:
            span.set_attributes({"issue.id": issue_id, "user.id": user.user_id})
            return self._terminate(
                issue_id, user, IssueStatus.REJECTED, workflow_domain.reject_updates(reason, utcnow()), "reject"
            )

    def close(self, issue_id: str, user: UserContext, notes: Optional[str] = None) -> Issue:
        """Close an issue without resolving it. Terminal."""
        with tracer.start_as_current_span("workflow.close") as span:
            span.set_attributes({"issue.id": issue_id, "user.id": user.user_id})
            return self._terminate(
                issue_id, user, IssueStatus.CLOSED, workflow_domain.close_updates(notes, utcnow()), "close"
            )

    # Queries

    def _with_summaries(self, issues: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Join reporter, tender and assignment summaries onto issue documents."""
        if not issues:
            return []
        issue_ids = [issue["id"] for issue in issues]
        reporter_ids = list({issue["reporter_id"] for issue in issues})

        reporters = {
            profile["id"]: profile
            for profile in self.store.find(PROFILES, {"id": {"$in": reporter_ids}})
        }
        tenders = {
            tender["source_issue_id"]: tender
            for tender in self.store.find(TENDERS, {
                "source_issue_id": {"$in": issue_ids},
                "status": {"$ne": TenderStatus.CANCELLED.value}
            })
        }
        assignments: Dict[str, List[Dict[str, Any]]] = {}
        for assignment in self.store.find(ASSIGNMENTS, {"issue_id": {"$in": issue_ids}}, sort=("created_at", 1)):
            assignments.setdefault(assignment["issue_id"], []).append(assignment)

        results = []
        for issue in issues:
            reporter = reporters.get(issue["reporter_id"])
            tender = tenders.get(issue["id"])
            trail = assignments.get(issue["id"], [])
            results.append({
                **issue,
                "reporter": {
                    "id": issue["reporter_id"],
                    "full_name": reporter.get("full_name") if reporter else None
                },
                "tender": {
                    "id": tender["id"],
                    "status": tender["status"],
                    "awarded_contractor_id": tender.get("awarded_contractor_id"),
                    "awarded_amount": tender.get("awarded_amount")
                } if tender else None,
                "assignments": [
                    {
                        "assignment_type": a["assignment_type"],
                        "assigned_by": a["assigned_by"],
                        "assigned_to": a.get("assigned_to"),
                        "department_id": a.get("department_id"),
                        "created_at": a["created_at"]
                    }
                    for a in trail
                ]
            })
        return results

    def get(self, issue_id: str) -> Dict[str, Any]:
        """Issue with joined summaries."""
        with tracer.start_as_current_span("workflow.get") as span:
            span.set_attribute("issue.id", issue_id)
            return self._with_summaries([self.get_issue(issue_id).to_document()])[0]

    def list(
        self,
        stage: Optional[str] = None,
        department: Optional[str] = None,
        area: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20
    ) -> PaginationResult:
        """Issues ordered by recency with joined summaries."""
        with tracer.start_as_current_span("workflow.list") as span:
            filters: Dict[str, Any] = {}
            if stage:
                filters["workflow_stage"] = WorkflowStage(stage).value
            if department:
                filters["assigned_department_id"] = department
            if area:
                filters["location.area"] = area
            if status:
                filters["status"] = IssueStatus(status).value
            span.set_attributes({"query.filters": sorted(filters.keys()), "query.page": page})

            result = self.store.paginate(ISSUES, filters, page, page_size, sort_by="created_at", sort_order=-1)
            result.items = self._with_summaries(result.items)
            return result
