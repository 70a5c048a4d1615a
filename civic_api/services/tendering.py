# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tender and bidding service.

Each operation is a single unit of work over tenders, bids, work progress
and the source issue. Tender status changes go through compare-and-set on
``status``; the available -> awarded swap is what serializes competing bid
acceptances.
"""

import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from ..domain import tendering as tender_domain
from ..domain.authorization import (
    BIDDER_ROLES,
    TENDER_MANAGER_ROLES,
    AuthorizationResult,
    check_department_scope,
    check_role
)
from ..domain.errors import (
    AlreadyAwarded,
    AlreadyDecided,
    DuplicateTender,
    InvalidTransition,
    NoResponsibleActor,
    NotFound,
    NotPendingVerification,
    TenderClosed,
    Unauthorized
)
from ..domain.workflow import StageChange
from ..models.base import utcnow
from ..models.entities import Bid, Issue, Tender, UserContext, WorkProgress
from ..models.enums import (
    AssignmentType,
    BidStatus,
    ProgressStatus,
    ProgressType,
    TenderStatus,
    UserRole,
    WorkflowStage
)
from ..models.requests import (
    CreateTenderRequest,
    SubmitBidRequest,
    SubmitWorkProgressRequest,
    VerifyWorkProgressRequest
)
from ..models.responses import ContractorStats
from .store import BIDS, TENDERS, WORK_PROGRESS, DuplicateRecord, EntityStore, PaginationResult
from .workflow import WorkflowService

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def _require(result: AuthorizationResult) -> None:
    if not result.allowed:
        raise Unauthorized(result.reason)


def _doc(entity) -> Optional[Dict[str, Any]]:
    return entity.to_document() if entity is not None else None


class TenderService:
    """Tender lifecycle operations over an entity store."""

    def __init__(self, store: EntityStore, workflow: WorkflowService):
        self.store = store
        self.workflow = workflow

    # Lookups

    def get_tender(self, tender_id: str) -> Tender:
        document = self.store.get(TENDERS, tender_id)
        if document is None:
            raise NotFound.for_entity("Tender", tender_id)
        return Tender.model_validate(document)

    def get_bid(self, bid_id: str) -> Bid:
        document = self.store.get(BIDS, bid_id)
        if document is None:
            raise NotFound.for_entity("Bid", bid_id)
        return Bid.model_validate(document)

    def get_progress(self, progress_id: str) -> WorkProgress:
        document = self.store.get(WORK_PROGRESS, progress_id)
        if document is None:
            raise NotFound.for_entity("Work progress", progress_id)
        return WorkProgress.model_validate(document)

    def _source_issue(self, tender: Tender) -> Optional[Issue]:
        if not tender.source_issue_id:
            return None
        return self.workflow.get_issue(tender.source_issue_id)

    def _set_tender_status(
        self,
        tender: Tender,
        expected: TenderStatus,
        updates: Dict[str, Any]
    ) -> Tender:
        """Swap the tender status, failing with InvalidTransition if it moved underneath."""
        document = self.store.compare_and_set(TENDERS, tender.id, "status", expected.value, updates)
        if document is None:
            current = self.store.get(TENDERS, tender.id)
            raise InvalidTransition(
                f"Tender {tender.id} is no longer {expected.value}",
                current=current
            )
        return Tender.model_validate(document)

    def _manager_scope(self, user: UserContext, tender: Tender) -> None:
        _require(check_department_scope(user, tender.department_id))

    # Operations

    def create_tender(self, request: CreateTenderRequest, user: UserContext) -> Tender:
        """
        Open a tender for an issue and move the issue to contractor_assigned.

        Both writes commit together or not at all.

        Raises:
            DuplicateTender: If the issue already has an active tender
            InvalidTransition: If the issue is not at department_assigned
            NoResponsibleActor: If no department is given or assigned
        """
        events: List[StageChange] = []

        with tracer.start_as_current_span("tendering.create_tender") as span:
            span.set_attributes({"issue.id": request.issue_id, "user.id": user.user_id})
            _require(check_role(user, TENDER_MANAGER_ROLES, "create tenders"))

            def unit() -> Tender:
                events.clear()
                issue = self.workflow.get_issue(request.issue_id)
                tender_domain.ensure_no_active_tender(issue, self.workflow.active_tender_for(issue.id))

                department_id = request.department_id or issue.assigned_department_id
                if not department_id:
                    raise NoResponsibleActor(
                        f"Issue {issue.id} has no department to run a tender",
                        current=issue.to_document()
                    )
                _require(check_department_scope(user, department_id))

                tender = tender_domain.build_tender(
                    issue,
                    department_id,
                    request.budget_min,
                    request.budget_max,
                    request.deadline_date,
                    user.user_id,
                    title=request.title,
                    description=request.description
                )
                try:
                    self.store.create(TENDERS, tender.to_document())
                except DuplicateRecord:
                    raise DuplicateTender(f"Issue {issue.id} already has an active tender")

                self.workflow.move_issue(issue.id, WorkflowStage.CONTRACTOR_ASSIGNED, user, events)
                return tender

            tender = self.store.run_in_transaction(unit)
            span.set_attribute("tender.id", tender.id)
            logger.info(
                "Tender created",
                extra={
                    "tender_id": tender.id,
                    "issue_id": tender.source_issue_id,
                    "department_id": tender.department_id,
                    "budget_min": tender.budget_min,
                    "budget_max": tender.budget_max
                }
            )
            self.workflow.publish(events)
            return tender

    def submit_bid(self, tender_id: str, request: SubmitBidRequest, user: UserContext) -> Bid:
        """
        Submit a contractor bid on an available tender.

        Raises:
            TenderClosed: If the tender no longer accepts bids
        """
        with tracer.start_as_current_span("tendering.submit_bid") as span:
            span.set_attributes({"tender.id": tender_id, "user.id": user.user_id})
            _require(check_role(user, BIDDER_ROLES, "submit bids"))

            def unit() -> Bid:
                tender = self.get_tender(tender_id)
                tender_domain.ensure_open_for_bids(tender)
                now = utcnow()
                # Touch the tender under its status so a concurrent award conflicts with this bid
                touched = self.store.compare_and_set(
                    TENDERS, tender.id, "status", TenderStatus.AVAILABLE.value, {"updated_at": now}
                )
                if touched is None:
                    raise TenderClosed(
                        f"Tender {tender.id} closed while the bid was submitted",
                        current=self.store.get(TENDERS, tender.id)
                    )
                bid = tender_domain.build_bid(
                    tender, user.user_id, request.amount, request.details, request.timeline, now
                )
                self.store.create(BIDS, bid.to_document())
                return bid

            bid = self.store.run_in_transaction(unit)
            span.set_attribute("bid.id", bid.id)
            logger.info(
                "Bid submitted",
                extra={"bid_id": bid.id, "tender_id": tender_id, "contractor_id": user.user_id, "amount": bid.amount}
            )
            return bid

    def accept_bid(self, bid_id: str, user: UserContext) -> Dict[str, Any]:
        """
        Award a tender to a bid.

        In one unit of work: swap the tender from available to awarded,
        accept the bid, reject every other submitted bid, record the award
        and move the source issue to in_progress. Accepting the already
        accepted bid returns the current snapshot.

        Returns:
            Snapshot with bid, tender, issue and rejected_bid_ids

        Raises:
            AlreadyAwarded: If the tender was already awarded to another bid
            AlreadyDecided: If the bid itself was already rejected
        """
        events: List[StageChange] = []

        with tracer.start_as_current_span("tendering.accept_bid") as span:
            span.set_attributes({"bid.id": bid_id, "user.id": user.user_id})
            _require(check_role(user, TENDER_MANAGER_ROLES, "accept bids"))

            def unit() -> Dict[str, Any]:
                events.clear()
                bid = self.get_bid(bid_id)
                tender = self.get_tender(bid.tender_id)
                self._manager_scope(user, tender)

                if tender_domain.is_accepted_award(bid, tender):
                    span.set_attribute("tendering.idempotent", True)
                    return {
                        "bid": bid.to_document(),
                        "tender": tender.to_document(),
                        "issue": _doc(self._source_issue(tender)),
                        "rejected_bid_ids": []
                    }

                now = utcnow()
                updates = tender_domain.award_updates(bid, now)
                updates["updated_by"] = user.user_id
                awarded = self.store.compare_and_set(
                    TENDERS, tender.id, "status", TenderStatus.AVAILABLE.value, updates
                )
                if awarded is None:
                    current = self.store.get(TENDERS, tender.id)
                    raise AlreadyAwarded(f"Tender {tender.id} is already {current['status']}", current=current)

                tender_domain.ensure_bid_pending(bid)
                accepted = self.store.compare_and_set(
                    BIDS, bid.id, "status", BidStatus.SUBMITTED.value,
                    tender_domain.decision_updates(BidStatus.ACCEPTED, user.user_id, now)
                )
                if accepted is None:
                    raise AlreadyDecided(f"Bid {bid.id} was decided concurrently", current=self.store.get(BIDS, bid.id))

                pending = {"tender_id": tender.id, "status": BidStatus.SUBMITTED.value}
                rejected_ids = [other["id"] for other in self.store.find(BIDS, pending)]
                self.store.update_many(
                    BIDS, pending, tender_domain.decision_updates(BidStatus.REJECTED, user.user_id, now)
                )

                issue = None
                if tender.source_issue_id:
                    issue = self.workflow.move_issue(tender.source_issue_id, WorkflowStage.IN_PROGRESS, user, events)
                    self.workflow.record_assignment(
                        issue.id,
                        AssignmentType.DEPARTMENT_TO_CONTRACTOR,
                        user,
                        assigned_to=bid.contractor_id,
                        department_id=tender.department_id,
                        notes=f"Bid {bid.id} accepted for {bid.amount}"
                    )

                return {
                    "bid": accepted,
                    "tender": awarded,
                    "issue": _doc(issue),
                    "rejected_bid_ids": rejected_ids
                }

            snapshot = self.store.run_in_transaction(unit)
            logger.info(
                "Bid accepted",
                extra={
                    "bid_id": bid_id,
                    "tender_id": snapshot["tender"]["id"],
                    "contractor_id": snapshot["bid"]["contractor_id"],
                    "rejected_bids": len(snapshot["rejected_bid_ids"])
                }
            )
            self.workflow.publish(events)
            return snapshot

    def reject_bid(self, bid_id: str, user: UserContext) -> Dict[str, Any]:
        """
        Reject a submitted bid. No other record changes.

        Raises:
            AlreadyDecided: If the bid is not submitted
        """
        with tracer.start_as_current_span("tendering.reject_bid") as span:
            span.set_attributes({"bid.id": bid_id, "user.id": user.user_id})
            _require(check_role(user, TENDER_MANAGER_ROLES, "reject bids"))

            def unit() -> Dict[str, Any]:
                bid = self.get_bid(bid_id)
                tender = self.get_tender(bid.tender_id)
                self._manager_scope(user, tender)
                tender_domain.ensure_bid_pending(bid)

                rejected = self.store.compare_and_set(
                    BIDS, bid.id, "status", BidStatus.SUBMITTED.value,
                    tender_domain.decision_updates(BidStatus.REJECTED, user.user_id, utcnow())
                )
                if rejected is None:
                    raise AlreadyDecided(f"Bid {bid.id} was decided concurrently", current=self.store.get(BIDS, bid.id))

                return {
                    "bid": rejected,
                    "tender": tender.to_document(),
                    "issue": _doc(self._source_issue(tender))
                }

            return self.store.run_in_transaction(unit)

    def start_work(self, tender_id: str, user: UserContext) -> Tender:
        """
        Move an awarded tender to work_in_progress.

        Raises:
            Unauthorized: If the caller is not the awarded contractor
            InvalidTransition: If the tender is not awarded
        """
        with tracer.start_as_current_span("tendering.start_work") as span:
            span.set_attributes({"tender.id": tender_id, "user.id": user.user_id})

            def unit() -> Tender:
                tender = self.get_tender(tender_id)
                tender_domain.ensure_awarded_contractor(tender, user.user_id)
                if tender.status == TenderStatus.WORK_IN_PROGRESS:
                    return tender
                if tender.status != TenderStatus.AWARDED:
                    raise InvalidTransition(
                        f"Tender {tender.id} is {tender.status}; only awarded tenders can start",
                        current=tender.to_document()
                    )
                now = utcnow()
                return self._set_tender_status(tender, TenderStatus.AWARDED, {
                    "status": TenderStatus.WORK_IN_PROGRESS.value,
                    "work_started_at": now,
                    "updated_by": user.user_id,
                    "updated_at": now
                })

            return self.store.run_in_transaction(unit)

    def submit_work_progress(self, request: SubmitWorkProgressRequest, user: UserContext) -> Dict[str, Any]:
        """
        Record a progress update or completion claim from the awarded contractor.

        An awarded tender starts work implicitly. A completion claim moves
        the tender to work_completed and the issue to department_review.

        Returns:
            Snapshot with work_progress, tender and issue

        Raises:
            Unauthorized: If the caller is not the awarded contractor
            InvalidTransition: If the tender is not open for work or a completion is pending
        """
        events: List[StageChange] = []

        with tracer.start_as_current_span("tendering.submit_work_progress") as span:
            span.set_attributes({
                "tender.id": request.tender_id,
                "user.id": user.user_id,
                "progress.type": str(request.progress_type)
            })

            def unit() -> Dict[str, Any]:
                events.clear()
                tender = self.get_tender(request.tender_id)
                tender_domain.ensure_awarded_contractor(tender, user.user_id)
                tender_domain.ensure_work_open(tender)

                now = utcnow()
                if tender.status == TenderStatus.AWARDED:
                    tender = self._set_tender_status(tender, TenderStatus.AWARDED, {
                        "status": TenderStatus.WORK_IN_PROGRESS.value,
                        "work_started_at": now,
                        "updated_by": user.user_id,
                        "updated_at": now
                    })

                progress = tender_domain.build_progress(
                    tender,
                    user.user_id,
                    request.progress_type,
                    request.progress_percentage,
                    request.description
                )
                self.store.create(WORK_PROGRESS, progress.to_document())

                issue = None
                if progress.progress_type == ProgressType.COMPLETION:
                    tender = self._set_tender_status(tender, TenderStatus.WORK_IN_PROGRESS, {
                        "status": TenderStatus.WORK_COMPLETED.value,
                        "updated_by": user.user_id,
                        "updated_at": now
                    })
                    if tender.source_issue_id:
                        issue = self.workflow.move_issue(
                            tender.source_issue_id,
                            WorkflowStage.DEPARTMENT_REVIEW,
                            user,
                            events,
                            enforce_role=False
                        )

                return {
                    "work_progress": progress.to_document(),
                    "tender": tender.to_document(),
                    "issue": _doc(issue)
                }

            snapshot = self.store.run_in_transaction(unit)
            logger.info(
                "Work progress submitted",
                extra={
                    "progress_id": snapshot["work_progress"]["id"],
                    "tender_id": request.tender_id,
                    "progress_type": snapshot["work_progress"]["progress_type"],
                    "percentage": snapshot["work_progress"]["progress_percentage"]
                }
            )
            self.workflow.publish(events)
            return snapshot

    def verify_work_progress(
        self,
        progress_id: str,
        request: VerifyWorkProgressRequest,
        user: UserContext
    ) -> Dict[str, Any]:
        """
        Approve or reject a completion claim.

        Approval completes the tender and resolves the issue. Rejection
        returns the tender to work_in_progress and the issue to in_progress
        so the contractor can submit a new completion.

        Raises:
            NotPendingVerification: If the record is not a submitted completion
        """
        events: List[StageChange] = []

        with tracer.start_as_current_span("tendering.verify_work_progress") as span:
            span.set_attributes({
                "progress.id": progress_id,
                "user.id": user.user_id,
                "verification.approved": request.approved
            })
            _require(check_role(user, TENDER_MANAGER_ROLES, "verify work"))

            def unit() -> Dict[str, Any]:
                events.clear()
                progress = self.get_progress(progress_id)
                tender_domain.ensure_pending_completion(progress)
                tender = self.get_tender(progress.tender_id)
                self._manager_scope(user, tender)

                now = utcnow()
                verdict = ProgressStatus.APPROVED if request.approved else ProgressStatus.REJECTED
                verified = self.store.compare_and_set(
                    WORK_PROGRESS, progress.id, "status", ProgressStatus.SUBMITTED.value, {
                        "status": verdict.value,
                        "verified_by": user.user_id,
                        "verified_at": now,
                        "verification_notes": request.notes,
                        "updated_by": user.user_id,
                        "updated_at": now
                    }
                )
                if verified is None:
                    raise NotPendingVerification(
                        f"Work progress {progress.id} was verified concurrently",
                        current=self.store.get(WORK_PROGRESS, progress.id)
                    )

                issue = None
                if request.approved:
                    tender = self._set_tender_status(tender, TenderStatus.WORK_COMPLETED, {
                        "status": TenderStatus.COMPLETED.value,
                        "completed_at": now,
                        "updated_by": user.user_id,
                        "updated_at": now
                    })
                    if tender.source_issue_id:
                        issue = self.workflow.move_issue(
                            tender.source_issue_id, WorkflowStage.RESOLVED, user, events
                        )
                else:
                    tender = self._set_tender_status(tender, TenderStatus.WORK_COMPLETED, {
                        "status": TenderStatus.WORK_IN_PROGRESS.value,
                        "updated_by": user.user_id,
                        "updated_at": now
                    })
                    if tender.source_issue_id:
                        issue = self.workflow.move_issue(
                            tender.source_issue_id,
                            WorkflowStage.IN_PROGRESS,
                            user,
                            events,
                            allow_reversal=True,
                            enforce_role=False
                        )

                return {
                    "work_progress": verified,
                    "tender": tender.to_document(),
                    "issue": _doc(issue)
                }

            snapshot = self.store.run_in_transaction(unit)
            logger.info(
                "Work progress verified",
                extra={
                    "progress_id": progress_id,
                    "tender_id": snapshot["tender"]["id"],
                    "approved": request.approved
                }
            )
            self.workflow.publish(events)
            return snapshot

    def cancel_tender(self, tender_id: str, user: UserContext) -> Dict[str, Any]:
        """
        Cancel an available tender and return its issue to department_assigned.

        Raises:
            ConflictingTender: If the tender was already awarded
        """
        events: List[StageChange] = []

        with tracer.start_as_current_span("tendering.cancel_tender") as span:
            span.set_attributes({"tender.id": tender_id, "user.id": user.user_id})
            _require(check_role(user, TENDER_MANAGER_ROLES, "cancel tenders"))

            def unit() -> Dict[str, Any]:
                events.clear()
                tender = self.get_tender(tender_id)
                self._manager_scope(user, tender)
                if tender.status == TenderStatus.CANCELLED:
                    return {"tender": tender.to_document(), "issue": _doc(self._source_issue(tender))}

                tender = self.workflow.cancel_tender_records(tender, user)
                issue = self._source_issue(tender)
                if (
                    issue is not None
                    and not issue.is_terminal()
                    and issue.workflow_stage == WorkflowStage.CONTRACTOR_ASSIGNED
                ):
                    issue = self.workflow.move_issue(
                        issue.id,
                        WorkflowStage.DEPARTMENT_ASSIGNED,
                        user,
                        events,
                        allow_reversal=True,
                        enforce_role=False
                    )
                return {"tender": tender.to_document(), "issue": _doc(issue)}

            snapshot = self.store.run_in_transaction(unit)
            self.workflow.publish(events)
            return snapshot

    # Queries

    def get_tender_with_bids(self, tender_id: str, user: UserContext) -> Dict[str, Any]:
        """Tender with its bids; contractors only see their own bids."""
        with tracer.start_as_current_span("tendering.get_tender") as span:
            span.set_attribute("tender.id", tender_id)
            tender = self.get_tender(tender_id)
            filters = {"contractor_id": user.user_id} if user.role == UserRole.CONTRACTOR else None
            bids = self.store.find_by_tender(BIDS, tender.id, filters)
            return {**tender.to_document(), "bids": bids}

    def list_tenders(
        self,
        status: Optional[str] = None,
        department: Optional[str] = None,
        page: int = 1,
        page_size: int = 20
    ) -> PaginationResult:
        with tracer.start_as_current_span("tendering.list_tenders"):
            filters: Dict[str, Any] = {}
            if status:
                filters["status"] = TenderStatus(status).value
            if department:
                filters["department_id"] = department
            return self.store.paginate(TENDERS, filters, page, page_size)

    def list_work_progress(self, tender_id: str, user: UserContext) -> List[Dict[str, Any]]:
        """
        Progress records for a tender, oldest first.

        Raises:
            Unauthorized: Unless the caller is the awarded contractor or manages the tender
        """
        with tracer.start_as_current_span("tendering.list_work_progress") as span:
            span.set_attributes({"tender.id": tender_id, "user.id": user.user_id})
            tender = self.get_tender(tender_id)
            if user.role == UserRole.CONTRACTOR:
                tender_domain.ensure_awarded_contractor(tender, user.user_id)
            else:
                _require(check_role(user, TENDER_MANAGER_ROLES, "view work progress"))
                self._manager_scope(user, tender)
            return self.store.find_by_tender(WORK_PROGRESS, tender.id)

    def contractor_stats(
        self,
        contractor_id: str,
        user: UserContext,
        department_id: Optional[str] = None
    ) -> ContractorStats:
        """
        Project and earnings summary for a contractor.

        Raises:
            Unauthorized: If a contractor asks for someone else's stats
        """
        with tracer.start_as_current_span("tendering.contractor_stats") as span:
            span.set_attributes({"contractor.id": contractor_id, "user.id": user.user_id})
            is_self = user.role == UserRole.CONTRACTOR and user.user_id == contractor_id
            if not is_self:
                _require(check_role(user, TENDER_MANAGER_ROLES, "view contractor stats"))

            filters: Dict[str, Any] = {"awarded_contractor_id": contractor_id}
            if department_id:
                filters["department_id"] = department_id
            tenders = [Tender.model_validate(doc) for doc in self.store.find(TENDERS, filters)]
            return tender_domain.compute_contractor_stats(contractor_id, tenders)
