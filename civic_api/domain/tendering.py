# SPDX-License-Identifier: Apache-2.0

"""
Tender and bidding domain logic.

Pure checks and record builders for the tender lifecycle:

    available -> awarded -> work_in_progress -> work_completed -> completed
    available -> cancelled

The checks raise the matching workflow error so that services can call them
inside a unit of work and let the transaction roll back.
"""

from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime
from ..models.entities import Issue, Tender, Bid, WorkProgress
from ..models.enums import TenderStatus, BidStatus, ProgressType, ProgressStatus
from ..models.responses import ContractorStats
from .errors import (
    AlreadyDecided,
    ConflictingTender,
    DuplicateTender,
    InvalidTransition,
    NotPendingVerification,
    TenderClosed,
    Unauthorized
)

WORK_OPEN_STATUSES = (TenderStatus.AWARDED, TenderStatus.WORK_IN_PROGRESS)
ACTIVE_PROJECT_STATUSES = (
    TenderStatus.AWARDED,
    TenderStatus.WORK_IN_PROGRESS,
    TenderStatus.WORK_COMPLETED
)


def ensure_no_active_tender(issue: Issue, existing: Optional[Tender]) -> None:
    """Raise DuplicateTender if the issue already has a non-cancelled tender."""
    if existing is not None and existing.is_active():
        raise DuplicateTender(
            f"Issue {issue.id} already has tender {existing.id} ({existing.status})",
            current=existing.to_document()
        )


def build_tender(
    issue: Issue,
    department_id: str,
    budget_min: float,
    budget_max: float,
    deadline_date: datetime,
    actor_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None
) -> Tender:
    """Create an available tender for an issue, defaulting copy from the issue."""
    return Tender(
        source_issue_id=issue.id,
        department_id=department_id,
        title=title or f"Tender: {issue.title}"[:200],
        description=description or issue.description,
        budget_min=budget_min,
        budget_max=budget_max,
        deadline_date=deadline_date,
        status=TenderStatus.AVAILABLE,
        created_by=actor_id,
        updated_by=actor_id
    )


def ensure_open_for_bids(tender: Tender) -> None:
    if not tender.is_open_for_bids():
        raise TenderClosed(
            f"Tender {tender.id} is {tender.status} and no longer accepts bids",
            current=tender.to_document()
        )


def build_bid(
    tender: Tender,
    contractor_id: str,
    amount: float,
    details: str,
    timeline: str,
    now: datetime
) -> Bid:
    return Bid(
        tender_id=tender.id,
        contractor_id=contractor_id,
        amount=amount,
        details=details,
        timeline=timeline,
        status=BidStatus.SUBMITTED,
        submitted_at=now,
        created_by=contractor_id,
        updated_by=contractor_id
    )


def ensure_bid_pending(bid: Bid) -> None:
    if not bid.is_pending():
        raise AlreadyDecided(
            f"Bid {bid.id} was already {bid.status}",
            current=bid.to_document()
        )


def is_accepted_award(bid: Bid, tender: Tender) -> bool:
    """Check if the bid is the tender's recorded winner, for idempotent retries."""
    return bid.status == BidStatus.ACCEPTED and tender.awarded_bid_id == bid.id


def award_updates(bid: Bid, now: datetime) -> Dict[str, Any]:
    """Tender fields set by accepting a bid, applied with the available -> awarded swap."""
    return {
        "status": TenderStatus.AWARDED.value,
        "awarded_contractor_id": bid.contractor_id,
        "awarded_amount": bid.amount,
        "awarded_bid_id": bid.id,
        "updated_at": now,
    }


def decision_updates(status: BidStatus, actor_id: str, now: datetime) -> Dict[str, Any]:
    return {
        "status": status.value,
        "decided_at": now,
        "updated_by": actor_id,
        "updated_at": now,
    }


def ensure_awarded_contractor(tender: Tender, contractor_id: str) -> None:
    if tender.awarded_contractor_id != contractor_id:
        raise Unauthorized(f"Only the awarded contractor can work on tender {tender.id}")


def ensure_work_open(tender: Tender) -> None:
    """Raise InvalidTransition unless the tender is awarded or already in progress."""
    if tender.status not in WORK_OPEN_STATUSES:
        raise InvalidTransition(
            f"Tender {tender.id} is {tender.status}; work progress needs an awarded tender",
            current=tender.to_document()
        )


def build_progress(
    tender: Tender,
    contractor_id: str,
    progress_type: str,
    progress_percentage: Optional[int],
    description: Optional[str]
) -> WorkProgress:
    if ProgressType(progress_type) == ProgressType.COMPLETION and progress_percentage is None:
        progress_percentage = 100
    return WorkProgress(
        tender_id=tender.id,
        contractor_id=contractor_id,
        progress_type=progress_type,
        status=ProgressStatus.SUBMITTED,
        progress_percentage=progress_percentage,
        description=description,
        created_by=contractor_id,
        updated_by=contractor_id
    )


def ensure_pending_completion(progress: WorkProgress) -> None:
    if not progress.is_pending_completion():
        raise NotPendingVerification(
            f"Work progress {progress.id} is a {progress.progress_type} record with status {progress.status}",
            current=progress.to_document()
        )


def ensure_cancellable(tender: Tender) -> None:
    """Only tenders that were never awarded can be cancelled."""
    if tender.status != TenderStatus.AVAILABLE:
        raise ConflictingTender(
            f"Tender {tender.id} is {tender.status} and can no longer be cancelled",
            current=tender.to_document()
        )


def cancel_updates(actor_id: str, now: datetime) -> Dict[str, Any]:
    return {
        "status": TenderStatus.CANCELLED.value,
        "updated_by": actor_id,
        "updated_at": now,
    }


def compute_contractor_stats(contractor_id: str, tenders: Iterable[Tender]) -> ContractorStats:
    """
    Summarize a contractor's awarded tenders.

    Earnings count completed tenders only. Rating is left unset until there
    is a defined source for it.
    """
    awarded: List[Tender] = [t for t in tenders if t.awarded_contractor_id == contractor_id]
    completed = [t for t in awarded if t.status == TenderStatus.COMPLETED]
    active = [t for t in awarded if t.status in ACTIVE_PROJECT_STATUSES]
    total = len(awarded)

    return ContractorStats(
        contractor_id=contractor_id,
        total_projects=total,
        completed_projects=len(completed),
        active_projects=len(active),
        total_earnings=sum(t.awarded_amount or 0 for t in completed),
        completion_rate=round(len(completed) * 100.0 / total, 1) if total else 0.0,
        rating=None
    )
