# SPDX-License-Identifier: Apache-2.0

"""
Tests for the tender lifecycle: bidding, award, work progress and verification.
"""

import pytest

from civic_api.domain.errors import (
    AlreadyAwarded,
    AlreadyDecided,
    ConflictingTender,
    DuplicateTender,
    InvalidTransition,
    NoResponsibleActor,
    NotPendingVerification,
    TenderClosed,
    Unauthorized
)
from civic_api.models.enums import (
    AssignmentType,
    BidStatus,
    IssueStatus,
    ProgressStatus,
    TenderStatus,
    WorkflowStage
)
from civic_api.models.requests import SubmitWorkProgressRequest, VerifyWorkProgressRequest
from civic_api.services.store import ASSIGNMENTS, BIDS, ISSUES, TENDERS, StoreUnavailable


class TestCreateTender:

    def test_creates_tender_and_moves_issue(self, tender_service, workflow_service, open_tender, roads_department):
        issue = workflow_service.get_issue(open_tender.source_issue_id)

        assert open_tender.status == TenderStatus.AVAILABLE
        assert open_tender.department_id == roads_department.id
        assert open_tender.title == "Tender: Pothole on Main Street"
        assert issue.workflow_stage == WorkflowStage.CONTRACTOR_ASSIGNED
        assert issue.status == IssueStatus.IN_PROGRESS

    def test_duplicate_tender_rejected(self, tender_service, open_tender, tender_request, roads_admin):
        with pytest.raises(DuplicateTender):
            tender_service.create_tender(tender_request(open_tender.source_issue_id), roads_admin)

    def test_issue_must_be_department_assigned(
        self, tender_service, workflow_service, report_request, tender_request, citizen, roads_admin, roads_department
    ):
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(NoResponsibleActor):
            tender_service.create_tender(tender_request(issue.id), roads_admin)
        with pytest.raises(InvalidTransition):
            tender_service.create_tender(tender_request(issue.id, department_id=roads_department.id), roads_admin)
        # Rolled back with the failed transition
        assert workflow_service.active_tender_for(issue.id) is None

    def test_other_department_cannot_tender(self, tender_service, assigned_issue, tender_request, water_admin):
        with pytest.raises(Unauthorized):
            tender_service.create_tender(tender_request(assigned_issue.id), water_admin)

    def test_citizen_cannot_tender(self, tender_service, assigned_issue, tender_request, citizen):
        with pytest.raises(Unauthorized):
            tender_service.create_tender(tender_request(assigned_issue.id), citizen)


class TestBidding:

    def test_submit_bid(self, tender_service, open_tender, bid_request, contractor):
        bid = tender_service.submit_bid(open_tender.id, bid_request(1800), contractor)
        assert bid.status == BidStatus.SUBMITTED
        assert bid.contractor_id == contractor.user_id

    def test_only_contractors_bid(self, tender_service, open_tender, bid_request, roads_admin):
        with pytest.raises(Unauthorized):
            tender_service.submit_bid(open_tender.id, bid_request(), roads_admin)

    def test_bid_on_awarded_tender_rejected(self, tender_service, awarded_tender, bid_request, contractor):
        with pytest.raises(TenderClosed):
            tender_service.submit_bid(awarded_tender.id, bid_request(), contractor)

    def test_contractor_sees_only_own_bids(self, tender_service, open_tender, bid_request, contractor,
                                           other_contractor, roads_admin):
        tender_service.submit_bid(open_tender.id, bid_request(100), contractor)
        tender_service.submit_bid(open_tender.id, bid_request(200), other_contractor)

        own = tender_service.get_tender_with_bids(open_tender.id, contractor)["bids"]
        every = tender_service.get_tender_with_bids(open_tender.id, roads_admin)["bids"]
        assert [b["contractor_id"] for b in own] == [contractor.user_id]
        assert len(every) == 2


class TestAcceptBid:

    def test_accept_awards_and_rejects_others(self, tender_service, workflow_service, seeded_store, open_tender,
                                              bid_request, contractor, other_contractor, roads_admin):
        winning = tender_service.submit_bid(open_tender.id, bid_request(2500), contractor)
        losing = tender_service.submit_bid(open_tender.id, bid_request(3000), other_contractor)

        snapshot = tender_service.accept_bid(winning.id, roads_admin)

        assert snapshot["bid"]["status"] == BidStatus.ACCEPTED.value
        assert snapshot["tender"]["status"] == TenderStatus.AWARDED.value
        assert snapshot["tender"]["awarded_contractor_id"] == contractor.user_id
        assert snapshot["tender"]["awarded_amount"] == 2500
        assert snapshot["issue"]["workflow_stage"] == WorkflowStage.IN_PROGRESS.value
        assert snapshot["issue"]["current_assignee_id"] == contractor.user_id
        assert snapshot["rejected_bid_ids"] == [losing.id]
        assert seeded_store.get(BIDS, losing.id)["status"] == BidStatus.REJECTED.value

        trail = seeded_store.find(ASSIGNMENTS, {"issue_id": open_tender.source_issue_id}, sort=("created_at", 1))
        assert trail[-1]["assignment_type"] == AssignmentType.DEPARTMENT_TO_CONTRACTOR.value
        assert trail[-1]["assigned_to"] == contractor.user_id

    def test_accept_is_idempotent(self, tender_service, awarded_tender, roads_admin):
        snapshot = tender_service.accept_bid(awarded_tender.awarded_bid_id, roads_admin)
        assert snapshot["tender"]["status"] == TenderStatus.AWARDED.value
        assert snapshot["rejected_bid_ids"] == []

    def test_second_award_fails_with_current_tender(self, tender_service, awarded_tender, seeded_store, roads_admin):
        losing = seeded_store.find(BIDS, {"tender_id": awarded_tender.id, "status": "rejected"})[0]
        with pytest.raises(AlreadyAwarded) as exc_info:
            tender_service.accept_bid(losing["id"], roads_admin)
        assert exc_info.value.current["awarded_bid_id"] == awarded_tender.awarded_bid_id

    def test_rejected_bid_cannot_be_accepted(self, tender_service, seeded_store, open_tender, bid_request,
                                             contractor, roads_admin):
        bid = tender_service.submit_bid(open_tender.id, bid_request(), contractor)
        tender_service.reject_bid(bid.id, roads_admin)

        with pytest.raises(AlreadyDecided):
            tender_service.accept_bid(bid.id, roads_admin)
        # The tender swap rolled back with the failed unit
        assert tender_service.get_tender(open_tender.id).status == TenderStatus.AVAILABLE

    def test_failed_issue_move_leaves_no_partial_award(self, tender_service, seeded_store, open_tender, bid_request,
                                                       contractor, other_contractor, roads_admin, monkeypatch):
        winning = tender_service.submit_bid(open_tender.id, bid_request(2500), contractor)
        losing = tender_service.submit_bid(open_tender.id, bid_request(3000), other_contractor)
        tender_before = seeded_store.get(TENDERS, open_tender.id)
        issue_before = seeded_store.get(ISSUES, open_tender.source_issue_id)
        trail_before = seeded_store.count(ASSIGNMENTS, {"issue_id": open_tender.source_issue_id})

        def store_drops(*args, **kwargs):
            raise StoreUnavailable("Entity store unavailable")

        monkeypatch.setattr(tender_service.workflow, "move_issue", store_drops)

        with pytest.raises(StoreUnavailable):
            tender_service.accept_bid(winning.id, roads_admin)

        assert seeded_store.get(TENDERS, open_tender.id) == tender_before
        assert seeded_store.get(BIDS, winning.id)["status"] == BidStatus.SUBMITTED.value
        assert seeded_store.get(BIDS, losing.id)["status"] == BidStatus.SUBMITTED.value
        assert seeded_store.get(ISSUES, open_tender.source_issue_id) == issue_before
        assert seeded_store.count(ASSIGNMENTS, {"issue_id": open_tender.source_issue_id}) == trail_before

    def test_reject_bid_twice(self, tender_service, open_tender, bid_request, contractor, roads_admin):
        bid = tender_service.submit_bid(open_tender.id, bid_request(), contractor)
        snapshot = tender_service.reject_bid(bid.id, roads_admin)
        assert snapshot["bid"]["status"] == BidStatus.REJECTED.value
        assert snapshot["issue"]["workflow_stage"] == WorkflowStage.CONTRACTOR_ASSIGNED.value
        with pytest.raises(AlreadyDecided):
            tender_service.reject_bid(bid.id, roads_admin)


class TestWork:

    def test_only_awarded_contractor_starts(self, tender_service, awarded_tender, contractor, other_contractor):
        with pytest.raises(Unauthorized):
            tender_service.start_work(awarded_tender.id, other_contractor)

        started = tender_service.start_work(awarded_tender.id, contractor)
        assert started.status == TenderStatus.WORK_IN_PROGRESS
        assert started.work_started_at is not None
        # Starting again is a no-op
        assert tender_service.start_work(awarded_tender.id, contractor).work_started_at == started.work_started_at

    def test_progress_update_starts_work(self, tender_service, awarded_tender, contractor):
        snapshot = tender_service.submit_work_progress(
            SubmitWorkProgressRequest(
                tender_id=awarded_tender.id, progress_type="update", progress_percentage=40, description="Dug out"
            ),
            contractor
        )
        assert snapshot["work_progress"]["progress_percentage"] == 40
        assert snapshot["tender"]["status"] == TenderStatus.WORK_IN_PROGRESS.value
        assert snapshot["issue"] is None
        assert [p["id"] for p in tender_service.list_work_progress(awarded_tender.id, contractor)] == [
            snapshot["work_progress"]["id"]
        ]

    def test_progress_visible_only_to_awardee_and_managers(self, tender_service, awarded_tender, contractor,
                                                           other_contractor, citizen, roads_admin, water_admin):
        tender_service.submit_work_progress(
            SubmitWorkProgressRequest(tender_id=awarded_tender.id, progress_type="update", description="Dug out"),
            contractor
        )
        assert len(tender_service.list_work_progress(awarded_tender.id, roads_admin)) == 1
        for outsider in (other_contractor, citizen, water_admin):
            with pytest.raises(Unauthorized):
                tender_service.list_work_progress(awarded_tender.id, outsider)

    def test_completion_moves_issue_to_review(self, tender_service, awarded_tender, completion_request, contractor):
        snapshot = tender_service.submit_work_progress(completion_request(awarded_tender.id), contractor)

        assert snapshot["work_progress"]["progress_percentage"] == 100
        assert snapshot["tender"]["status"] == TenderStatus.WORK_COMPLETED.value
        assert snapshot["issue"]["workflow_stage"] == WorkflowStage.DEPARTMENT_REVIEW.value
        assert snapshot["issue"]["status"] == IssueStatus.IN_PROGRESS.value

    def test_no_progress_while_completion_pending(self, tender_service, awarded_tender, completion_request,
                                                  contractor):
        tender_service.submit_work_progress(completion_request(awarded_tender.id), contractor)
        with pytest.raises(InvalidTransition):
            tender_service.submit_work_progress(completion_request(awarded_tender.id), contractor)

    def test_progress_on_available_tender_rejected(self, tender_service, open_tender, completion_request,
                                                   contractor):
        with pytest.raises(Unauthorized):
            tender_service.submit_work_progress(completion_request(open_tender.id), contractor)


class TestVerification:

    @pytest.fixture
    def completion(self, tender_service, awarded_tender, completion_request, contractor):
        return tender_service.submit_work_progress(completion_request(awarded_tender.id), contractor)["work_progress"]

    def test_approval_resolves_issue(self, tender_service, completion, roads_admin):
        snapshot = tender_service.verify_work_progress(
            completion["id"], VerifyWorkProgressRequest(approved=True, notes="Looks good"), roads_admin
        )

        assert snapshot["work_progress"]["status"] == ProgressStatus.APPROVED.value
        assert snapshot["work_progress"]["verified_by"] == roads_admin.user_id
        assert snapshot["tender"]["status"] == TenderStatus.COMPLETED.value
        assert snapshot["tender"]["completed_at"] is not None
        issue = snapshot["issue"]
        assert issue["workflow_stage"] == WorkflowStage.RESOLVED.value
        assert issue["status"] == IssueStatus.RESOLVED.value
        assert issue["resolved_at"] is not None
        assert issue["current_assignee_id"] is None

    def test_rejection_returns_work_to_contractor(self, tender_service, completion, completion_request,
                                                  contractor, roads_admin):
        snapshot = tender_service.verify_work_progress(
            completion["id"], VerifyWorkProgressRequest(approved=False, notes="Still cracked"), roads_admin
        )

        assert snapshot["work_progress"]["status"] == ProgressStatus.REJECTED.value
        assert snapshot["tender"]["status"] == TenderStatus.WORK_IN_PROGRESS.value
        assert snapshot["issue"]["workflow_stage"] == WorkflowStage.IN_PROGRESS.value
        assert snapshot["issue"]["current_assignee_id"] == contractor.user_id

        # A fresh completion can be submitted
        again = tender_service.submit_work_progress(completion_request(snapshot["tender"]["id"]), contractor)
        assert again["issue"]["workflow_stage"] == WorkflowStage.DEPARTMENT_REVIEW.value

    def test_verify_twice_fails(self, tender_service, completion, roads_admin):
        tender_service.verify_work_progress(completion["id"], VerifyWorkProgressRequest(approved=True), roads_admin)
        with pytest.raises(NotPendingVerification):
            tender_service.verify_work_progress(
                completion["id"], VerifyWorkProgressRequest(approved=True), roads_admin
            )

    def test_contractor_cannot_verify(self, tender_service, completion, contractor):
        with pytest.raises(Unauthorized):
            tender_service.verify_work_progress(
                completion["id"], VerifyWorkProgressRequest(approved=True), contractor
            )


class TestCancelTender:

    def test_cancel_restores_department_assigned(self, tender_service, seeded_store, open_tender, bid_request,
                                                 contractor, roads_admin):
        bid = tender_service.submit_bid(open_tender.id, bid_request(), contractor)
        snapshot = tender_service.cancel_tender(open_tender.id, roads_admin)

        assert snapshot["tender"]["status"] == TenderStatus.CANCELLED.value
        assert snapshot["issue"]["workflow_stage"] == WorkflowStage.DEPARTMENT_ASSIGNED.value
        assert seeded_store.get(BIDS, bid.id)["status"] == BidStatus.REJECTED.value

        again = tender_service.cancel_tender(open_tender.id, roads_admin)
        assert again["tender"]["status"] == TenderStatus.CANCELLED.value

    def test_new_tender_after_cancellation(self, tender_service, open_tender, tender_request, roads_admin):
        tender_service.cancel_tender(open_tender.id, roads_admin)
        replacement = tender_service.create_tender(tender_request(open_tender.source_issue_id), roads_admin)
        assert replacement.id != open_tender.id

    def test_awarded_tender_cannot_be_cancelled(self, tender_service, awarded_tender, roads_admin):
        with pytest.raises(ConflictingTender):
            tender_service.cancel_tender(awarded_tender.id, roads_admin)


class TestContractorStats:

    def test_stats_after_completion(self, tender_service, awarded_tender, completion_request, contractor,
                                    roads_admin):
        progress = tender_service.submit_work_progress(completion_request(awarded_tender.id), contractor)
        tender_service.verify_work_progress(
            progress["work_progress"]["id"], VerifyWorkProgressRequest(approved=True), roads_admin
        )

        stats = tender_service.contractor_stats(contractor.user_id, contractor)
        assert stats.total_projects == 1
        assert stats.completed_projects == 1
        assert stats.active_projects == 0
        assert stats.total_earnings == 2500
        assert stats.completion_rate == 100.0
        assert stats.rating is None

    def test_contractor_cannot_view_others(self, tender_service, contractor, other_contractor):
        with pytest.raises(Unauthorized):
            tender_service.contractor_stats(other_contractor.user_id, contractor)

    def test_empty_stats(self, tender_service, roads_admin):
        stats = tender_service.contractor_stats("nobody", roads_admin)
        assert stats.total_projects == 0
        assert stats.completion_rate == 0
