# SPDX-License-Identifier: Apache-2.0

"""
Tests for issue workflow operations against the in-memory store.
"""

import pytest

from civic_api.domain.errors import (
    ConflictingTender,
    InvalidTransition,
    NoResponsibleActor,
    NotFound,
    Unauthorized,
    ValidationException
)
from civic_api.models.enums import (
    AssignmentType,
    IssueCategory,
    IssuePriority,
    IssueStatus,
    TenderStatus,
    WorkflowStage
)
from civic_api.services.store import ASSIGNMENTS, PROFILES
from civic_api.services.workflow import WorkflowService


class TestReport:

    def test_report_routes_to_area_admin_and_awards_points(
        self, workflow_service, seeded_store, report_request, citizen, area_admin
    ):
        issue = workflow_service.report(report_request(priority=IssuePriority.URGENT), citizen)

        assert issue.workflow_stage == WorkflowStage.REPORTED
        assert issue.status == IssueStatus.PENDING
        assert issue.current_assignee_id == area_admin.user_id
        assert not issue.requires_manual_assignment
        assert seeded_store.get(PROFILES, citizen.user_id)["points"] == 20

    def test_unroutable_report_is_flagged_not_dropped(self, workflow_service, report_request, citizen):
        issue = workflow_service.report(report_request(area="Harbour"), citizen)

        assert issue.requires_manual_assignment
        assert issue.current_assignee_id is None
        assert workflow_service.get(issue.id)["id"] == issue.id

    def test_contractor_cannot_report(self, workflow_service, report_request, contractor):
        with pytest.raises(Unauthorized):
            workflow_service.report(report_request(), contractor)

    def test_report_emits_event(self, seeded_store, report_request, citizen):
        events = []
        service = WorkflowService(seeded_store, listeners=[events.append])
        issue = service.report(report_request(), citizen)

        assert len(events) == 1
        assert events[0].issue_id == issue.id
        assert events[0].from_stage is None
        assert events[0].to_stage == "reported"


class TestAdvance:

    def test_area_admin_assigns_department(self, workflow_service, seeded_store, report_request, citizen, area_admin,
                                           roads_department, roads_admin):
        issue = workflow_service.report(report_request(), citizen)
        advanced = workflow_service.advance(issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin, notes="Urgent")

        assert advanced.workflow_stage == WorkflowStage.DEPARTMENT_ASSIGNED
        assert advanced.status == IssueStatus.ACKNOWLEDGED
        assert advanced.assigned_department_id == roads_department.id
        assert advanced.current_assignee_id == roads_admin.user_id

        trail = seeded_store.find(ASSIGNMENTS, {"issue_id": issue.id})
        assert len(trail) == 1
        assert trail[0]["assignment_type"] == AssignmentType.AREA_TO_DEPARTMENT.value
        assert trail[0]["notes"] == "Urgent"

    def test_explicit_department(self, workflow_service, report_request, citizen, area_admin, water_department):
        issue = workflow_service.report(report_request(), citizen)
        advanced = workflow_service.advance(
            issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin, department_id=water_department.id
        )
        assert advanced.assigned_department_id == water_department.id

    def test_unknown_department(self, workflow_service, report_request, citizen, area_admin):
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(NotFound):
            workflow_service.advance(issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin, department_id="nope")

    def test_no_department_for_category(self, workflow_service, report_request, citizen, area_admin):
        issue = workflow_service.report(report_request(category=IssueCategory.SAFETY), citizen)
        with pytest.raises(NoResponsibleActor):
            workflow_service.advance(issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin)

    def test_same_stage_is_idempotent(self, workflow_service, assigned_issue, area_admin):
        again = workflow_service.advance(assigned_issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin)
        assert again.updated_at == assigned_issue.updated_at

    def test_same_stage_still_requires_role(self, workflow_service, assigned_issue, citizen):
        with pytest.raises(InvalidTransition):
            workflow_service.advance(assigned_issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, citizen)

    def test_same_stage_still_requires_scope(self, workflow_service, assigned_issue):
        from civic_api.models.entities import UserContext
        from civic_api.models.enums import UserRole
        north_admin = UserContext(user_id="north", role=UserRole.AREA_SUPER_ADMIN, area="North")
        with pytest.raises(Unauthorized):
            workflow_service.advance(assigned_issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, north_admin)

    def test_back_to_department_assigned_with_active_tender(self, workflow_service, open_tender, area_admin):
        with pytest.raises(ConflictingTender) as exc_info:
            workflow_service.advance(open_tender.source_issue_id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin)
        assert exc_info.value.current["workflow_stage"] == WorkflowStage.CONTRACTOR_ASSIGNED.value
        assert workflow_service.get_issue(open_tender.source_issue_id).workflow_stage == WorkflowStage.CONTRACTOR_ASSIGNED.value

    def test_skipping_stages_rejected(self, workflow_service, report_request, citizen, admin):
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(InvalidTransition) as exc_info:
            workflow_service.advance(issue.id, WorkflowStage.IN_PROGRESS, admin)
        assert exc_info.value.current["workflow_stage"] == "reported"

    def test_role_without_transition_rejected(self, workflow_service, report_request, citizen, roads_admin):
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(InvalidTransition):
            workflow_service.advance(issue.id, WorkflowStage.AREA_REVIEW, roads_admin)

    def test_guard_blocks_contractor_assigned_without_tender(self, workflow_service, assigned_issue, roads_admin):
        with pytest.raises(InvalidTransition):
            workflow_service.advance(assigned_issue.id, WorkflowStage.CONTRACTOR_ASSIGNED, roads_admin)

    def test_area_scope_enforced(self, workflow_service, report_request, citizen):
        from civic_api.models.entities import UserContext
        from civic_api.models.enums import UserRole
        north_admin = UserContext(user_id="north", role=UserRole.AREA_SUPER_ADMIN, area="North")
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(Unauthorized):
            workflow_service.advance(issue.id, WorkflowStage.AREA_REVIEW, north_admin)

    def test_missing_issue(self, workflow_service, area_admin):
        with pytest.raises(NotFound):
            workflow_service.advance("507f1f77bcf86cd799439011", WorkflowStage.AREA_REVIEW, area_admin)


class TestSideEntries:

    def test_acknowledge_pending_issue(self, workflow_service, report_request, citizen, area_admin):
        issue = workflow_service.report(report_request(), citizen)
        acknowledged = workflow_service.acknowledge(issue.id, area_admin)

        assert acknowledged.status == IssueStatus.ACKNOWLEDGED
        assert acknowledged.workflow_stage == WorkflowStage.REPORTED

    def test_acknowledge_keeps_later_status(self, workflow_service, open_tender, roads_admin):
        issue = workflow_service.acknowledge(open_tender.source_issue_id, roads_admin)
        assert issue.status == IssueStatus.IN_PROGRESS

    def test_citizen_cannot_acknowledge(self, workflow_service, report_request, citizen):
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(Unauthorized):
            workflow_service.acknowledge(issue.id, citizen)

    def test_reject_requires_reason(self, workflow_service, report_request, citizen, area_admin):
        issue = workflow_service.report(report_request(), citizen)
        with pytest.raises(ValidationException):
            workflow_service.reject(issue.id, area_admin, "   ")

    def test_reject_is_terminal(self, workflow_service, report_request, citizen, area_admin):
        issue = workflow_service.report(report_request(), citizen)
        rejected = workflow_service.reject(issue.id, area_admin, "Duplicate report")

        assert rejected.status == IssueStatus.REJECTED
        assert rejected.rejection_reason == "Duplicate report"
        assert rejected.current_assignee_id is None
        with pytest.raises(InvalidTransition):
            workflow_service.advance(issue.id, WorkflowStage.AREA_REVIEW, area_admin)
        with pytest.raises(InvalidTransition):
            workflow_service.close(issue.id, area_admin)

    def test_reject_twice_is_idempotent(self, workflow_service, report_request, citizen, area_admin):
        issue = workflow_service.report(report_request(), citizen)
        first = workflow_service.reject(issue.id, area_admin, "Duplicate")
        second = workflow_service.reject(issue.id, area_admin, "Duplicate")
        assert second.updated_at == first.updated_at

    def test_close_cancels_available_tender(self, workflow_service, tender_service, open_tender, roads_admin):
        closed = workflow_service.close(open_tender.source_issue_id, roads_admin, notes="Fixed by utility")

        assert closed.status == IssueStatus.CLOSED
        assert closed.resolution_notes == "Fixed by utility"
        assert tender_service.get_tender(open_tender.id).status == TenderStatus.CANCELLED

    def test_close_blocked_by_awarded_tender(self, workflow_service, awarded_tender, roads_admin):
        with pytest.raises(ConflictingTender):
            workflow_service.close(awarded_tender.source_issue_id, roads_admin)


class TestQueries:

    def test_get_includes_summaries(self, workflow_service, open_tender):
        document = workflow_service.get(open_tender.source_issue_id)
        assert document["id"] == open_tender.source_issue_id
        assert document["reporter"]["full_name"] == "Ana Souza"
        assert document["tender"]["id"] == open_tender.id
        assert document["tender"]["status"] == TenderStatus.AVAILABLE.value
        assert [a["assignment_type"] for a in document["assignments"]] == ["area_to_department"]

    def test_list_filters(self, workflow_service, report_request, citizen, assigned_issue):
        workflow_service.report(report_request(), citizen)

        assigned = workflow_service.list(stage="department_assigned")
        assert [i["id"] for i in assigned.items] == [assigned_issue.id]
        assert workflow_service.list(area="Central").total == 2
        assert workflow_service.list(status="pending").total == 1
        assert workflow_service.list(department=assigned_issue.assigned_department_id).total == 1
