# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the assignment router.
"""

import pytest

from civic_api.domain.errors import NoResponsibleActor
from civic_api.domain.routing import Taxonomy, find_area, resolve_department, route
from civic_api.models.base import utcnow
from civic_api.models.entities import Area, Department, Issue, Location
from civic_api.models.enums import IssueCategory, IssueStatus, WorkflowStage


@pytest.fixture
def taxonomy():
    roads = Department(id="roads", name="Roads", category=IssueCategory.ROADS, admin_id="roads-admin")
    parks = Department(id="parks", name="Parks", category=IssueCategory.PARKS, admin_id=None)
    return Taxonomy(
        areas=[
            Area(name="Central", admin_id="central-admin", departments_by_category={"roads": "roads"}),
            Area(name="Central", ward="Ward 7", admin_id="ward7-admin", departments_by_category={}),
        ],
        departments=[roads, parks]
    )


def issue_at(stage, area="Central", ward=None, category=IssueCategory.ROADS, department=None, status=None):
    status = status or {
        WorkflowStage.RESOLVED: IssueStatus.RESOLVED,
    }.get(stage, IssueStatus.PENDING)
    return Issue(
        title="Flooded underpass",
        description="Water pooling after rain",
        reporter_id="citizen-1",
        category=category,
        location=Location(area=area, ward=ward),
        workflow_stage=stage,
        status=status,
        assigned_department_id=department,
        resolved_at=utcnow() if status == IssueStatus.RESOLVED else None
    )


class TestFindArea:

    def test_ward_specific_entry_wins(self, taxonomy):
        assert find_area(taxonomy, "central", "ward 7").admin_id == "ward7-admin"

    def test_falls_back_to_area_wide_entry(self, taxonomy):
        assert find_area(taxonomy, "Central", "Ward 2").admin_id == "central-admin"

    def test_unknown_area(self, taxonomy):
        assert find_area(taxonomy, "Harbour") is None


class TestRoute:

    @pytest.mark.parametrize("stage", [WorkflowStage.REPORTED, WorkflowStage.AREA_REVIEW])
    def test_area_stages_go_to_area_admin(self, taxonomy, stage):
        assert route(issue_at(stage), taxonomy).actor_id == "central-admin"

    @pytest.mark.parametrize("stage", [
        WorkflowStage.DEPARTMENT_ASSIGNED,
        WorkflowStage.CONTRACTOR_ASSIGNED,
        WorkflowStage.DEPARTMENT_REVIEW
    ])
    def test_department_stages_go_to_department_admin(self, taxonomy, stage):
        decision = route(issue_at(stage, department="roads"), taxonomy)
        assert decision.actor_id == "roads-admin"
        assert decision.department_id == "roads"

    def test_in_progress_goes_to_awarded_contractor(self, taxonomy):
        issue = issue_at(WorkflowStage.IN_PROGRESS, department="roads")
        assert route(issue, taxonomy, awarded_contractor_id="contractor-1").actor_id == "contractor-1"

    def test_in_progress_without_award_fails(self, taxonomy):
        with pytest.raises(NoResponsibleActor):
            route(issue_at(WorkflowStage.IN_PROGRESS, department="roads"), taxonomy)

    def test_resolved_has_no_actor(self, taxonomy):
        assert route(issue_at(WorkflowStage.RESOLVED, department="roads"), taxonomy).actor_id is None

    def test_terminal_has_no_actor(self, taxonomy):
        issue = issue_at(WorkflowStage.AREA_REVIEW, status=IssueStatus.CLOSED)
        assert route(issue, taxonomy).actor_id is None

    def test_unknown_area_fails(self, taxonomy):
        with pytest.raises(NoResponsibleActor):
            route(issue_at(WorkflowStage.REPORTED, area="Harbour"), taxonomy)

    def test_department_without_admin_fails(self, taxonomy):
        with pytest.raises(NoResponsibleActor):
            route(issue_at(WorkflowStage.DEPARTMENT_ASSIGNED, department="parks"), taxonomy)


class TestResolveDepartment:

    def test_uses_area_mapping(self, taxonomy):
        assert resolve_department(issue_at(WorkflowStage.REPORTED), taxonomy).id == "roads"

    def test_falls_back_to_category(self, taxonomy):
        issue = issue_at(WorkflowStage.REPORTED, area="Harbour", category=IssueCategory.PARKS)
        assert resolve_department(issue, taxonomy).id == "parks"

    def test_no_department_for_category(self, taxonomy):
        issue = issue_at(WorkflowStage.REPORTED, category=IssueCategory.SAFETY)
        with pytest.raises(NoResponsibleActor) as exc_info:
            resolve_department(issue, taxonomy)
        assert exc_info.value.status_code == 422
