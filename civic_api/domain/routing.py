# SPDX-License-Identifier: Apache-2.0

"""
Assignment routing domain logic.

Pure functions that decide who owns an issue at each workflow stage, given
the area/department taxonomy. Department -> contractor routing is driven by
tender awards, so the awarded contractor is passed in rather than looked up.
"""

from typing import List, Optional
from dataclasses import dataclass, field
from ..models.entities import Issue, Area, Department
from ..models.enums import WorkflowStage
from .errors import NoResponsibleActor
from .workflow import is_terminal

AREA_STAGES = (WorkflowStage.REPORTED, WorkflowStage.AREA_REVIEW)
DEPARTMENT_STAGES = (
    WorkflowStage.DEPARTMENT_ASSIGNED,
    WorkflowStage.CONTRACTOR_ASSIGNED,
    WorkflowStage.DEPARTMENT_REVIEW,
)


@dataclass
class Taxonomy:
    """Areas and departments known to the router."""
    areas: List[Area] = field(default_factory=list)
    departments: List[Department] = field(default_factory=list)

    def department(self, department_id: Optional[str]) -> Optional[Department]:
        for department in self.departments:
            if department.id == department_id:
                return department
        return None


@dataclass
class RoutingDecision:
    """Next responsible actor for an issue."""
    actor_id: Optional[str]
    department_id: Optional[str] = None


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def find_area(taxonomy: Taxonomy, area: str, ward: Optional[str] = None) -> Optional[Area]:
    """
    Find the taxonomy entry for an (area, ward) pair.

    A ward-specific entry wins; otherwise the area-wide entry (no ward)
    is used.
    """
    area_wide = None
    for entry in taxonomy.areas:
        if not _same(entry.name, area):
            continue
        if ward and entry.ward and _same(entry.ward, ward):
            return entry
        if not entry.ward and area_wide is None:
            area_wide = entry
    return area_wide


def resolve_department(issue: Issue, taxonomy: Taxonomy) -> Department:
    """
    Pick the department that should own an issue.

    Maps the issue category through the area's department mapping, falling
    back to any department registered for that category.

    Raises:
        NoResponsibleActor: If no department handles the issue
    """
    area = find_area(taxonomy, issue.location.area, issue.location.ward)
    if area is not None:
        department_id = area.departments_by_category.get(issue.category)
        department = taxonomy.department(department_id)
        if department is not None:
            return department

    for department in taxonomy.departments:
        if department.category == issue.category:
            return department

    raise NoResponsibleActor(
        f"No department handles {issue.category} issues in {issue.location.area}",
        current=issue.to_document()
    )


def route(
    issue: Issue,
    taxonomy: Taxonomy,
    awarded_contractor_id: Optional[str] = None
) -> RoutingDecision:
    """
    Resolve the next responsible actor for an issue's current stage.

    Args:
        issue: Issue to route
        taxonomy: Areas and departments
        awarded_contractor_id: Winner of the issue's tender, if any

    Returns:
        RoutingDecision, with no actor once the issue is resolved or terminal

    Raises:
        NoResponsibleActor: If the stage needs an owner and none is configured
    """
    stage = WorkflowStage(issue.workflow_stage)

    if is_terminal(issue) or stage == WorkflowStage.RESOLVED:
        return RoutingDecision(actor_id=None, department_id=issue.assigned_department_id)

    if stage in AREA_STAGES:
        area = find_area(taxonomy, issue.location.area, issue.location.ward)
        if area is None or not area.admin_id:
            raise NoResponsibleActor(
                f"No area super admin configured for {issue.location.area}",
                current=issue.to_document()
            )
        return RoutingDecision(actor_id=area.admin_id)

    if stage in DEPARTMENT_STAGES:
        department = taxonomy.department(issue.assigned_department_id)
        if department is None or not department.admin_id:
            raise NoResponsibleActor(
                f"No admin configured for department {issue.assigned_department_id}",
                current=issue.to_document()
            )
        return RoutingDecision(actor_id=department.admin_id, department_id=department.id)

    # in_progress
    if not awarded_contractor_id:
        raise NoResponsibleActor(
            f"Issue {issue.id} is in progress without an awarded contractor",
            current=issue.to_document()
        )
    return RoutingDecision(actor_id=awarded_contractor_id, department_id=issue.assigned_department_id)
