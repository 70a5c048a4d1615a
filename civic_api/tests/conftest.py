# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import timedelta
from typing import Dict

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['ENTITY_STORE'] = 'memory'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['JWT_SECRET'] = 'test-secret'

from civic_api.app import create_app
from civic_api.config import Settings
from civic_api.models.base import utcnow
from civic_api.models.entities import Area, Department, Location, UserContext
from civic_api.models.enums import IssueCategory, IssuePriority, UserRole, WorkflowStage
from civic_api.models.requests import (
    CreateTenderRequest,
    ReportIssueRequest,
    SubmitBidRequest,
    SubmitWorkProgressRequest
)
from civic_api.services.memory_store import MemoryStore
from civic_api.services.store import AREAS, DEPARTMENTS
from civic_api.services.tendering import TenderService
from civic_api.services.workflow import WorkflowService

AREA_ADMIN_ID = "area-admin-1"
ROADS_ADMIN_ID = "roads-admin-1"
WATER_ADMIN_ID = "water-admin-1"


@pytest.fixture
def store():
    """Empty in-memory entity store."""
    return MemoryStore()


@pytest.fixture
def roads_department():
    return Department(name="Roads and Works", category=IssueCategory.ROADS, admin_id=ROADS_ADMIN_ID)


@pytest.fixture
def water_department():
    return Department(name="Water Board", category=IssueCategory.UTILITIES, admin_id=WATER_ADMIN_ID)


@pytest.fixture
def central_area(roads_department, water_department):
    return Area(
        name="Central",
        admin_id=AREA_ADMIN_ID,
        departments_by_category={
            IssueCategory.ROADS.value: roads_department.id,
            IssueCategory.UTILITIES.value: water_department.id
        }
    )


@pytest.fixture
def seeded_store(store, central_area, roads_department, water_department):
    """Store with one area and two departments."""
    store.create(AREAS, central_area.to_document())
    store.create(DEPARTMENTS, roads_department.to_document())
    store.create(DEPARTMENTS, water_department.to_document())
    return store


@pytest.fixture
def citizen():
    return UserContext(user_id="citizen-1", role=UserRole.CITIZEN, name="Ana Souza")


@pytest.fixture
def area_admin():
    return UserContext(user_id=AREA_ADMIN_ID, role=UserRole.AREA_SUPER_ADMIN, name="Area Admin", area="Central")


@pytest.fixture
def roads_admin(roads_department):
    return UserContext(
        user_id=ROADS_ADMIN_ID,
        role=UserRole.DEPARTMENT_ADMIN,
        name="Roads Admin",
        department_id=roads_department.id
    )


@pytest.fixture
def water_admin(water_department):
    return UserContext(
        user_id=WATER_ADMIN_ID,
        role=UserRole.DEPARTMENT_ADMIN,
        name="Water Admin",
        department_id=water_department.id
    )


@pytest.fixture
def contractor():
    return UserContext(user_id="contractor-1", role=UserRole.CONTRACTOR, name="Build Co")


@pytest.fixture
def other_contractor():
    return UserContext(user_id="contractor-2", role=UserRole.CONTRACTOR, name="Fix It Ltd")


@pytest.fixture
def admin():
    return UserContext(user_id="admin-1", role=UserRole.ADMIN, name="System Admin")


@pytest.fixture
def workflow_service(seeded_store):
    return WorkflowService(seeded_store)


@pytest.fixture
def tender_service(seeded_store, workflow_service):
    return TenderService(seeded_store, workflow_service)


@pytest.fixture
def report_request():
    def _build(category=IssueCategory.ROADS, priority=IssuePriority.HIGH, area="Central", ward=None):
        return ReportIssueRequest(
            title="Pothole on Main Street",
            description="Deep pothole in the right lane near the bus stop",
            category=category,
            priority=priority,
            location=Location(name="Main Street", area=area, ward=ward)
        )
    return _build


@pytest.fixture
def tender_request():
    def _build(issue_id: str, **overrides):
        data = {
            "issue_id": issue_id,
            "budget_min": 1000,
            "budget_max": 5000,
            "deadline_date": utcnow() + timedelta(days=30)
        }
        data.update(overrides)
        return CreateTenderRequest(**data)
    return _build


@pytest.fixture
def bid_request():
    def _build(amount: float = 2500):
        return SubmitBidRequest(amount=amount, details="Patch and resurface", timeline="2 weeks")
    return _build


@pytest.fixture
def completion_request():
    def _build(tender_id: str):
        return SubmitWorkProgressRequest(tender_id=tender_id, progress_type="completion", description="Done")
    return _build


@pytest.fixture
def assigned_issue(workflow_service, report_request, citizen, area_admin):
    """Roads issue advanced to department_assigned."""
    issue = workflow_service.report(report_request(), citizen)
    return workflow_service.advance(issue.id, WorkflowStage.DEPARTMENT_ASSIGNED, area_admin)


@pytest.fixture
def open_tender(tender_service, assigned_issue, tender_request, roads_admin):
    """Available tender on the assigned issue."""
    return tender_service.create_tender(tender_request(assigned_issue.id), roads_admin)


@pytest.fixture
def awarded_tender(tender_service, open_tender, bid_request, contractor, other_contractor, roads_admin):
    """Tender awarded to contractor-1 with a losing bid from contractor-2."""
    winning = tender_service.submit_bid(open_tender.id, bid_request(2500), contractor)
    tender_service.submit_bid(open_tender.id, bid_request(3000), other_contractor)
    tender_service.accept_bid(winning.id, roads_admin)
    return tender_service.get_tender(open_tender.id)


# HTTP fixtures

@pytest.fixture
def app(seeded_store):
    settings = Settings(
        environment='test',
        entity_store='memory',
        jwt_secret='test-secret',
        base_url='http://localhost:5000',
        otel_enabled=False,
        docs_enabled=False
    )
    application = create_app(settings, store=seeded_store)
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    """Build bearer headers for a UserContext."""
    def _headers(user: UserContext) -> Dict[str, str]:
        token = app.auth_service.generate_token(
            user.user_id,
            user.role,
            name=user.name,
            department_id=user.department_id,
            area=user.area
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers
