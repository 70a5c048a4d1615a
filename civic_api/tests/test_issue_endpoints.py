# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Integration tests for issue, leaderboard and health endpoints.
"""

import pytest
from unittest.mock import patch

from civic_api.models.entities import Profile
from civic_api.services.store import PROFILES

REPORT_BODY = {
    "title": "Pothole on Main Street",
    "description": "Deep pothole in the right lane",
    "category": "roads",
    "priority": "high",
    "location": {"name": "Main Street", "area": "Central"}
}


@pytest.fixture
def reported(client, auth_headers, citizen):
    response = client.post('/api/issues', json=REPORT_BODY, headers=auth_headers(citizen))
    assert response.status_code == 201
    return response.get_json()


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get('/api/issues')

        assert response.status_code == 401
        data = response.get_json()
        assert data["status"] == 401
        assert data["type"].endswith("/authentication-required")

    def test_garbage_token(self, client):
        response = client.get('/api/issues', headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestReportIssue:

    def test_report(self, reported):
        assert reported["workflow_stage"] == "reported"
        assert reported["status"] == "pending"
        assert reported["_links"]["self"]["href"].endswith(f"/api/issues/{reported['id']}")

    def test_validation_error(self, client, auth_headers, citizen):
        response = client.post(
            '/api/issues',
            json={"title": "", "location": {"area": "Central"}},
            headers=auth_headers(citizen)
        )

        assert response.status_code == 400
        data = response.get_json()
        fields = {error["field"] for error in data["errors"]}
        assert {"title", "description"} <= fields
        assert "schema" in data["_links"]

    def test_contractor_forbidden(self, client, auth_headers, contractor):
        response = client.post('/api/issues', json=REPORT_BODY, headers=auth_headers(contractor))
        assert response.status_code == 403


class TestIssueWorkflowEndpoints:

    def test_area_admin_sees_advance_links(self, client, auth_headers, area_admin, reported):
        response = client.get(f"/api/issues/{reported['id']}", headers=auth_headers(area_admin))

        assert response.status_code == 200
        links = response.get_json()["_links"]
        assert "advance_department_assigned" in links
        assert links["advance_department_assigned"]["method"] == "POST"

    def test_advance(self, client, auth_headers, area_admin, roads_department, reported):
        response = client.post(
            f"/api/issues/{reported['id']}/advance",
            json={"target_stage": "department_assigned", "notes": "Roads job"},
            headers=auth_headers(area_admin)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["workflow_stage"] == "department_assigned"
        assert data["assigned_department_id"] == roads_department.id

    def test_invalid_transition_returns_current_state(self, client, auth_headers, admin, reported):
        response = client.post(
            f"/api/issues/{reported['id']}/advance",
            json={"target_stage": "resolved"},
            headers=auth_headers(admin)
        )

        assert response.status_code == 409
        data = response.get_json()
        assert data["type"].endswith("/invalid-transition")
        assert data["current"]["workflow_stage"] == "reported"
        assert data["retryable"] is False

    def test_unknown_stage(self, client, auth_headers, admin, reported):
        response = client.post(
            f"/api/issues/{reported['id']}/advance",
            json={"target_stage": "archived"},
            headers=auth_headers(admin)
        )
        assert response.status_code == 400

    def test_acknowledge(self, client, auth_headers, area_admin, reported):
        response = client.post(f"/api/issues/{reported['id']}/acknowledge", headers=auth_headers(area_admin))

        assert response.status_code == 200
        assert response.get_json()["status"] == "acknowledged"

    def test_reject_and_links_disappear(self, client, auth_headers, area_admin, reported):
        response = client.post(
            f"/api/issues/{reported['id']}/reject",
            json={"reason": "Duplicate of an existing report"},
            headers=auth_headers(area_admin)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "rejected"
        assert set(data["_links"]) == {"self", "collection"}

    def test_close(self, client, auth_headers, area_admin, reported):
        response = client.post(
            f"/api/issues/{reported['id']}/close",
            json={"notes": "Resolved by the utility company"},
            headers=auth_headers(area_admin)
        )

        assert response.status_code == 200
        assert response.get_json()["status"] == "closed"

    def test_missing_issue(self, client, auth_headers, admin):
        response = client.get('/api/issues/507f1f77bcf86cd799439011', headers=auth_headers(admin))

        assert response.status_code == 404
        assert response.get_json()["type"].endswith("/resource-not-found")


class TestIssueList:

    def test_list_with_filters(self, client, auth_headers, citizen, reported):
        client.post('/api/issues', json={**REPORT_BODY, "category": "utilities"}, headers=auth_headers(citizen))

        response = client.get('/api/issues?stage=reported&size=1', headers=auth_headers(citizen))

        assert response.status_code == 200
        data = response.get_json()
        assert data["total"] == 2
        assert data["total_pages"] == 2
        assert len(data["_embedded"]["items"]) == 1
        assert "stage=reported" in data["_links"]["next"]["href"]

    def test_invalid_filter(self, client, auth_headers, citizen):
        response = client.get('/api/issues?stage=archived', headers=auth_headers(citizen))
        assert response.status_code == 400


class TestLeaderboardEndpoint:

    def test_public_leaderboard(self, client, seeded_store):
        seeded_store.create(PROFILES, Profile(id="ana", full_name="Ana", points=30).to_document())
        seeded_store.create(PROFILES, Profile(id="bia", full_name="Bia", points=50).to_document())

        response = client.get('/api/leaderboard?period=week')

        assert response.status_code == 200
        data = response.get_json()
        assert data["period"] == "week"
        assert [entry["id"] for entry in data["podium"]] == ["bia", "ana"]
        assert data["stats"]["total_users"] == 2
        assert data["stats"]["average_score"] == 40

    def test_invalid_period(self, client):
        assert client.get('/api/leaderboard?period=decade').status_code == 400


class TestHealthEndpoint:

    def test_healthy(self, client):
        response = client.get('/api/healthz')

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["dependencies"]["store"]["status"] == "healthy"

    def test_unhealthy_store(self, client, seeded_store):
        with patch.object(seeded_store, "health_check", return_value={"status": "unhealthy", "backend": "memory"}):
            response = client.get('/api/healthz')

        assert response.status_code == 503
        assert response.get_json()["status"] == "unhealthy"
