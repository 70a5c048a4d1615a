# SPDX-License-Identifier: Apache-2.0

"""
Issue workflow endpoints.

Reporting, listing and detail views plus the stage operations: advance,
acknowledge, reject and close. Every response is a HAL document whose
links reflect what the caller may do next.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..models.requests import (
    ReportIssueRequest,
    AdvanceIssueRequest,
    RejectIssueRequest,
    CloseIssueRequest,
    IssueListQuery,
    IssuePath
)
from ..middleware.auth import require_jwt, current_user
from ..utils.request import RequestParser

issues_tag = Tag(name="Issues", description="Civic issue workflow")
issues_bp = APIBlueprint(
    'issues',
    __name__,
    url_prefix='/api/issues',
    abp_tags=[issues_tag]
)


def _issue_response(issue, status_code: int = 200):
    document = issue if isinstance(issue, dict) else issue.to_document()
    return jsonify(current_app.hal_formatter.format_issue(document, current_user())), status_code


@issues_bp.get('')
@require_jwt
def list_issues():
    """
    List issues.

    Filter by stage, department, area and status; newest first.
    """
    query = RequestParser.parse_query(IssueListQuery)
    filters = {
        key: getattr(value, "value", value)
        for key, value in query.model_dump(exclude={"page", "size"}).items()
        if value is not None
    }
    result = current_app.workflow_service.list(
        page=query.page,
        page_size=query.size,
        **filters
    )
    response = current_app.hal_formatter.format_issue_collection(
        result.items,
        result.total,
        result.page,
        result.page_size,
        current_user(),
        filters
    )
    return jsonify(response)


@issues_bp.post('')
@require_jwt
def report_issue():
    """Report a new issue."""
    body = RequestParser.parse_json_body(ReportIssueRequest)
    issue = current_app.workflow_service.report(body, current_user())
    return _issue_response(issue, 201)


@issues_bp.get('/<issue_id>')
@require_jwt
def get_issue(path: IssuePath):
    """Get an issue with reporter, tender and assignment summaries."""
    return _issue_response(current_app.workflow_service.get(path.issue_id))


@issues_bp.post('/<issue_id>/advance')
@require_jwt
def advance_issue(path: IssuePath):
    """Move an issue to a successor stage."""
    body = RequestParser.parse_json_body(AdvanceIssueRequest)
    issue = current_app.workflow_service.advance(
        path.issue_id,
        body.target_stage,
        current_user(),
        department_id=body.department_id,
        notes=body.notes
    )
    return _issue_response(issue)


@issues_bp.post('/<issue_id>/acknowledge')
@require_jwt
def acknowledge_issue(path: IssuePath):
    """Acknowledge a pending issue without changing its stage."""
    issue = current_app.workflow_service.acknowledge(path.issue_id, current_user())
    return _issue_response(issue)


@issues_bp.post('/<issue_id>/reject')
@require_jwt
def reject_issue(path: IssuePath):
    """Reject an issue with a reason."""
    body = RequestParser.parse_json_body(RejectIssueRequest)
    issue = current_app.workflow_service.reject(path.issue_id, current_user(), body.reason)
    return _issue_response(issue)


@issues_bp.post('/<issue_id>/close')
@require_jwt
def close_issue(path: IssuePath):
    """Close an issue without resolving it."""
    body = RequestParser.parse_json_body(CloseIssueRequest)
    issue = current_app.workflow_service.close(path.issue_id, current_user(), body.notes)
    return _issue_response(issue)
