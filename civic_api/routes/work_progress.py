# SPDX-License-Identifier: Apache-2.0

"""
Work progress endpoints: contractor updates and completion verification.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..models.requests import SubmitWorkProgressRequest, VerifyWorkProgressRequest, ProgressPath
from ..middleware.auth import require_jwt, current_user
from ..utils.request import RequestParser

work_progress_tag = Tag(name="Work Progress", description="Contractor progress and completion verification")
work_progress_bp = APIBlueprint(
    'work_progress',
    __name__,
    url_prefix='/api/work-progress',
    abp_tags=[work_progress_tag]
)


@work_progress_bp.post('')
@require_jwt
def submit_work_progress():
    """Submit a progress update or completion claim."""
    body = RequestParser.parse_json_body(SubmitWorkProgressRequest)
    user = current_user()
    snapshot = current_app.tender_service.submit_work_progress(body, user)
    return jsonify(current_app.hal_formatter.format_snapshot(snapshot, user)), 201


@work_progress_bp.post('/<progress_id>/verify')
@require_jwt
def verify_work_progress(path: ProgressPath):
    """Approve or reject a submitted completion."""
    body = RequestParser.parse_json_body(VerifyWorkProgressRequest)
    user = current_user()
    snapshot = current_app.tender_service.verify_work_progress(path.progress_id, body, user)
    return jsonify(current_app.hal_formatter.format_snapshot(snapshot, user))
