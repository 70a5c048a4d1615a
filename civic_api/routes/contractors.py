# SPDX-License-Identifier: Apache-2.0

"""
Contractor statistics endpoint.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..models.requests import ContractorPath, ContractorStatsQuery
from ..middleware.auth import require_jwt, current_user
from ..utils.request import RequestParser

contractors_tag = Tag(name="Contractors", description="Contractor project statistics")
contractors_bp = APIBlueprint(
    'contractors',
    __name__,
    url_prefix='/api/contractors',
    abp_tags=[contractors_tag]
)


@contractors_bp.get('/<contractor_id>/stats')
@require_jwt
def contractor_stats(path: ContractorPath):
    """Project counts, earnings and completion rate for a contractor."""
    query = RequestParser.parse_query(ContractorStatsQuery)
    stats = current_app.tender_service.contractor_stats(path.contractor_id, current_user(), query.department)
    response = stats.model_dump(mode="json")
    response['_links'] = {
        'self': {'href': f"{current_app.hal_formatter.builder.base_url}/api/contractors/{path.contractor_id}/stats"}
    }
    return jsonify(response)
