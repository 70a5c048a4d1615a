# SPDX-License-Identifier: Apache-2.0

"""
Community leaderboard endpoint. Public; computed per request.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..models.requests import LeaderboardQuery
from ..utils.request import RequestParser

leaderboard_tag = Tag(name="Leaderboard", description="Community contribution ranking")
leaderboard_bp = APIBlueprint(
    'leaderboard',
    __name__,
    url_prefix='/api/leaderboard',
    abp_tags=[leaderboard_tag]
)


@leaderboard_bp.get('')
def get_leaderboard():
    """Rank contributors over a week, month, quarter or year."""
    query = RequestParser.parse_query(LeaderboardQuery)
    period = query.period.value
    result = current_app.leaderboard_service.leaderboard(period)
    return jsonify(current_app.hal_formatter.format_leaderboard(result.model_dump(mode="json"), period))
