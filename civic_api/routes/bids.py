# SPDX-License-Identifier: Apache-2.0

"""
Bid decision endpoints. Both return the Bid, Tender and Issue snapshot.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..models.requests import BidPath
from ..middleware.auth import require_jwt, current_user

bids_tag = Tag(name="Bids", description="Bid acceptance and rejection")
bids_bp = APIBlueprint(
    'bids',
    __name__,
    url_prefix='/api/bids',
    abp_tags=[bids_tag]
)


@bids_bp.post('/<bid_id>/accept')
@require_jwt
def accept_bid(path: BidPath):
    """Award the tender to this bid and reject the others."""
    user = current_user()
    snapshot = current_app.tender_service.accept_bid(path.bid_id, user)
    return jsonify(current_app.hal_formatter.format_snapshot(snapshot, user))


@bids_bp.post('/<bid_id>/reject')
@require_jwt
def reject_bid(path: BidPath):
    """Reject a submitted bid."""
    user = current_user()
    snapshot = current_app.tender_service.reject_bid(path.bid_id, user)
    return jsonify(current_app.hal_formatter.format_snapshot(snapshot, user))
