# SPDX-License-Identifier: Apache-2.0

"""
Tender endpoints.

Department admins open and cancel tenders; contractors bid on them and
start work once awarded.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..models.requests import CreateTenderRequest, SubmitBidRequest, TenderListQuery, TenderPath
from ..middleware.auth import require_jwt, current_user
from ..utils.request import RequestParser

tenders_tag = Tag(name="Tenders", description="Contractor tenders and bidding")
tenders_bp = APIBlueprint(
    'tenders',
    __name__,
    url_prefix='/api/tenders',
    abp_tags=[tenders_tag]
)


@tenders_bp.get('')
@require_jwt
def list_tenders():
    """List tenders, filtered by status and department."""
    query = RequestParser.parse_query(TenderListQuery)
    filters = {
        key: getattr(value, "value", value)
        for key, value in query.model_dump(exclude={"page", "size"}).items()
        if value is not None
    }
    result = current_app.tender_service.list_tenders(page=query.page, page_size=query.size, **filters)
    response = current_app.hal_formatter.format_tender_collection(
        result.items,
        result.total,
        result.page,
        result.page_size,
        current_user(),
        filters
    )
    return jsonify(response)


@tenders_bp.post('')
@require_jwt
def create_tender():
    """Open a tender for an issue at department_assigned."""
    body = RequestParser.parse_json_body(CreateTenderRequest)
    tender = current_app.tender_service.create_tender(body, current_user())
    return jsonify(current_app.hal_formatter.format_tender(tender.to_document(), current_user())), 201


@tenders_bp.get('/<tender_id>')
@require_jwt
def get_tender(path: TenderPath):
    """Get a tender with the bids visible to the caller."""
    user = current_user()
    tender = current_app.tender_service.get_tender_with_bids(path.tender_id, user)
    return jsonify(current_app.hal_formatter.format_tender(tender, user))


@tenders_bp.post('/<tender_id>/bids')
@require_jwt
def submit_bid(path: TenderPath):
    """Submit a bid on an available tender."""
    body = RequestParser.parse_json_body(SubmitBidRequest)
    user = current_user()
    bid = current_app.tender_service.submit_bid(path.tender_id, body, user)
    return jsonify(current_app.hal_formatter.format_bid(bid.to_document(), user)), 201


@tenders_bp.post('/<tender_id>/start')
@require_jwt
def start_work(path: TenderPath):
    """Start work on an awarded tender."""
    user = current_user()
    tender = current_app.tender_service.start_work(path.tender_id, user)
    return jsonify(current_app.hal_formatter.format_tender(tender.to_document(), user))


@tenders_bp.post('/<tender_id>/cancel')
@require_jwt
def cancel_tender(path: TenderPath):
    """Cancel an available tender; its issue returns to department_assigned."""
    user = current_user()
    snapshot = current_app.tender_service.cancel_tender(path.tender_id, user)
    return jsonify(current_app.hal_formatter.format_snapshot(snapshot, user))


@tenders_bp.get('/<tender_id>/work-progress')
@require_jwt
def list_work_progress(path: TenderPath):
    """List work progress records for a tender, oldest first."""
    user = current_user()
    records = current_app.tender_service.list_work_progress(path.tender_id, user)
    return jsonify(current_app.hal_formatter.format_work_progress_collection(path.tender_id, records, user))
