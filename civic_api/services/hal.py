# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS Level-3 API responses with conditional affordance links.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin, urlencode
import math

from ..domain.authorization import (
    REVIEWER_ROLES,
    TENDER_MANAGER_ROLES,
    allowed_transitions
)
from ..domain.workflow import SUCCESSORS
from ..models.entities import UserContext, TERMINAL_ISSUE_STATUSES
from ..models.enums import (
    BidStatus,
    ProgressStatus,
    ProgressType,
    TenderStatus,
    UserRole,
    WorkflowStage
)
from ..models.responses import HalLink

PROBLEM_BASE = "https://civic-resolution.dev/problems/"

# Targets reached through their own operations rather than advance
ENGINE_DRIVEN_STAGES = (
    WorkflowStage.CONTRACTOR_ASSIGNED,
    WorkflowStage.IN_PROGRESS,
    WorkflowStage.DEPARTMENT_REVIEW,
    WorkflowStage.RESOLVED,
)


def _links(links: Dict[str, HalLink]) -> Dict[str, Dict[str, Any]]:
    return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        """Build link to parent collection."""
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        action_path = f"{resource_path}/{action}"
        return self.build_link(
            action_path,
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _page_link(self, base_path: str, params: Dict[str, Any], page: int, size: int, title: str) -> HalLink:
        query = urlencode({**params, 'page': page, 'size': size})
        return self.link_builder.build_link(f"{base_path}?{query}", title=title)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, HalLink]:
        """Build pagination links for a collection."""
        params = {k: v for k, v in (query_params or {}).items() if v is not None}
        links = {'self': self._page_link(base_path, params, current_page, page_size, "Current page")}

        if current_page > 1:
            links['first'] = self._page_link(base_path, params, 1, page_size, "First page")
            links['prev'] = self._page_link(base_path, params, current_page - 1, page_size, "Previous page")

        if current_page < total_pages:
            links['next'] = self._page_link(base_path, params, current_page + 1, page_size, "Next page")
            links['last'] = self._page_link(base_path, params, total_pages, page_size, "Last page")

        return links


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on role and state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_issue_affordances(self, issue: Dict[str, Any], user: UserContext) -> Dict[str, HalLink]:
        """Build conditional affordance links for issues."""
        base_path = f"/api/issues/{issue['id']}"
        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/issues"),
        }

        if issue.get('status') in TERMINAL_ISSUE_STATUSES:
            return links

        stage = WorkflowStage(issue['workflow_stage'])
        permitted = allowed_transitions(user.role)
        for target in sorted(SUCCESSORS[stage], key=lambda s: s.value):
            if target in ENGINE_DRIVEN_STAGES or (stage, target) not in permitted:
                continue
            links[f'advance_{target.value}'] = self.link_builder.build_action_link(
                base_path, "advance", title=f"Move to {target.value}"
            )

        if user.role in TENDER_MANAGER_ROLES and stage == WorkflowStage.DEPARTMENT_ASSIGNED:
            links['create_tender'] = self.link_builder.build_link(
                "/api/tenders",
                method="POST",
                content_type="application/json",
                title="Create tender"
            )

        if user.role in REVIEWER_ROLES:
            links['acknowledge'] = self.link_builder.build_action_link(
                base_path, "acknowledge", title="Acknowledge issue"
            )
            links['reject'] = self.link_builder.build_action_link(base_path, "reject", title="Reject issue")
            links['close'] = self.link_builder.build_action_link(base_path, "close", title="Close issue")

        return links

    def build_tender_affordances(self, tender: Dict[str, Any], user: UserContext) -> Dict[str, HalLink]:
        """Build conditional affordance links for tenders."""
        base_path = f"/api/tenders/{tender['id']}"
        links = {
            'self': self.link_builder.build_self_link(base_path),
            'collection': self.link_builder.build_collection_link("/api/tenders"),
        }
        if tender.get('source_issue_id'):
            links['issue'] = self.link_builder.build_link(
                f"/api/issues/{tender['source_issue_id']}", title="Source issue"
            )

        status = tender.get('status')
        is_manager = user.role in TENDER_MANAGER_ROLES
        is_winner = user.role == UserRole.CONTRACTOR and tender.get('awarded_contractor_id') == user.user_id
        if is_manager or is_winner:
            links['work_progress'] = self.link_builder.build_link(f"{base_path}/work-progress", title="Work progress")

        if status == TenderStatus.AVAILABLE:
            if user.role == UserRole.CONTRACTOR:
                links['submit_bid'] = self.link_builder.build_action_link(base_path, "bids", title="Submit bid")
            if is_manager:
                links['cancel'] = self.link_builder.build_action_link(base_path, "cancel", title="Cancel tender")

        if is_winner and status == TenderStatus.AWARDED:
            links['start'] = self.link_builder.build_action_link(base_path, "start", title="Start work")

        if is_winner and status in (TenderStatus.AWARDED, TenderStatus.WORK_IN_PROGRESS):
            links['submit_progress'] = self.link_builder.build_link(
                "/api/work-progress",
                method="POST",
                content_type="application/json",
                title="Submit work progress"
            )

        return links

    def build_bid_affordances(self, bid: Dict[str, Any], user: UserContext) -> Dict[str, HalLink]:
        """Build conditional affordance links for bids."""
        base_path = f"/api/bids/{bid['id']}"
        links = {
            'tender': self.link_builder.build_link(f"/api/tenders/{bid['tender_id']}", title="Tender"),
        }
        if bid.get('status') == BidStatus.SUBMITTED and user.role in TENDER_MANAGER_ROLES:
            links['accept'] = self.link_builder.build_action_link(base_path, "accept", title="Accept bid")
            links['reject'] = self.link_builder.build_action_link(base_path, "reject", title="Reject bid")
        return links

    def build_progress_affordances(self, progress: Dict[str, Any], user: UserContext) -> Dict[str, HalLink]:
        """Build conditional affordance links for work progress records."""
        links = {
            'tender': self.link_builder.build_link(f"/api/tenders/{progress['tender_id']}", title="Tender"),
        }
        pending_completion = (
            progress.get('progress_type') == ProgressType.COMPLETION
            and progress.get('status') == ProgressStatus.SUBMITTED
        )
        if pending_completion and user.role in TENDER_MANAGER_ROLES:
            links['verify'] = self.link_builder.build_action_link(
                f"/api/work-progress/{progress['id']}", "verify", title="Verify completion"
            )
        return links


class HalResponseBuilder:
    """Main HAL response builder with comprehensive formatting capabilities."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination_builder = PaginationLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    def build_resource_response(
        self,
        data: Dict[str, Any],
        resource_type: str,
        user: UserContext
    ) -> Dict[str, Any]:
        """Build a HAL resource response with appropriate affordance links."""
        response = dict(data)

        # Build affordance links based on resource type
        if resource_type == "issue":
            links = self.affordance_builder.build_issue_affordances(data, user)
        elif resource_type == "tender":
            links = self.affordance_builder.build_tender_affordances(data, user)
        elif resource_type == "bid":
            links = self.affordance_builder.build_bid_affordances(data, user)
        elif resource_type == "work_progress":
            links = self.affordance_builder.build_progress_affordances(data, user)
        else:
            links = {}

        response['_links'] = _links(links)
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with pagination links."""
        total_pages = math.ceil(total / page_size) if page_size > 0 else 1

        pagination_links = self.pagination_builder.build_pagination_links(
            collection_path,
            page,
            total_pages,
            page_size,
            query_params
        )

        return {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': total_pages,
            '_links': _links(pagination_links),
            '_embedded': {
                'items': items
            }
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None,
        current: Optional[Dict[str, Any]] = None,
        retryable: bool = False
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{PROBLEM_BASE}{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance,
            'retryable': retryable
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        if current is not None:
            error_response['current'] = current

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )

        error_response['_links'] = _links(links)
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_issue(self, issue: Dict[str, Any], user: UserContext) -> Dict[str, Any]:
        """Format an issue with HAL links."""
        return self.builder.build_resource_response(issue, "issue", user)

    def format_issue_collection(
        self,
        issues: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        user: UserContext,
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a page of issues with HAL links."""
        items = [self.format_issue(issue, user) for issue in issues]
        return self.builder.build_collection_response(items, total, page, page_size, "/api/issues", filters)

    def format_tender(self, tender: Dict[str, Any], user: UserContext) -> Dict[str, Any]:
        """Format a tender with HAL links, embedding its bids when present."""
        response = self.builder.build_resource_response(tender, "tender", user)
        if 'bids' in response:
            response['bids'] = [self.format_bid(bid, user) for bid in response['bids']]
        return response

    def format_tender_collection(
        self,
        tenders: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        user: UserContext,
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        items = [self.format_tender(tender, user) for tender in tenders]
        return self.builder.build_collection_response(items, total, page, page_size, "/api/tenders", filters)

    def format_bid(self, bid: Dict[str, Any], user: UserContext) -> Dict[str, Any]:
        return self.builder.build_resource_response(bid, "bid", user)

    def format_work_progress(self, progress: Dict[str, Any], user: UserContext) -> Dict[str, Any]:
        return self.builder.build_resource_response(progress, "work_progress", user)

    def format_work_progress_collection(
        self,
        tender_id: str,
        records: List[Dict[str, Any]],
        user: UserContext
    ) -> Dict[str, Any]:
        """Progress records of one tender as a single-page collection."""
        items = [self.format_work_progress(record, user) for record in records]
        return self.builder.build_collection_response(
            items, len(items), 1, max(len(items), 1), f"/api/tenders/{tender_id}/work-progress"
        )

    def format_snapshot(self, snapshot: Dict[str, Any], user: UserContext) -> Dict[str, Any]:
        """Format a Bid+Tender+Issue snapshot returned by award and verification operations."""
        response = {}
        formatters = {
            'bid': self.format_bid,
            'tender': self.format_tender,
            'issue': self.format_issue,
            'work_progress': self.format_work_progress,
        }
        for key, value in snapshot.items():
            formatter = formatters.get(key)
            response[key] = formatter(value, user) if formatter and value is not None else value
        return response

    def format_leaderboard(self, leaderboard: Dict[str, Any], period: str) -> Dict[str, Any]:
        response = dict(leaderboard)
        response['period'] = period
        response['_links'] = _links({
            'self': self.builder.link_builder.build_link(f"/api/leaderboard?period={period}", title="Self"),
            'periods': self.builder.link_builder.build_link(
                "/api/leaderboard{?period}", title="Leaderboard by period", templated=True
            ),
        })
        return response

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a server error response."""
        return self.builder.build_error_response(
            "internal-server-error",
            "Internal Server Error",
            500,
            detail,
            instance
        )


# Convenience function for creating HAL formatter
def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
