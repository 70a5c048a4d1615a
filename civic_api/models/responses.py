# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator
from datetime import datetime


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class LeaderboardRow(BaseModel):
    """Fixed ingestion schema for raw per-user activity rows."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, description="Contributor ID")
    full_name: Optional[str] = Field(None, description="Display name")
    total_score: int = Field(default=0, ge=0, description="Cumulative score")
    issues_reported: int = Field(default=0, ge=0, description="Issues reported in the window")
    posts_created: int = Field(default=0, ge=0, description="Posts created in the window")
    badges: List[str] = Field(default_factory=list, description="Earned badges")

    @field_validator('id', mode='before')
    @classmethod
    def numeric_id_as_string(cls, v):
        # bool is an int subclass but never a valid id
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class LeaderboardEntry(BaseModel):
    """Deduplicated, ranked contributor. Derived per query, never stored."""

    id: str = Field(..., description="Contributor ID")
    rank: int = Field(..., ge=1, description="1-based rank")
    full_name: Optional[str] = Field(None, description="Display name")
    total_score: int = Field(..., description="Cumulative score")
    issues_reported: int = Field(..., description="Issues reported in the window")
    posts_created: int = Field(..., description="Posts created in the window")
    badges: List[str] = Field(default_factory=list, description="Earned badges")


class LeaderboardStats(BaseModel):
    total_users: int = Field(..., description="Ranked contributors")
    total_issues: int = Field(..., description="Issues across all contributors")
    total_posts: int = Field(..., description="Posts across all contributors")
    average_score: int = Field(..., description="Mean score rounded half-up")


class LeaderboardResult(BaseModel):
    """Podium, remainder and period-wide stats."""

    podium: List[LeaderboardEntry] = Field(default_factory=list, description="Top three")
    others: List[LeaderboardEntry] = Field(default_factory=list, description="Everyone else, ranked")
    stats: LeaderboardStats


class ContractorStats(BaseModel):
    """Project and earnings summary for one contractor."""

    contractor_id: str = Field(..., description="Contractor ID")
    total_projects: int = Field(..., description="Tenders awarded")
    completed_projects: int = Field(..., description="Tenders completed")
    active_projects: int = Field(..., description="Tenders awarded but not completed")
    total_earnings: float = Field(..., description="Sum of awarded amounts on completed tenders")
    completion_rate: float = Field(..., description="Completed over total, as a percentage")
    rating: Optional[float] = Field(None, description="Not computed")


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Environment name")
    timestamp: datetime = Field(..., description="Check timestamp")
    dependencies: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Dependency health")


class ErrorResponse(BaseModel):
    """Error response model following RFC 7807."""

    type: str = Field(..., description="Error type URI")
    title: str = Field(..., description="Error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Error detail")
    instance: str = Field(..., description="Request instance")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Validation errors")
    current: Optional[Dict[str, Any]] = Field(None, description="Current entity snapshot on conflicts")
    retryable: Optional[bool] = Field(None, description="Whether the request may be retried unchanged")
