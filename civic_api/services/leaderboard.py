# SPDX-License-Identifier: Apache-2.0

"""
Leaderboard query service.
"""

import logging
from typing import Optional
from datetime import datetime
from opentelemetry import trace

from ..domain.leaderboard import aggregate, ingest_rows, period_start
from ..models.base import utcnow
from ..models.enums import LeaderboardPeriod
from ..models.responses import LeaderboardResult
from .store import EntityStore

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class LeaderboardService:
    """Computes the ranked leaderboard from store activity rows."""

    def __init__(self, store: EntityStore):
        self.store = store

    def leaderboard(self, period: str = LeaderboardPeriod.MONTH, now: Optional[datetime] = None) -> LeaderboardResult:
        """
        Rank users by score over a period.

        Args:
            period: week, month, quarter or year
            now: End of the window, defaults to the current time

        Returns:
            LeaderboardResult with podium, others and stats
        """
        with tracer.start_as_current_span("leaderboard.compute") as span:
            period = LeaderboardPeriod(period)
            since = period_start(period, now or utcnow())
            span.set_attribute("leaderboard.period", period.value)

            raw_rows = self.store.leaderboard_rows(since)
            result = aggregate(ingest_rows(raw_rows))

            span.set_attributes({
                "leaderboard.raw_rows": len(raw_rows),
                "leaderboard.users": result.stats.total_users
            })
            logger.debug(
                "Leaderboard computed",
                extra={"period": period.value, "raw_rows": len(raw_rows), "users": result.stats.total_users}
            )
            return result
