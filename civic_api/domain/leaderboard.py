# SPDX-License-Identifier: Apache-2.0

"""
Leaderboard aggregation domain logic.

Raw activity rows arrive duplicated by upstream joins. They are parsed into
one fixed schema, grouped per user, ranked and summarized. The result is
recomputed per query and never stored.
"""

from typing import Any, Dict, Iterable, List
from datetime import datetime, timedelta
import logging
from pydantic import ValidationError
from ..models.enums import LeaderboardPeriod
from ..models.responses import (
    LeaderboardRow,
    LeaderboardEntry,
    LeaderboardStats,
    LeaderboardResult
)

logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    LeaderboardPeriod.WEEK: 7,
    LeaderboardPeriod.MONTH: 30,
    LeaderboardPeriod.QUARTER: 90,
    LeaderboardPeriod.YEAR: 365,
}

PODIUM_SIZE = 3


def period_start(period: str, now: datetime) -> datetime:
    """Start of the aggregation window ending at now."""
    return now - timedelta(days=PERIOD_DAYS[LeaderboardPeriod(period)])


def ingest_rows(raw_rows: Iterable[Dict[str, Any]]) -> List[LeaderboardRow]:
    """
    Parse raw store rows into LeaderboardRow.

    Rows that do not match the schema exactly are dropped and logged.
    """
    rows = []
    dropped = 0
    for index, raw in enumerate(raw_rows):
        try:
            rows.append(LeaderboardRow.model_validate(raw))
        except ValidationError as e:
            dropped += 1
            logger.warning(
                "Dropping malformed leaderboard row",
                extra={
                    "row_index": index,
                    "errors": [err["msg"] for err in e.errors()],
                }
            )
    if dropped:
        logger.info(
            "Leaderboard ingestion finished with dropped rows",
            extra={"accepted": len(rows), "dropped": dropped}
        )
    return rows


def round_half_up(total: int, count: int) -> int:
    """Integer mean rounded half-up, 0 for an empty population."""
    if count <= 0:
        return 0
    return (2 * total + count) // (2 * count)


def deduplicate(rows: Iterable[LeaderboardRow]) -> List[LeaderboardRow]:
    """
    Collapse duplicate rows per user.

    Counters are summed, score is the maximum (duplicates are join
    artifacts of one underlying score) and badges are unioned in first-seen
    order. Output keeps the order in which users first appeared.
    """
    merged: Dict[str, LeaderboardRow] = {}
    for row in rows:
        current = merged.get(row.id)
        if current is None:
            merged[row.id] = row.model_copy(update={"badges": list(dict.fromkeys(row.badges))})
            continue
        badges = list(current.badges)
        badges.extend(b for b in row.badges if b not in badges)
        merged[row.id] = current.model_copy(update={
            "full_name": current.full_name or row.full_name,
            "total_score": max(current.total_score, row.total_score),
            "issues_reported": current.issues_reported + row.issues_reported,
            "posts_created": current.posts_created + row.posts_created,
            "badges": badges,
        })
    return list(merged.values())


def aggregate(rows: Iterable[LeaderboardRow]) -> LeaderboardResult:
    """
    Rank deduplicated contributors and compute period-wide stats.

    Args:
        rows: Parsed activity rows, possibly duplicated

    Returns:
        LeaderboardResult with podium, remaining entries and stats
    """
    users = deduplicate(rows)
    # sorted() is stable, so ties keep input order
    ranked = sorted(users, key=lambda r: r.total_score, reverse=True)

    entries = [
        LeaderboardEntry(
            id=row.id,
            rank=position,
            full_name=row.full_name,
            total_score=row.total_score,
            issues_reported=row.issues_reported,
            posts_created=row.posts_created,
            badges=row.badges
        )
        for position, row in enumerate(ranked, start=1)
    ]

    total_score = sum(e.total_score for e in entries)
    stats = LeaderboardStats(
        total_users=len(entries),
        total_issues=sum(e.issues_reported for e in entries),
        total_posts=sum(e.posts_created for e in entries),
        average_score=round_half_up(total_score, len(entries))
    )

    return LeaderboardResult(
        podium=entries[:PODIUM_SIZE],
        others=entries[PODIUM_SIZE:],
        stats=stats
    )
