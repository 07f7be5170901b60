"""Aggregate statistics over stored match decisions and canonical securities."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from secmaster.models.canonical_security import CanonicalSecurity
from secmaster.models.match_decision import MatchDecision

SCORE_BANDS = ("0.95+", "0.90-0.95", "0.85-0.90", "0.80-0.85", "below 0.80")


def _band_expr():
    score = MatchDecision.similarity_score
    return sa.case(
        (score >= 0.95, SCORE_BANDS[0]),
        (score >= 0.90, SCORE_BANDS[1]),
        (score >= 0.85, SCORE_BANDS[2]),
        (score >= 0.80, SCORE_BANDS[3]),
        else_=SCORE_BANDS[4],
    )


def _avg(value: float | None) -> float | None:
    return round(value, 4) if value is not None else None


async def match_statistics(session: AsyncSession) -> dict:
    """Distribution of stored decisions.

    Returns:
        Dict with ``total_decisions``, ``by_status_method`` (status x
        method counts and average score), ``score_bands`` (fixed band
        labels, zero-filled), ``by_source_pair`` and ``canonical``
        (total / multi-member / flagged securities).
    """
    # 1. Status x method
    rows = (
        await session.execute(
            sa.select(
                MatchDecision.status,
                MatchDecision.method,
                sa.func.count(MatchDecision.id).label("cnt"),
                sa.func.avg(MatchDecision.similarity_score).label("avg_score"),
            )
            .group_by(MatchDecision.status, MatchDecision.method)
            .order_by(MatchDecision.status, MatchDecision.method)
        )
    ).all()
    by_status_method = [
        {
            "status": r.status,
            "method": r.method,
            "count": r.cnt,
            "avg_score": _avg(r.avg_score),
        }
        for r in rows
    ]

    # 2. Similarity bands
    band = _band_expr().label("band")
    band_rows = (
        await session.execute(
            sa.select(band, sa.func.count(MatchDecision.id).label("cnt")).group_by(band)
        )
    ).all()
    score_bands = dict.fromkeys(SCORE_BANDS, 0)
    for r in band_rows:
        score_bands[r.band] = r.cnt

    # 3. Source pairs
    pair_rows = (
        await session.execute(
            sa.select(
                MatchDecision.source_1,
                MatchDecision.source_2,
                sa.func.count(MatchDecision.id).label("cnt"),
                sa.func.avg(MatchDecision.similarity_score).label("avg_score"),
            )
            .group_by(MatchDecision.source_1, MatchDecision.source_2)
            .order_by(MatchDecision.source_1, MatchDecision.source_2)
        )
    ).all()
    by_source_pair = [
        {
            "source_1": r.source_1,
            "source_2": r.source_2,
            "count": r.cnt,
            "avg_score": _avg(r.avg_score),
        }
        for r in pair_rows
    ]

    # 4. Canonical securities
    canonical_row = (
        await session.execute(
            sa.select(
                sa.func.count(CanonicalSecurity.canonical_id).label("total"),
                sa.func.count(sa.case((CanonicalSecurity.member_count > 1, 1))).label("multi"),
                sa.func.count(sa.case((CanonicalSecurity.needs_review == True, 1))).label("flagged"),  # noqa: E712
            )
        )
    ).one()

    return {
        "total_decisions": sum(item["count"] for item in by_status_method),
        "by_status_method": by_status_method,
        "score_bands": score_bands,
        "by_source_pair": by_source_pair,
        "canonical": {
            "total": canonical_row.total,
            "multi_member": canonical_row.multi,
            "flagged": canonical_row.flagged,
        },
    }
