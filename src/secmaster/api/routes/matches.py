"""REST API endpoints for match decisions."""

from __future__ import annotations

import sqlalchemy as sa
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from secmaster.api.deps import Page, get_db, get_page
from secmaster.api.schemas import (
    AdjudicationLogSchema,
    EntitySchema,
    MatchDecisionSchema,
    MatchReviewDetail,
    PaginatedResponse,
)
from secmaster.models.adjudication_log import AdjudicationLog
from secmaster.models.harmonized_security import HarmonizedSecurity
from secmaster.models.match_decision import MatchDecision

router = APIRouter(prefix="/api/matches", tags=["matches"])


@router.get("", response_model=PaginatedResponse[MatchDecisionSchema])
async def list_matches(
    db: AsyncSession = Depends(get_db),
    status: str | None = None,
    method: str | None = None,
    source: str | None = None,
    min_score: float | None = Query(default=None, ge=-1.0, le=1.0),
    page: Page = Depends(get_page),
) -> PaginatedResponse[MatchDecisionSchema]:
    """List decisions, highest similarity first."""
    stmt = sa.select(MatchDecision)

    if status:
        stmt = stmt.where(MatchDecision.status == status.upper())
    if method:
        stmt = stmt.where(MatchDecision.method == method.upper())
    if source:
        # Either side of the pair
        src = source.upper()
        stmt = stmt.where(
            sa.or_(MatchDecision.source_1 == src, MatchDecision.source_2 == src)
        )
    if min_score is not None:
        stmt = stmt.where(MatchDecision.similarity_score >= min_score)

    count_stmt = sa.select(sa.func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar_one()

    stmt = (
        stmt.order_by(MatchDecision.similarity_score.desc(), MatchDecision.id)
        .offset(page.offset)
        .limit(page.size)
    )
    result = await db.execute(stmt)
    items = [MatchDecisionSchema.model_validate(d) for d in result.scalars().all()]
    return PaginatedResponse(
        items=items, total=total, page=page.number, size=page.size, pages=page.count(total)
    )


@router.get("/{match_id}", response_model=MatchReviewDetail)
async def get_match(
    match_id: str,
    db: AsyncSession = Depends(get_db),
) -> MatchReviewDetail:
    """Match review row: the decision, both entities and every oracle answer."""
    result = await db.execute(sa.select(MatchDecision).where(MatchDecision.match_id == match_id))
    decision = result.scalar_one_or_none()
    if decision is None:
        raise HTTPException(status_code=404, detail="Match decision not found")

    ent_result = await db.execute(
        sa.select(HarmonizedSecurity).where(
            HarmonizedSecurity.harmonized_id.in_(
                [decision.harmonized_id_1, decision.harmonized_id_2]
            )
        )
    )
    entities = {e.harmonized_id: e for e in ent_result.scalars().all()}

    log_result = await db.execute(
        sa.select(AdjudicationLog)
        .where(
            AdjudicationLog.harmonized_id_1 == decision.harmonized_id_1,
            AdjudicationLog.harmonized_id_2 == decision.harmonized_id_2,
        )
        .order_by(AdjudicationLog.id)
    )

    data = MatchDecisionSchema.model_validate(decision).model_dump()
    entity_1 = entities.get(decision.harmonized_id_1)
    entity_2 = entities.get(decision.harmonized_id_2)
    data["entity_1"] = EntitySchema.model_validate(entity_1) if entity_1 else None
    data["entity_2"] = EntitySchema.model_validate(entity_2) if entity_2 else None
    data["adjudications"] = [
        AdjudicationLogSchema.model_validate(entry) for entry in log_result.scalars().all()
    ]
    return MatchReviewDetail.model_validate(data)
