"""REST API endpoints for harmonized entities."""

from __future__ import annotations

import sqlalchemy as sa
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from secmaster.api.deps import get_db
from secmaster.api.schemas import EntityDetail, EntitySchema, MatchDecisionSchema
from secmaster.models.canonical_security import CanonicalSecurityMember
from secmaster.models.harmonized_security import HarmonizedSecurity
from secmaster.models.match_decision import MatchDecision

router = APIRouter(prefix="/api/entities", tags=["entities"])


@router.get("/{harmonized_id}", response_model=EntityDetail)
async def get_entity(
    harmonized_id: str,
    db: AsyncSession = Depends(get_db),
) -> EntityDetail:
    """Entity detail with its canonical security and every decision it is part of."""
    entity = await db.get(HarmonizedSecurity, harmonized_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")

    canonical_id = (
        await db.execute(
            sa.select(CanonicalSecurityMember.canonical_id).where(
                CanonicalSecurityMember.harmonized_id == harmonized_id
            )
        )
    ).scalar_one_or_none()

    decisions = (
        await db.execute(
            sa.select(MatchDecision)
            .where(
                sa.or_(
                    MatchDecision.harmonized_id_1 == harmonized_id,
                    MatchDecision.harmonized_id_2 == harmonized_id,
                )
            )
            .order_by(MatchDecision.similarity_score.desc())
        )
    ).scalars().all()

    data = EntitySchema.model_validate(entity).model_dump()
    data["canonical_id"] = canonical_id
    data["decisions"] = [MatchDecisionSchema.model_validate(d) for d in decisions]
    return EntityDetail.model_validate(data)
