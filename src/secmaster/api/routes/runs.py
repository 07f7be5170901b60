"""REST API endpoints for run summaries and decision statistics."""

from __future__ import annotations

import sqlalchemy as sa
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from secmaster.api.deps import get_db
from secmaster.api.schemas import RunSchema
from secmaster.models.resolution_run import ResolutionRun
from secmaster.reporting.statistics import match_statistics

router = APIRouter(prefix="/api", tags=["runs"])


@router.get("/runs/latest", response_model=RunSchema)
async def latest_run(
    kind: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> RunSchema:
    """Most recently started run, optionally of one kind."""
    stmt = sa.select(ResolutionRun)
    if kind:
        stmt = stmt.where(ResolutionRun.kind == kind)
    stmt = stmt.order_by(ResolutionRun.started_at.desc()).limit(1)

    run = (await db.execute(stmt)).scalar_one_or_none()
    if run is None:
        raise HTTPException(status_code=404, detail="No runs recorded")
    return RunSchema.model_validate(run)


@router.get("/statistics")
async def statistics(db: AsyncSession = Depends(get_db)) -> dict:
    """Status/method, similarity band and source pair distributions."""
    return await match_statistics(db)
