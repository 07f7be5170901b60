"""Pydantic response schemas for the resolution API."""

from __future__ import annotations

import datetime as dt
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    size: int
    pages: int


class EntitySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    harmonized_id: str
    source: str
    native_id: str
    name_clean: str
    issuer_clean: str
    asset_type: str
    isin: str | None = None
    sedol: str | None = None
    ticker: str | None = None
    currency: str | None = None


class MatchDecisionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    match_id: str
    source_1: str
    id_1: str
    harmonized_id_1: str
    source_2: str
    id_2: str
    harmonized_id_2: str
    similarity_score: float
    method: str
    status: str
    rationale: str | None = None
    created_at: dt.datetime
    adjudicated_at: dt.datetime | None = None


class AdjudicationLogSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    run_id: str | None = None
    verdict: str
    rationale: str
    response: str
    model: str
    applied: bool
    created_at: dt.datetime | None = None


class MatchReviewDetail(MatchDecisionSchema):
    """A decision joined with both entities and its adjudication trail."""

    entity_1: EntitySchema | None = None
    entity_2: EntitySchema | None = None
    adjudications: list[AdjudicationLogSchema] = []


class EntityDetail(EntitySchema):
    canonical_id: str | None = None
    decisions: list[MatchDecisionSchema] = []


class RunSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    run_id: str
    kind: str
    status: str
    summary: dict | None = None
    error: str | None = None
    started_at: dt.datetime
    finished_at: dt.datetime | None = None
