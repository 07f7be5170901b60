"""Match decision model: one row per candidate pair that cleared the bar."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from secmaster.domain import MatchDecisionRecord, MatchMethod, MatchStatus, SourceFeed
from secmaster.models.base import Base


class MatchDecision(Base):
    """Persisted match decision with lineage to both source records.

    Pair ordering follows the fixed feed ranking (``source_1 < source_2``),
    which also makes each unordered entity pair unique.
    """

    __tablename__ = "match_decisions"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[str] = mapped_column(sa.String, unique=True)

    source_1: Mapped[str] = mapped_column(sa.String(16))
    id_1: Mapped[str] = mapped_column(sa.String)
    harmonized_id_1: Mapped[str] = mapped_column(sa.String, index=True)
    source_2: Mapped[str] = mapped_column(sa.String(16))
    id_2: Mapped[str] = mapped_column(sa.String)
    harmonized_id_2: Mapped[str] = mapped_column(sa.String, index=True)

    similarity_score: Mapped[float] = mapped_column(sa.Float)
    method: Mapped[str] = mapped_column(sa.String(32))
    status: Mapped[str] = mapped_column(sa.String(16), index=True)
    rationale: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime)
    adjudicated_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    __table_args__ = (
        sa.UniqueConstraint(
            "harmonized_id_1", "harmonized_id_2", name="uq_match_decisions_entity_pair"
        ),
        sa.CheckConstraint("source_1 < source_2", name="source_ordering"),
        sa.CheckConstraint(
            "status IN ('APPROVED', 'PENDING', 'REJECTED')", name="valid_status"
        ),
        sa.CheckConstraint(
            "method IN ('SIMILARITY', 'ORACLE_VALIDATED')", name="valid_method"
        ),
    )

    @classmethod
    def from_record(cls, record: MatchDecisionRecord) -> MatchDecision:
        return cls(
            match_id=record.match_id,
            source_1=record.source_1.value,
            id_1=record.id_1,
            harmonized_id_1=record.harmonized_id_1,
            source_2=record.source_2.value,
            id_2=record.id_2,
            harmonized_id_2=record.harmonized_id_2,
            similarity_score=record.similarity_score,
            method=record.method.value,
            status=record.status.value,
            rationale=record.rationale,
            created_at=record.created_at,
            adjudicated_at=record.adjudicated_at,
        )

    def to_record(self) -> MatchDecisionRecord:
        return MatchDecisionRecord(
            match_id=self.match_id,
            source_1=SourceFeed(self.source_1),
            id_1=self.id_1,
            harmonized_id_1=self.harmonized_id_1,
            source_2=SourceFeed(self.source_2),
            id_2=self.id_2,
            harmonized_id_2=self.harmonized_id_2,
            similarity_score=self.similarity_score,
            method=MatchMethod(self.method),
            status=MatchStatus(self.status),
            created_at=self.created_at,
            rationale=self.rationale,
            adjudicated_at=self.adjudicated_at,
        )
