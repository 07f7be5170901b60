"""Audit trail of every reasoning-oracle verdict."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from secmaster.models.base import Base


class AdjudicationLog(Base):
    """One row per oracle answer, including INCONCLUSIVE ones.

    Keyed by the entity pair as well as ``match_id`` because match ids
    are re-ranked on every run while the pair is stable.
    """

    __tablename__ = "adjudication_log"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    match_id: Mapped[str] = mapped_column(sa.String)
    harmonized_id_1: Mapped[str] = mapped_column(sa.String)
    harmonized_id_2: Mapped[str] = mapped_column(sa.String)
    similarity_score: Mapped[float] = mapped_column(sa.Float)
    verdict: Mapped[str] = mapped_column(sa.String(16))
    rationale: Mapped[str] = mapped_column(sa.Text)
    response: Mapped[str] = mapped_column(sa.Text)
    model: Mapped[str] = mapped_column(sa.String)
    applied: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        sa.Index("ix_adjudication_log_pair", "harmonized_id_1", "harmonized_id_2"),
        sa.CheckConstraint(
            "verdict IN ('APPROVED', 'REJECTED', 'INCONCLUSIVE')", name="valid_verdict"
        ),
    )
