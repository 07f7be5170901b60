"""Persisted run summaries for operators."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from secmaster.models.base import Base


class ResolutionRun(Base):
    __tablename__ = "resolution_runs"

    run_id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    kind: Mapped[str] = mapped_column(sa.String(32), default="resolve")
    status: Mapped[str] = mapped_column(sa.String(16))
    summary: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(sa.DateTime)
    finished_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('completed', 'aborted', 'cancelled')", name="valid_run_status"
        ),
    )
