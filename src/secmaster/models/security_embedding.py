"""SQLAlchemy model for the per-entity description/embedding cache."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from secmaster.models.base import Base


class SecurityEmbedding(Base):
    """Cached embedding keyed by ``harmonized_id``.

    The description and model are stored with the vector; a lookup only
    counts as a hit when both still match (re-harmonized entity or model
    upgrade means a stale row).
    """

    __tablename__ = "security_embeddings"

    harmonized_id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    description: Mapped[str] = mapped_column(sa.Text)
    model: Mapped[str] = mapped_column(sa.String)
    dimension: Mapped[int] = mapped_column(sa.Integer)
    vector: Mapped[list] = mapped_column(sa.JSON)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
