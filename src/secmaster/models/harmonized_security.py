"""Harmonized entity rows: one per ingested source record."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from secmaster.domain import HarmonizedEntity, SourceFeed
from secmaster.models.base import Base


class HarmonizedSecurity(Base):
    """Persisted ``HarmonizedEntity``.

    Rows are replaced wholesale on re-harmonization, never patched.
    ``(source, native_id)`` is the lineage key back to the feed row.
    """

    __tablename__ = "harmonized_entities"

    harmonized_id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    source: Mapped[str] = mapped_column(sa.String(16))
    native_id: Mapped[str] = mapped_column(sa.String)
    name_clean: Mapped[str] = mapped_column(sa.String)
    issuer_clean: Mapped[str] = mapped_column(sa.String)
    asset_type: Mapped[str] = mapped_column(sa.String, index=True)
    isin: Mapped[str | None] = mapped_column(sa.String(12), nullable=True)
    sedol: Mapped[str | None] = mapped_column(sa.String(7), nullable=True)
    ticker: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    currency: Mapped[str | None] = mapped_column(sa.String(3), nullable=True)

    harmonized_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        sa.UniqueConstraint("source", "native_id", name="uq_harmonized_entities_source_native_id"),
        sa.CheckConstraint(
            "source IN ('FEED_A', 'FEED_B', 'FEED_C')", name="valid_source"
        ),
    )

    @classmethod
    def from_entity(cls, entity: HarmonizedEntity) -> HarmonizedSecurity:
        return cls(
            harmonized_id=entity.harmonized_id,
            source=entity.source.value,
            native_id=entity.native_id,
            name_clean=entity.name_clean,
            issuer_clean=entity.issuer_clean,
            asset_type=entity.asset_type,
            isin=entity.isin,
            sedol=entity.sedol,
            ticker=entity.ticker,
            currency=entity.currency,
        )

    def to_entity(self) -> HarmonizedEntity:
        return HarmonizedEntity(
            harmonized_id=self.harmonized_id,
            source=SourceFeed(self.source),
            native_id=self.native_id,
            name_clean=self.name_clean,
            issuer_clean=self.issuer_clean,
            asset_type=self.asset_type,
            isin=self.isin,
            sedol=self.sedol,
            ticker=self.ticker,
            currency=self.currency,
        )
