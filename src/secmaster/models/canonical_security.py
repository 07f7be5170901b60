"""Canonical securities: connected components of approved matches."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from secmaster.models.base import Base


class CanonicalSecurity(Base):
    __tablename__ = "canonical_securities"

    canonical_id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    name: Mapped[str] = mapped_column(sa.String)
    asset_type: Mapped[str] = mapped_column(sa.String)
    isin: Mapped[str | None] = mapped_column(sa.String(12), nullable=True)
    sources: Mapped[list] = mapped_column(sa.JSON)
    member_count: Mapped[int] = mapped_column(sa.Integer)
    needs_review: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    review_reason: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    members: Mapped[list[CanonicalSecurityMember]] = relationship(
        back_populates="canonical", cascade="all, delete-orphan"
    )


class CanonicalSecurityMember(Base):
    __tablename__ = "canonical_security_members"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    canonical_id: Mapped[str] = mapped_column(
        sa.ForeignKey("canonical_securities.canonical_id", ondelete="CASCADE")
    )
    harmonized_id: Mapped[str] = mapped_column(sa.String, unique=True)

    canonical: Mapped[CanonicalSecurity] = relationship(back_populates="members")
