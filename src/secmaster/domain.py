"""Core value types shared by every pipeline stage."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class SourceFeed(str, enum.Enum):
    """The three upstream feeds, declared in their fixed pair ordering."""

    FEED_A = "FEED_A"  # market-data vendor A
    FEED_B = "FEED_B"  # market-data vendor B
    FEED_C = "FEED_C"  # regulatory filings

    @property
    def tag(self) -> str:
        return _SOURCE_TAGS[self]

    @property
    def rank(self) -> int:
        return _SOURCE_ORDER.index(self)


_SOURCE_ORDER = list(SourceFeed)
_SOURCE_TAGS = {
    SourceFeed.FEED_A: "FA",
    SourceFeed.FEED_B: "FB",
    SourceFeed.FEED_C: "FC",
}


class MatchStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class MatchMethod(str, enum.Enum):
    SIMILARITY = "SIMILARITY"
    ORACLE_VALIDATED = "ORACLE_VALIDATED"


class Verdict(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    INCONCLUSIVE = "INCONCLUSIVE"


def make_harmonized_id(source: SourceFeed, native_id: str) -> str:
    """Deterministic global id: ``<source_tag>_<native_id>``."""
    return f"{source.tag}_{native_id}"


@dataclass(frozen=True)
class HarmonizedEntity:
    """Canonical post-normalization form of one source record.

    ``name_clean`` and ``issuer_clean`` only ever contain ``[A-Z0-9 ]``.
    """

    harmonized_id: str
    source: SourceFeed
    native_id: str
    name_clean: str
    issuer_clean: str
    asset_type: str
    isin: str | None = None
    sedol: str | None = None
    ticker: str | None = None
    currency: str | None = None

    @property
    def description(self) -> str:
        """Text descriptor fed to the embedding oracle."""
        return f"{self.name_clean} by {self.issuer_clean} ({self.asset_type})"


@dataclass(frozen=True)
class CandidatePair:
    """Cross-source pair sharing an asset type.

    ``entity_1.source`` always ranks strictly before ``entity_2.source``.
    """

    entity_1: HarmonizedEntity
    entity_2: HarmonizedEntity

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_1.harmonized_id, self.entity_2.harmonized_id)


@dataclass
class MatchDecisionRecord:
    """One pair that cleared the similarity bar.

    ``status`` starts as APPROVED (terminal) or PENDING; a PENDING record
    changes exactly once more, when an oracle verdict is applied.
    """

    match_id: str | None
    source_1: SourceFeed
    id_1: str
    harmonized_id_1: str
    source_2: SourceFeed
    id_2: str
    harmonized_id_2: str
    similarity_score: float
    method: MatchMethod
    status: MatchStatus
    created_at: datetime
    rationale: str | None = None
    adjudicated_at: datetime | None = None

    @property
    def pair_key(self) -> tuple[str, str]:
        return (self.harmonized_id_1, self.harmonized_id_2)

    @property
    def is_terminal(self) -> bool:
        return self.status is not MatchStatus.PENDING
