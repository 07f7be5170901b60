"""Deterministic oracle fakes and entity builders shared by the tests."""

from __future__ import annotations

import asyncio
import datetime as dt

from secmaster.domain import (
    CandidatePair,
    HarmonizedEntity,
    MatchDecisionRecord,
    MatchMethod,
    MatchStatus,
    SourceFeed,
    make_harmonized_id,
)
from secmaster.matching.config import (
    AdjudicationConfig,
    EmbeddingConfig,
    MatchingConfig,
    RetryConfig,
)

DIMENSION = 4

# Longest keyword wins, so "BARCLAYS BANK" shadows "BARCLAYS".
# BARCLAYS vs BARCLAYS BANK scores 0.85 (PENDING band); HSBC vs HSBC is 1.0.
KEYWORD_VECTORS = {
    "HSBC": [1.0, 0.0, 0.0, 0.0],
    "BARCLAYS": [0.0, 1.0, 0.0, 0.0],
    "BARCLAYS BANK": [0.0, 0.85, 0.526783, 0.0],
    "LLOYDS": [0.0, 0.0, 1.0, 0.0],
}
DEFAULT_VECTOR = [0.0, 0.0, 0.0, 1.0]

FIXED_NOW = dt.datetime(2026, 3, 2, 9, 30)


async def no_sleep(_delay: float) -> None:
    return None


def fast_retry(max_attempts: int = 2) -> RetryConfig:
    return RetryConfig(
        max_attempts=max_attempts, timeout_seconds=5.0, base_delay=0.0, max_delay=0.0
    )


def make_config(adjudication: bool = True, **embedding) -> MatchingConfig:
    """Matching config sized for the 4-dimensional fake embedder."""
    return MatchingConfig(
        embedding=EmbeddingConfig(
            model="keyword-v1", dimension=DIMENSION, retry=fast_retry(), **embedding
        ),
        adjudication=AdjudicationConfig(enabled=adjudication, retry=fast_retry()),
    )


def make_entity(
    native_id: str,
    source: SourceFeed = SourceFeed.FEED_A,
    name: str = "HSBC HOLDINGS PLC",
    issuer: str | None = None,
    asset_type: str = "EQUITY",
    isin: str | None = None,
) -> HarmonizedEntity:
    return HarmonizedEntity(
        harmonized_id=make_harmonized_id(source, native_id),
        source=source,
        native_id=native_id,
        name_clean=name,
        issuer_clean=issuer or name,
        asset_type=asset_type,
        isin=isin,
    )


def make_decision(
    entity_1: HarmonizedEntity,
    entity_2: HarmonizedEntity,
    score: float,
    status: MatchStatus = MatchStatus.PENDING,
    method: MatchMethod = MatchMethod.SIMILARITY,
    match_id: str | None = "MATCH_1",
    rationale: str | None = None,
) -> MatchDecisionRecord:
    return MatchDecisionRecord(
        match_id=match_id,
        source_1=entity_1.source,
        id_1=entity_1.native_id,
        harmonized_id_1=entity_1.harmonized_id,
        source_2=entity_2.source,
        id_2=entity_2.native_id,
        harmonized_id_2=entity_2.harmonized_id,
        similarity_score=score,
        method=method,
        status=status,
        created_at=FIXED_NOW,
        rationale=rationale,
    )


def make_pair(entity_1: HarmonizedEntity, entity_2: HarmonizedEntity) -> CandidatePair:
    return CandidatePair(entity_1=entity_1, entity_2=entity_2)


class KeywordEmbeddingOracle:
    """Embeds a text as the vector of the longest keyword it contains.

    Texts without a known keyword all share ``DEFAULT_VECTOR``.  The
    first ``failures`` calls raise ``ConnectionError``.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        model: str = "keyword-v1",
        failures: int = 0,
    ):
        self.vectors = vectors if vectors is not None else KEYWORD_VECTORS
        self.model = model
        self.failures = failures
        self.calls: list[list[str]] = []

    def vector_for(self, text: str) -> list[float]:
        for keyword in sorted(self.vectors, key=len, reverse=True):
            if keyword in text:
                return list(self.vectors[keyword])
        return list(DEFAULT_VECTOR)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        # Yield so concurrent callers interleave
        await asyncio.sleep(0)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("embedding backend unreachable")
        return [self.vector_for(t) for t in texts]

    @property
    def embedded_texts(self) -> list[str]:
        return [text for call in self.calls for text in call]


class MalformedEmbeddingOracle:
    """Answers with whatever ``payload`` is, regardless of input."""

    def __init__(self, payload: list[list[float]], model: str = "broken-v1"):
        self.payload = payload
        self.model = model
        self.calls = 0

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return self.payload


class FailingReasoningOracle:
    """Reasoning oracle that is always down."""

    def __init__(self, model: str = "down-v1"):
        self.model = model
        self.calls = 0

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        raise ConnectionError("reasoning backend unreachable")


class GatedReasoningOracle:
    """Holds every call until ``release`` is set, then answers ``response``."""

    def __init__(self, response: str, model: str = "gated-v1"):
        self.response = response
        self.model = model
        self.release = asyncio.Event()
        self.calls = 0

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        await self.release.wait()
        return self.response
