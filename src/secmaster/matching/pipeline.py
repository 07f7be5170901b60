"""Matching pipeline: blocking -> scoring -> decision.

Candidate pairs come from the asset-type blocking index, every entity
that takes part in a pair is embedded up front (batched), and each pair
is then scored and thresholded.  A pair whose score is unknown is
reported as unresolved and produces no decision.  No database writes
happen here; the scorer may read and fill its embedding cache.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from secmaster.domain import HarmonizedEntity, MatchDecisionRecord, MatchStatus
from secmaster.errors import ScoringUnavailableError
from secmaster.matching.candidate_pairs import (
    CandidatePairStats,
    candidate_stats,
    generate_candidates,
)
from secmaster.matching.config import ThresholdConfig
from secmaster.matching.decision import decide, rank_decisions
from secmaster.scoring.scorer import SimilarityScorer

logger = structlog.get_logger()


@dataclass
class MatchResult:
    """Aggregate result from the matching pipeline.

    Attributes:
        decisions: Ranked decisions with match ids assigned.
        pair_stats: Blocking/candidate pair statistics.
        candidate_pairs: Pairs produced by blocking.
        scored: Pairs that received a similarity score.
        unresolved: Pair keys whose score is unknown.
        below_threshold: Scored pairs discarded under the pending band.
        errors: Per-pair error counts by error kind.
    """

    decisions: list[MatchDecisionRecord]
    pair_stats: CandidatePairStats
    candidate_pairs: int = 0
    scored: int = 0
    unresolved: list[tuple[str, str]] = field(default_factory=list)
    below_threshold: int = 0
    errors: Counter = field(default_factory=Counter)

    @property
    def approved_count(self) -> int:
        return sum(1 for d in self.decisions if d.status is MatchStatus.APPROVED)

    @property
    def pending_count(self) -> int:
        return sum(1 for d in self.decisions if d.status is MatchStatus.PENDING)


async def score_candidate_pairs(
    entities: Sequence[HarmonizedEntity],
    scorer: SimilarityScorer,
    thresholds: ThresholdConfig | None = None,
    cancel_event: asyncio.Event | None = None,
) -> MatchResult:
    """Block, score and decide every candidate pair.

    Args:
        entities: Harmonized entities of the current run.
        scorer: Similarity scorer (owns the embedding cache).
        thresholds: Decision bands; defaults to 0.90 / 0.80.
        cancel_event: When set before embedding starts, remaining pairs
            are left unresolved.

    Returns:
        A ``MatchResult`` with ranked decisions and counters.
    """
    pair_stats = candidate_stats(entities)
    pairs = list(generate_candidates(entities))
    logger.info(
        "candidates_generated",
        entities=pair_stats.total_entities,
        partitions=pair_stats.partition_count,
        naive_pairs=pair_stats.total_possible_pairs,
        blocked_pairs=pair_stats.blocked_pairs,
        reduction_pct=round(pair_stats.reduction_pct, 2),
    )

    participants: dict[str, HarmonizedEntity] = {}
    for pair in pairs:
        participants.setdefault(pair.entity_1.harmonized_id, pair.entity_1)
        participants.setdefault(pair.entity_2.harmonized_id, pair.entity_2)
    await scorer.warm(participants.values())

    result = MatchResult(
        decisions=[], pair_stats=pair_stats, candidate_pairs=len(pairs)
    )
    decisions: list[MatchDecisionRecord] = []

    for pair in pairs:
        try:
            score = await scorer.score(pair)
        except ScoringUnavailableError as e:
            result.unresolved.append(pair.key)
            result.errors[e.kind] += 1
            logger.warning(
                "pair_unresolved",
                harmonized_id_1=pair.key[0],
                harmonized_id_2=pair.key[1],
                error=str(e),
            )
            continue

        result.scored += 1
        decision = decide(pair, score, thresholds)
        if decision is None:
            result.below_threshold += 1
        else:
            decisions.append(decision)

    result.decisions = rank_decisions(decisions)
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("scoring_cancelled", unresolved=len(result.unresolved))

    logger.info(
        "matching_complete",
        scored=result.scored,
        unresolved=len(result.unresolved),
        approved=result.approved_count,
        pending=result.pending_count,
        below_threshold=result.below_threshold,
    )
    return result
