"""Batch adjudication: resolves every PENDING decision of a run.

Filters PENDING decisions, adjudicates them concurrently behind a
semaphore, and isolates failures per decision.  An unavailable oracle or
an inconclusive answer leaves the decision PENDING for a later
``adjudicate-pending`` pass.  Every oracle answer is collected so it can
be written to the adjudication log.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from secmaster.adjudication.adjudicator import AdjudicationOutcome, Adjudicator
from secmaster.domain import HarmonizedEntity, MatchDecisionRecord, MatchStatus, Verdict
from secmaster.errors import AdjudicationUnavailableError, InconclusiveAdjudicationError

logger = structlog.get_logger()


@dataclass
class AdjudicationEntry:
    """One oracle answer, as written to ``adjudication_log``."""

    match_id: str
    harmonized_id_1: str
    harmonized_id_2: str
    similarity_score: float
    verdict: Verdict
    rationale: str
    response: str
    model: str
    applied: bool = False


@dataclass
class AdjudicationStats:
    """Outcome counts for one adjudication pass.

    Attributes:
        attempted: PENDING decisions handed to the adjudicator.
        approved: Decisions approved by the oracle.
        rejected: Decisions rejected by the oracle.
        inconclusive: Answers without exactly one verdict token.
        unavailable: Decisions left PENDING because the oracle failed.
        entries: Every oracle answer received, for the audit log.
        errors: Per-decision error counts by error kind.
    """

    attempted: int = 0
    approved: int = 0
    rejected: int = 0
    inconclusive: int = 0
    unavailable: int = 0
    entries: list[AdjudicationEntry] = field(default_factory=list)
    errors: Counter = field(default_factory=Counter)


async def adjudicate_decisions(
    decisions: Sequence[MatchDecisionRecord],
    entities_by_id: Mapping[str, HarmonizedEntity],
    adjudicator: Adjudicator,
    max_concurrent: int = 4,
) -> AdjudicationStats:
    """Adjudicate every PENDING decision in ``decisions`` in place.

    Args:
        decisions: Decisions of the run; terminal ones are skipped.
        entities_by_id: Harmonized entities keyed by ``harmonized_id``.
        adjudicator: Adjudicator wrapping the reasoning oracle.
        max_concurrent: Upper bound on simultaneous oracle calls.

    Returns:
        ``AdjudicationStats`` for the pass.
    """
    pending = [d for d in decisions if d.status is MatchStatus.PENDING]
    stats = AdjudicationStats(attempted=len(pending))
    if not pending:
        logger.info("adjudication_skip", reason="no_pending_decisions")
        return stats

    log = logger.bind(pending_count=len(pending), model=adjudicator.model)
    log.info("adjudication_start")
    semaphore = asyncio.Semaphore(max_concurrent)

    async def adjudicate_one(decision: MatchDecisionRecord) -> AdjudicationOutcome:
        async with semaphore:
            return await adjudicator.review(
                decision,
                entities_by_id[decision.harmonized_id_1],
                entities_by_id[decision.harmonized_id_2],
            )

    outcomes = await asyncio.gather(
        *[adjudicate_one(d) for d in pending],
        return_exceptions=True,
    )

    for decision, outcome in zip(pending, outcomes):
        if isinstance(outcome, AdjudicationUnavailableError):
            stats.unavailable += 1
            stats.errors[outcome.kind] += 1
            logger.warning(
                "adjudication_unavailable",
                match_id=decision.match_id,
                error=str(outcome),
            )
            continue
        if isinstance(outcome, BaseException):
            raise outcome

        if outcome.invoked:
            stats.entries.append(
                AdjudicationEntry(
                    match_id=decision.match_id or "",
                    harmonized_id_1=decision.harmonized_id_1,
                    harmonized_id_2=decision.harmonized_id_2,
                    similarity_score=decision.similarity_score,
                    verdict=outcome.verdict,
                    rationale=outcome.rationale,
                    response=outcome.response,
                    model=adjudicator.model,
                    applied=outcome.verdict is not Verdict.INCONCLUSIVE,
                )
            )

        if outcome.verdict is Verdict.APPROVED:
            stats.approved += 1
        elif outcome.verdict is Verdict.REJECTED:
            stats.rejected += 1
        else:
            stats.inconclusive += 1
            stats.errors[InconclusiveAdjudicationError.kind] += 1

    log.info(
        "adjudication_complete",
        approved=stats.approved,
        rejected=stats.rejected,
        inconclusive=stats.inconclusive,
        unavailable=stats.unavailable,
        oracle_calls=adjudicator.oracle_calls,
    )
    return stats
