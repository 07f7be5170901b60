"""Threshold decision logic and deterministic match id assignment.

``decide`` maps one scored pair onto the three similarity bands.  Ids are
assigned afterwards by ``rank_decisions`` over the whole run, so the id a
pair receives never depends on the order scoring tasks finished in.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping

from secmaster.domain import CandidatePair, MatchDecisionRecord, MatchMethod, MatchStatus
from secmaster.errors import DuplicateDecisionError
from secmaster.matching.config import ThresholdConfig


def decide(
    pair: CandidatePair,
    score: float,
    thresholds: ThresholdConfig | None = None,
    *,
    match_id: str | None = None,
    now: dt.datetime | None = None,
) -> MatchDecisionRecord | None:
    """Apply threshold-based decision logic to a scored pair.

    Returns:
        An APPROVED record if ``score >= approve``, a PENDING record if
        ``pending <= score < approve``, otherwise ``None`` (the pair is
        discarded, not stored as REJECTED).
    """
    if thresholds is None:
        thresholds = ThresholdConfig()

    if score >= thresholds.approve:
        status = MatchStatus.APPROVED
    elif score >= thresholds.pending:
        status = MatchStatus.PENDING
    else:
        return None

    e1, e2 = pair.entity_1, pair.entity_2
    return MatchDecisionRecord(
        match_id=match_id,
        source_1=e1.source,
        id_1=e1.native_id,
        harmonized_id_1=e1.harmonized_id,
        source_2=e2.source,
        id_2=e2.native_id,
        harmonized_id_2=e2.harmonized_id,
        similarity_score=score,
        method=MatchMethod.SIMILARITY,
        status=status,
        created_at=now or dt.datetime.now(dt.UTC).replace(tzinfo=None),
    )


def rank_decisions(decisions: Iterable[MatchDecisionRecord]) -> list[MatchDecisionRecord]:
    """Sort by descending score and assign ``MATCH_<rank>`` ids.

    Ties are broken by the harmonized id pair so the ranking is total.

    Raises:
        DuplicateDecisionError: If an unordered entity pair occurs twice,
            an entity is paired with itself, or a pair breaks the source
            ordering.  All three mean candidate generation is broken.
    """
    ranked = sorted(
        decisions,
        key=lambda d: (-d.similarity_score, d.harmonized_id_1, d.harmonized_id_2),
    )

    seen: set[frozenset[str]] = set()
    for decision in ranked:
        if decision.source_1.rank >= decision.source_2.rank:
            raise DuplicateDecisionError(
                f"Pair {decision.pair_key} violates source ordering "
                f"({decision.source_1.value} vs {decision.source_2.value})"
            )
        key = frozenset(decision.pair_key)
        if len(key) < 2 or key in seen:
            raise DuplicateDecisionError(
                f"Pair {decision.pair_key} reached the decision engine twice"
            )
        seen.add(key)

    for rank, decision in enumerate(ranked, start=1):
        decision.match_id = f"MATCH_{rank}"
    return ranked


def carry_forward(
    decisions: list[MatchDecisionRecord],
    prior: Mapping[tuple[str, str], MatchDecisionRecord],
) -> int:
    """Keep earlier oracle verdicts for pairs that are PENDING again.

    A pair that was adjudicated in a previous run and still lands in the
    PENDING band takes over the stored status, method, rationale and
    adjudication time, so it is never sent to the oracle twice.

    Returns:
        Number of decisions that took over a prior verdict.
    """
    carried = 0
    for decision in decisions:
        if decision.status is not MatchStatus.PENDING:
            continue
        previous = prior.get(decision.pair_key)
        if (
            previous is None
            or previous.method is not MatchMethod.ORACLE_VALIDATED
            or not previous.is_terminal
        ):
            continue
        decision.status = previous.status
        decision.method = previous.method
        decision.rationale = previous.rationale
        decision.adjudicated_at = previous.adjudicated_at
        carried += 1
    return carried
