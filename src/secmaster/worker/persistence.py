"""Resolution store reads and writes.

Write helpers must be called within an active ``session.begin()``
context; the orchestrator commits a whole run in a single transaction,
so a failed run leaves the previous state untouched.

- Harmonized entities and the canonical graph are clear-and-replace.
- Match decisions are replaced by pair after the orchestrator has merged
  prior oracle verdicts into the new set (see ``carry_forward``).
- Oracle verdicts from ``adjudicate-pending`` are committed with a
  conditional update that only touches rows still PENDING.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from secmaster.adjudication.resolver import AdjudicationEntry
from secmaster.clustering.graph_cluster import GraphResult
from secmaster.domain import HarmonizedEntity, MatchDecisionRecord, MatchStatus
from secmaster.models.adjudication_log import AdjudicationLog
from secmaster.models.canonical_security import CanonicalSecurity, CanonicalSecurityMember
from secmaster.models.harmonized_security import HarmonizedSecurity
from secmaster.models.match_decision import MatchDecision
from secmaster.models.resolution_run import ResolutionRun
from secmaster.worker.summary import RunSummary


async def load_entities(session: AsyncSession) -> list[HarmonizedEntity]:
    result = await session.execute(
        select(HarmonizedSecurity).order_by(HarmonizedSecurity.harmonized_id)
    )
    return [row.to_entity() for row in result.scalars().all()]


async def load_decisions(
    session: AsyncSession,
) -> dict[tuple[str, str], MatchDecisionRecord]:
    """All stored decisions keyed by ``(harmonized_id_1, harmonized_id_2)``."""
    result = await session.execute(select(MatchDecision))
    return {
        (row.harmonized_id_1, row.harmonized_id_2): row.to_record()
        for row in result.scalars().all()
    }


async def load_pending_decisions(
    session: AsyncSession,
) -> tuple[list[MatchDecisionRecord], dict[str, HarmonizedEntity]]:
    """Stored PENDING decisions plus the entities they reference.

    Decisions whose entities are no longer present are skipped.
    """
    result = await session.execute(
        select(MatchDecision)
        .where(MatchDecision.status == MatchStatus.PENDING.value)
        .order_by(MatchDecision.similarity_score.desc(), MatchDecision.match_id)
    )
    rows = result.scalars().all()

    ids = {r.harmonized_id_1 for r in rows} | {r.harmonized_id_2 for r in rows}
    entities: dict[str, HarmonizedEntity] = {}
    if ids:
        ent_result = await session.execute(
            select(HarmonizedSecurity).where(HarmonizedSecurity.harmonized_id.in_(ids))
        )
        entities = {e.harmonized_id: e.to_entity() for e in ent_result.scalars().all()}

    pending = [
        row.to_record()
        for row in rows
        if row.harmonized_id_1 in entities and row.harmonized_id_2 in entities
    ]
    return pending, entities


async def replace_harmonized_entities(
    session: AsyncSession, entities: Sequence[HarmonizedEntity]
) -> int:
    """Clear ``harmonized_entities`` and write the current run's entities."""
    await session.execute(delete(HarmonizedSecurity))
    session.add_all([HarmonizedSecurity.from_entity(e) for e in entities])
    await session.flush()
    return len(entities)


async def replace_match_decisions(
    session: AsyncSession, decisions: Sequence[MatchDecisionRecord]
) -> int:
    """Replace stored decisions with the run's merged, ranked set.

    Pairs absent from ``decisions`` disappear from the store.
    """
    await session.execute(delete(MatchDecision))
    session.add_all([MatchDecision.from_record(d) for d in decisions])
    await session.flush()
    return len(decisions)


async def apply_verdict(session: AsyncSession, decision: MatchDecisionRecord) -> bool:
    """Commit an oracle verdict only if the stored row is still PENDING.

    Returns:
        ``True`` if the row was updated, ``False`` if another writer got
        there first (or the pair no longer exists).
    """
    result = await session.execute(
        update(MatchDecision)
        .where(
            MatchDecision.harmonized_id_1 == decision.harmonized_id_1,
            MatchDecision.harmonized_id_2 == decision.harmonized_id_2,
            MatchDecision.status == MatchStatus.PENDING.value,
        )
        .values(
            status=decision.status.value,
            method=decision.method.value,
            rationale=decision.rationale,
            adjudicated_at=decision.adjudicated_at,
        )
    )
    return result.rowcount == 1


async def write_adjudication_log(
    session: AsyncSession,
    entries: Iterable[AdjudicationEntry],
    run_id: str | None = None,
) -> int:
    count = 0
    for entry in entries:
        session.add(
            AdjudicationLog(
                run_id=run_id,
                match_id=entry.match_id,
                harmonized_id_1=entry.harmonized_id_1,
                harmonized_id_2=entry.harmonized_id_2,
                similarity_score=entry.similarity_score,
                verdict=entry.verdict.value,
                rationale=entry.rationale,
                response=entry.response,
                model=entry.model,
                applied=entry.applied,
            )
        )
        count += 1
    await session.flush()
    return count


async def replace_canonical_graph(session: AsyncSession, graph: GraphResult) -> int:
    """Clear the canonical graph and write the new components.

    Returns:
        Number of canonical securities written.
    """
    # Members first: ON DELETE CASCADE is not enforced in SQLite by default
    await session.execute(delete(CanonicalSecurityMember))
    await session.execute(delete(CanonicalSecurity))

    for component in graph.components:
        representative = component.representative
        canonical = CanonicalSecurity(
            canonical_id=component.canonical_id,
            name=representative.name_clean,
            asset_type=representative.asset_type,
            isin=component.isin,
            sources=component.sources,
            member_count=len(component.members),
            needs_review=component.needs_review,
            review_reason=component.review_reason,
        )
        canonical.members = [
            CanonicalSecurityMember(harmonized_id=m.harmonized_id)
            for m in component.members
        ]
        session.add(canonical)

    await session.flush()
    return len(graph.components)


async def record_run(
    session: AsyncSession, summary: RunSummary, error: str | None = None
) -> None:
    session.add(
        ResolutionRun(
            run_id=summary.run_id,
            kind=summary.kind,
            status=summary.status,
            summary=summary.to_dict(),
            error=error,
            started_at=summary.started_at or dt.datetime.now(dt.UTC).replace(tzinfo=None),
            finished_at=summary.finished_at,
        )
    )
    await session.flush()
