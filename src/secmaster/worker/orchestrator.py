"""Run orchestrator bridging harmonization, matching, adjudication and storage.

Provides the runtime logic that connects:
1. Harmonization of source records (pure)
2. Blocking, scoring and threshold decisions
3. Merging with stored decisions (prior oracle verdicts survive)
4. Oracle adjudication of PENDING decisions
5. Canonical graph construction
6. Persisting everything in a single transaction

Every stage receives its configuration, oracles and session factory via
an explicit ``RunContext``.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from secmaster.adjudication.adjudicator import Adjudicator
from secmaster.adjudication.resolver import AdjudicationStats, adjudicate_decisions
from secmaster.clustering.graph_cluster import build_canonical_graph
from secmaster.domain import MatchDecisionRecord, MatchStatus, SourceFeed
from secmaster.errors import (
    AdjudicationUnavailableError,
    MalformedRecordError,
    PipelineAbortedError,
    ScoringUnavailableError,
)
from secmaster.ingestion.feeds import SourceRecord, load_feed_file
from secmaster.logging_config import bind_run
from secmaster.matching.config import MatchingConfig
from secmaster.matching.decision import carry_forward, rank_decisions
from secmaster.matching.pipeline import score_candidate_pairs
from secmaster.oracles.base import EmbeddingOracle, ReasoningOracle
from secmaster.oracles.retry import call_with_retry
from secmaster.preprocessing.normalizer import harmonize_records
from secmaster.scoring.scorer import SimilarityScorer
from secmaster.worker.persistence import (
    apply_verdict,
    load_decisions,
    load_entities,
    load_pending_decisions,
    record_run,
    replace_canonical_graph,
    replace_harmonized_entities,
    replace_match_decisions,
    write_adjudication_log,
)
from secmaster.worker.summary import RunSummary

logger = structlog.get_logger()

_PROBE_TEXT = "SECURITY MASTER PROBE by SECURITY MASTER (EQUITY)"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC).replace(tzinfo=None)


@dataclass
class RunContext:
    """Everything a run needs, passed explicitly into each stage.

    Attributes:
        run_id: Identifier bound to every log line of the run.
        config: Resolution parameters.
        session_factory: Async session factory for the resolution store.
        embedding_oracle: Backend for the similarity scorer.
        reasoning_oracle: Backend for adjudication; ``None`` disables it.
        cancel_event: Set to stop issuing new oracle calls.
        sleep: Backoff sleep used by oracle retries.
    """

    run_id: str
    config: MatchingConfig
    session_factory: async_sessionmaker
    embedding_oracle: EmbeddingOracle
    reasoning_oracle: ReasoningOracle | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def create(
        cls,
        config: MatchingConfig,
        session_factory: async_sessionmaker,
        embedding_oracle: EmbeddingOracle,
        reasoning_oracle: ReasoningOracle | None = None,
        **kwargs,
    ) -> RunContext:
        return cls(
            run_id=uuid.uuid4().hex[:12],
            config=config,
            session_factory=session_factory,
            embedding_oracle=embedding_oracle,
            reasoning_oracle=reasoning_oracle,
            **kwargs,
        )

    @property
    def adjudication_enabled(self) -> bool:
        return self.config.adjudication.enabled and self.reasoning_oracle is not None


async def probe_oracles(ctx: RunContext, *, embedding: bool = True) -> None:
    """Make one call to each oracle the run depends on.

    Raises:
        PipelineAbortedError: An oracle is unreachable or answers with
            something unusable.
    """
    if embedding:
        try:
            vectors = await call_with_retry(
                lambda: ctx.embedding_oracle.embed([_PROBE_TEXT]),
                ctx.config.embedding.retry,
                error_cls=ScoringUnavailableError,
                operation="probe_embedding",
                sleep=ctx.sleep,
            )
        except ScoringUnavailableError as e:
            raise PipelineAbortedError(f"Embedding oracle unreachable: {e}") from e
        if len(vectors) != 1 or len(vectors[0]) != ctx.config.embedding.dimension:
            raise PipelineAbortedError(
                "Embedding oracle probe returned an unexpected shape"
            )

    if ctx.adjudication_enabled:
        try:
            await call_with_retry(
                lambda: ctx.reasoning_oracle.complete("Reply with the single word OK."),
                ctx.config.adjudication.retry,
                error_cls=AdjudicationUnavailableError,
                operation="probe_reasoning",
                sleep=ctx.sleep,
            )
        except AdjudicationUnavailableError as e:
            raise PipelineAbortedError(f"Reasoning oracle unreachable: {e}") from e

    logger.info("oracle_probe_ok", adjudication=ctx.adjudication_enabled)


async def run_resolution(
    ctx: RunContext,
    records: Iterable[SourceRecord],
    malformed: Sequence[MalformedRecordError] = (),
) -> RunSummary:
    """Full run: harmonize -> block -> score -> decide -> adjudicate -> persist.

    Args:
        ctx: Run context.
        records: Validated source records from all feeds.
        malformed: Rows already rejected while reading the feeds; they
            count as processed and dropped.

    Returns:
        The run summary (also persisted to ``resolution_runs``).

    Raises:
        PipelineAbortedError: No entity survived normalization, or an
            oracle was unreachable at startup.  Nothing but the aborted
            run record is written.
        DuplicateDecisionError: Candidate generation produced the same
            pair twice.  Nothing is written.
    """
    bind_run(ctx.run_id)
    summary = RunSummary(run_id=ctx.run_id, started_at=_utcnow())
    records = list(records)
    logger.info("resolution_run_start", records=len(records) + len(malformed))

    # Step 1: Harmonize
    harmonized = harmonize_records(records)
    entities = harmonized.entities
    summary.processed = len(records) + len(malformed)
    summary.dropped_malformed = len(harmonized.dropped) + len(malformed)
    summary.duplicates_skipped = harmonized.duplicates
    summary.entities = len(entities)
    if summary.dropped_malformed:
        summary.add_errors({MalformedRecordError.kind: summary.dropped_malformed})

    if not entities:
        await _abort(ctx, summary, "No entities survived normalization")

    # Step 2: Startup probe
    if ctx.config.probe_oracles:
        try:
            await probe_oracles(ctx)
        except PipelineAbortedError as e:
            await _abort(ctx, summary, str(e), cause=e)

    # Step 3: Block, score, decide
    scorer = SimilarityScorer(
        ctx.embedding_oracle,
        ctx.config.embedding,
        session_factory=ctx.session_factory,
        cancel_event=ctx.cancel_event,
        sleep=ctx.sleep,
    )
    match_result = await score_candidate_pairs(
        entities, scorer, ctx.config.thresholds, ctx.cancel_event
    )
    summary.candidate_pairs = match_result.candidate_pairs
    summary.scored = match_result.scored
    summary.unresolved_scoring = len(match_result.unresolved)
    summary.below_threshold = match_result.below_threshold
    summary.embedding_calls = scorer.oracle_calls
    summary.embedding_cache_hits = scorer.cache_hits
    summary.blocking = {
        "partitions": match_result.pair_stats.partition_count,
        "naive_pairs": match_result.pair_stats.total_possible_pairs,
        "blocked_pairs": match_result.pair_stats.blocked_pairs,
        "reduction_pct": round(match_result.pair_stats.reduction_pct, 2),
    }
    summary.add_errors(match_result.errors)

    # Step 4: Merge with stored decisions
    async with ctx.session_factory() as session:
        prior = await load_decisions(session)

    # Unknown score: keep whatever was stored for the pair rather than guess
    retained = [prior[key] for key in match_result.unresolved if key in prior]
    decisions = rank_decisions(match_result.decisions + retained)
    summary.carried_forward = carry_forward(decisions, prior)

    # Step 5: Adjudicate PENDING decisions
    entities_by_id = {e.harmonized_id: e for e in entities}
    adjudication = AdjudicationStats()
    if ctx.adjudication_enabled:
        adjudicator = Adjudicator(
            ctx.reasoning_oracle,
            ctx.config.adjudication,
            cancel_event=ctx.cancel_event,
            sleep=ctx.sleep,
        )
        adjudication = await adjudicate_decisions(
            decisions,
            entities_by_id,
            adjudicator,
            ctx.config.adjudication.max_concurrent_requests,
        )
        summary.adjudication_calls = adjudicator.oracle_calls
    _apply_adjudication_counts(summary, adjudication)
    _apply_decision_counts(summary, decisions)

    # Step 6: Canonical graph
    graph = build_canonical_graph(entities, decisions, ctx.config.graph)
    summary.canonical_securities = len(graph.components)
    summary.flagged_securities = graph.flagged_count

    summary.status = "cancelled" if ctx.cancel_event.is_set() else "completed"
    summary.finished_at = _utcnow()

    # Step 7: Persist
    async with ctx.session_factory() as session, session.begin():
        await replace_harmonized_entities(session, entities)
        await replace_match_decisions(session, decisions)
        await write_adjudication_log(session, adjudication.entries, ctx.run_id)
        await replace_canonical_graph(session, graph)
        await record_run(session, summary)

    logger.info("resolution_run_complete", **_log_fields(summary))
    return summary


async def resolve_feed_files(
    ctx: RunContext, feeds: Sequence[tuple[SourceFeed, Path]]
) -> RunSummary:
    """Read feed exports and run a full resolution over them.

    Raises:
        ValueError: A file cannot be read at all.
    """
    records: list[SourceRecord] = []
    malformed: list[MalformedRecordError] = []
    for source, path in feeds:
        loaded = load_feed_file(path, source)
        logger.info(
            "feed_loaded",
            source=source.value,
            file=path.name,
            rows=len(loaded.records),
            rejected=len(loaded.errors),
        )
        for error in loaded.errors:
            logger.warning("record_dropped", source=error.source, reason=str(error))
        records.extend(loaded.records)
        malformed.extend(loaded.errors)

    return await run_resolution(ctx, records, malformed)


async def adjudicate_pending(ctx: RunContext) -> RunSummary:
    """Retry adjudication for every stored PENDING decision.

    Verdicts are committed with a conditional update, so a decision that
    another process resolved in the meantime is left alone.  The canonical
    graph is rebuilt when any verdict was applied.

    Raises:
        PipelineAbortedError: No reasoning oracle is configured, or it is
            unreachable at startup.
    """
    bind_run(ctx.run_id)
    summary = RunSummary(run_id=ctx.run_id, kind="adjudicate", started_at=_utcnow())

    if not ctx.adjudication_enabled:
        await _abort(ctx, summary, "Adjudication is disabled or has no reasoning oracle")

    if ctx.config.probe_oracles:
        try:
            await probe_oracles(ctx, embedding=False)
        except PipelineAbortedError as e:
            await _abort(ctx, summary, str(e), cause=e)

    async with ctx.session_factory() as session:
        pending, entities_by_id = await load_pending_decisions(session)
    logger.info("adjudicate_pending_start", pending=len(pending))

    adjudicator = Adjudicator(
        ctx.reasoning_oracle,
        ctx.config.adjudication,
        cancel_event=ctx.cancel_event,
        sleep=ctx.sleep,
    )
    stats = await adjudicate_decisions(
        pending,
        entities_by_id,
        adjudicator,
        ctx.config.adjudication.max_concurrent_requests,
    )
    summary.adjudication_calls = adjudicator.oracle_calls
    by_pair = {d.pair_key: d for d in pending}

    async with ctx.session_factory() as session, session.begin():
        applied = 0
        for entry in stats.entries:
            if not entry.applied:
                continue
            decision = by_pair[(entry.harmonized_id_1, entry.harmonized_id_2)]
            entry.applied = await apply_verdict(session, decision)
            if entry.applied:
                applied += 1
            else:
                logger.info("adjudication_superseded", match_id=entry.match_id)
        await write_adjudication_log(session, stats.entries, ctx.run_id)

        stored = list((await load_decisions(session)).values())
        _apply_decision_counts(summary, stored)
        if applied:
            graph = build_canonical_graph(
                await load_entities(session), stored, ctx.config.graph
            )
            await replace_canonical_graph(session, graph)
            summary.canonical_securities = len(graph.components)
            summary.flagged_securities = graph.flagged_count

        _apply_adjudication_counts(summary, stats)
        summary.status = "cancelled" if ctx.cancel_event.is_set() else "completed"
        summary.finished_at = _utcnow()
        await record_run(session, summary)

    logger.info("adjudicate_pending_complete", applied=applied, **_log_fields(summary))
    return summary


async def _abort(
    ctx: RunContext,
    summary: RunSummary,
    reason: str,
    cause: Exception | None = None,
) -> NoReturn:
    """Record the aborted run and raise ``PipelineAbortedError``."""
    summary.status = "aborted"
    summary.finished_at = _utcnow()
    summary.add_errors({PipelineAbortedError.kind: 1})
    logger.error("resolution_run_aborted", reason=reason)

    async with ctx.session_factory() as session, session.begin():
        await record_run(session, summary, error=reason)

    raise PipelineAbortedError(reason) from cause


def _apply_adjudication_counts(summary: RunSummary, stats: AdjudicationStats) -> None:
    summary.adjudicated_approved = stats.approved
    summary.adjudicated_rejected = stats.rejected
    summary.adjudicated_inconclusive = stats.inconclusive
    summary.adjudication_unavailable = stats.unavailable
    summary.add_errors(stats.errors)


def _apply_decision_counts(
    summary: RunSummary, decisions: Iterable[MatchDecisionRecord]
) -> None:
    decisions = list(decisions)
    summary.decided_approved = sum(1 for d in decisions if d.status is MatchStatus.APPROVED)
    summary.decided_pending = sum(1 for d in decisions if d.status is MatchStatus.PENDING)
    summary.decided_rejected = sum(1 for d in decisions if d.status is MatchStatus.REJECTED)


def _log_fields(summary: RunSummary) -> dict:
    return {
        "status": summary.status,
        "processed": summary.processed,
        "dropped_malformed": summary.dropped_malformed,
        "scored": summary.scored,
        "unresolved_scoring": summary.unresolved_scoring,
        "decided_approved": summary.decided_approved,
        "decided_pending": summary.decided_pending,
        "decided_rejected": summary.decided_rejected,
        "adjudicated_inconclusive": summary.adjudicated_inconclusive,
        "canonical_securities": summary.canonical_securities,
    }
