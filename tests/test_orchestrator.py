"""End-to-end tests for resolution runs against an in-memory store."""

import json

import pytest
from sqlalchemy import select

from fakes import (
    FailingReasoningOracle,
    KeywordEmbeddingOracle,
    make_config,
    no_sleep,
)
from secmaster.domain import MatchMethod, MatchStatus, SourceFeed
from secmaster.errors import PipelineAbortedError
from secmaster.ingestion.feeds import FeedARecord
from secmaster.models.adjudication_log import AdjudicationLog
from secmaster.models.canonical_security import CanonicalSecurity
from secmaster.models.harmonized_security import HarmonizedSecurity
from secmaster.models.match_decision import MatchDecision
from secmaster.models.resolution_run import ResolutionRun
from secmaster.oracles.stub import ScriptedReasoningOracle
from secmaster.worker.orchestrator import (
    RunContext,
    adjudicate_pending,
    probe_oracles,
    resolve_feed_files,
    run_resolution,
)
from secmaster.worker.persistence import load_decisions

HSBC_PAIR = ("FA_SEC001", "FB_HSBA.L")
BARCLAYS_PAIR = ("FA_SEC002", "FB_BARC.L")


def _context(session_factory, embedding=None, reasoning=None, probe=True, **kwargs):
    config = make_config(adjudication=reasoning is not None)
    config.probe_oracles = probe
    return RunContext.create(
        config=config,
        session_factory=session_factory,
        embedding_oracle=embedding or KeywordEmbeddingOracle(),
        reasoning_oracle=reasoning,
        sleep=no_sleep,
        **kwargs,
    )


async def _stored(session_factory):
    async with session_factory() as session:
        return await load_decisions(session)


async def _all(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(model))).scalars().all()


class TestRunResolution:
    async def test_hsbc_cross_feed_match(self, test_session_factory, hsbc_records):
        ctx = _context(test_session_factory)

        summary = await run_resolution(ctx, hsbc_records)

        assert summary.status == "completed"
        assert summary.processed == 2
        assert summary.entities == 2
        assert summary.candidate_pairs == 1
        assert summary.decided_approved == 1
        assert summary.canonical_securities == 1

        stored = await _stored(test_session_factory)
        decision = stored[HSBC_PAIR]
        assert decision.match_id == "MATCH_1"
        assert decision.status is MatchStatus.APPROVED
        assert decision.method is MatchMethod.SIMILARITY
        assert decision.similarity_score == 1.0

        entities = await _all(test_session_factory, HarmonizedSecurity)
        assert {e.name_clean for e in entities} == {"HSBC HOLDINGS PLC", "HSBC HLDGS"}

        securities = await _all(test_session_factory, CanonicalSecurity)
        assert [(s.canonical_id, s.member_count) for s in securities] == [("SEC_FA_SEC001", 2)]

        runs = await _all(test_session_factory, ResolutionRun)
        assert runs[0].run_id == ctx.run_id
        assert runs[0].status == "completed"
        assert runs[0].summary["decided_approved"] == 1

    async def test_pending_pair_adjudicated(self, test_session_factory, mixed_records):
        oracle = ScriptedReasoningOracle(["REJECTED - bank subsidiary, not the listed parent"])
        ctx = _context(test_session_factory, reasoning=oracle)

        summary = await run_resolution(ctx, mixed_records)

        assert summary.candidate_pairs == 6
        assert summary.below_threshold == 4
        assert summary.decided_approved == 1
        assert summary.decided_rejected == 1
        assert summary.decided_pending == 0
        assert summary.adjudicated_rejected == 1
        assert summary.adjudication_calls == 1
        assert summary.canonical_securities == 5
        assert summary.blocking["partitions"] == 2

        stored = await _stored(test_session_factory)
        assert stored[BARCLAYS_PAIR].status is MatchStatus.REJECTED
        assert stored[BARCLAYS_PAIR].method is MatchMethod.ORACLE_VALIDATED
        assert stored[BARCLAYS_PAIR].match_id == "MATCH_2"

        log = await _all(test_session_factory, AdjudicationLog)
        assert [(row.match_id, row.verdict, row.applied) for row in log] == [
            ("MATCH_2", "REJECTED", True)
        ]
        assert log[0].run_id == ctx.run_id

    async def test_rerun_keeps_oracle_verdict(self, test_session_factory, mixed_records):
        first = ScriptedReasoningOracle(["REJECTED - bank subsidiary"])
        await run_resolution(_context(test_session_factory, reasoning=first), mixed_records)

        second = ScriptedReasoningOracle(["APPROVED - same issuer"])
        summary = await run_resolution(
            _context(test_session_factory, reasoning=second, probe=False), mixed_records
        )

        assert second.prompts == []
        assert summary.carried_forward == 1
        assert summary.decided_rejected == 1
        stored = await _stored(test_session_factory)
        assert stored[BARCLAYS_PAIR].status is MatchStatus.REJECTED
        assert stored[BARCLAYS_PAIR].rationale == "bank subsidiary"

    async def test_rerun_uses_embedding_cache(self, test_session_factory, hsbc_records):
        await run_resolution(_context(test_session_factory), hsbc_records)

        oracle = KeywordEmbeddingOracle()
        summary = await run_resolution(
            _context(test_session_factory, embedding=oracle, probe=False), hsbc_records
        )
        assert oracle.calls == []
        assert summary.embedding_cache_hits == 2
        assert summary.embedding_calls == 0

    async def test_unresolved_pair_keeps_stored_decision(self, test_session_factory, hsbc_records):
        await run_resolution(_context(test_session_factory), hsbc_records)

        # New model: cache misses, and the oracle is down
        broken = KeywordEmbeddingOracle(model="keyword-v2", failures=100)
        summary = await run_resolution(
            _context(test_session_factory, embedding=broken, probe=False), hsbc_records
        )

        assert summary.status == "completed"
        assert summary.scored == 0
        assert summary.unresolved_scoring == 1
        assert summary.errors["scoring_unavailable"] == 1
        stored = await _stored(test_session_factory)
        assert stored[HSBC_PAIR].status is MatchStatus.APPROVED
        assert summary.canonical_securities == 1

    async def test_malformed_records_dropped(self, test_session_factory, hsbc_records):
        records = hsbc_records + [
            FeedARecord(security_id="SEC404", issuer_name="Nobody", asset_class="EQUITY")
        ]
        summary = await run_resolution(_context(test_session_factory), records)
        assert summary.processed == 3
        assert summary.dropped_malformed == 1
        assert summary.entities == 2
        assert summary.errors == {"malformed_record": 1}

    async def test_no_entities_aborts(self, test_session_factory):
        records = [FeedARecord(security_id="SEC404", asset_class="EQUITY")]
        with pytest.raises(PipelineAbortedError, match="No entities"):
            await run_resolution(_context(test_session_factory), records)

        runs = await _all(test_session_factory, ResolutionRun)
        assert [(r.status, r.error) for r in runs] == [
            ("aborted", "No entities survived normalization")
        ]
        assert await _all(test_session_factory, MatchDecision) == []

    async def test_embedding_probe_failure_aborts(self, test_session_factory, hsbc_records):
        ctx = _context(test_session_factory, embedding=KeywordEmbeddingOracle(failures=100))
        with pytest.raises(PipelineAbortedError, match="Embedding oracle unreachable"):
            await run_resolution(ctx, hsbc_records)

        runs = await _all(test_session_factory, ResolutionRun)
        assert runs[0].status == "aborted"
        assert await _all(test_session_factory, HarmonizedSecurity) == []

    async def test_reasoning_probe_failure_aborts(self, test_session_factory, hsbc_records):
        ctx = _context(test_session_factory, reasoning=FailingReasoningOracle())
        with pytest.raises(PipelineAbortedError, match="Reasoning oracle unreachable"):
            await run_resolution(ctx, hsbc_records)

    async def test_cancelled_run_persists_as_cancelled(self, test_session_factory, hsbc_records):
        oracle = KeywordEmbeddingOracle()
        ctx = _context(test_session_factory, embedding=oracle, probe=False)
        ctx.cancel_event.set()

        summary = await run_resolution(ctx, hsbc_records)

        assert summary.status == "cancelled"
        assert summary.unresolved_scoring == 1
        assert oracle.calls == []
        runs = await _all(test_session_factory, ResolutionRun)
        assert runs[0].status == "cancelled"


class TestAdjudicatePending:
    async def test_retry_after_outage(self, test_session_factory, mixed_records):
        # Oracle down during the run: the pair stays PENDING
        ctx = _context(test_session_factory, reasoning=FailingReasoningOracle(), probe=False)
        summary = await run_resolution(ctx, mixed_records)
        assert summary.adjudication_unavailable == 1
        assert summary.decided_pending == 1
        assert summary.errors["adjudication_unavailable"] == 1

        oracle = ScriptedReasoningOracle(["APPROVED - same issuer, abbreviated name"])
        summary = await adjudicate_pending(_context(test_session_factory, reasoning=oracle))

        assert summary.kind == "adjudicate"
        assert summary.adjudicated_approved == 1
        assert summary.decided_approved == 2
        assert summary.decided_pending == 0
        assert summary.canonical_securities == 4

        stored = await _stored(test_session_factory)
        assert stored[BARCLAYS_PAIR].status is MatchStatus.APPROVED
        assert stored[BARCLAYS_PAIR].method is MatchMethod.ORACLE_VALIDATED
        assert stored[BARCLAYS_PAIR].adjudicated_at is not None

        log = await _all(test_session_factory, AdjudicationLog)
        assert [(row.verdict, row.applied) for row in log] == [("APPROVED", True)]

        runs = await _all(test_session_factory, ResolutionRun)
        assert sorted(r.kind for r in runs) == ["adjudicate", "resolve"]

    async def test_nothing_pending(self, test_session_factory, hsbc_records):
        await run_resolution(_context(test_session_factory), hsbc_records)
        oracle = ScriptedReasoningOracle(["APPROVED"])
        summary = await adjudicate_pending(
            _context(test_session_factory, reasoning=oracle, probe=False)
        )
        assert oracle.prompts == []
        assert summary.decided_approved == 1
        assert summary.status == "completed"

    async def test_inconclusive_stays_pending(self, test_session_factory, mixed_records):
        ctx = _context(test_session_factory, reasoning=FailingReasoningOracle(), probe=False)
        await run_resolution(ctx, mixed_records)

        oracle = ScriptedReasoningOracle(["I am not sure."])
        summary = await adjudicate_pending(
            _context(test_session_factory, reasoning=oracle, probe=False)
        )
        assert summary.adjudicated_inconclusive == 1
        assert summary.decided_pending == 1
        log = await _all(test_session_factory, AdjudicationLog)
        assert [(row.verdict, row.applied) for row in log] == [("INCONCLUSIVE", False)]

    async def test_requires_reasoning_oracle(self, test_session_factory):
        with pytest.raises(PipelineAbortedError, match="disabled"):
            await adjudicate_pending(_context(test_session_factory))

        runs = await _all(test_session_factory, ResolutionRun)
        assert [(r.kind, r.status) for r in runs] == [("adjudicate", "aborted")]


class TestProbeAndFiles:
    async def test_probe_rejects_wrong_dimension(self, test_session_factory):
        oracle = KeywordEmbeddingOracle(vectors={"PROBE": [1.0, 0.0]})
        with pytest.raises(PipelineAbortedError, match="unexpected shape"):
            await probe_oracles(_context(test_session_factory, embedding=oracle))

    async def test_resolve_feed_files(self, test_session_factory, tmp_path):
        feed_a = tmp_path / "feed_a.csv"
        feed_a.write_text(
            "SECURITY_ID,SECURITY_NAME,ISSUER_NAME,ASSET_CLASS\n"
            "SEC001,HSBC Holdings plc,HSBC Holdings plc,Equity\n"
        )
        feed_b = tmp_path / "feed_b.json"
        feed_b.write_text(
            json.dumps(
                [
                    {
                        "RIC_CODE": "HSBA.L",
                        "INSTRUMENT_NAME": "HSBC Hldgs",
                        "ISSUER": "HSBC Hldgs",
                        "INSTRUMENT_TYPE": "EQUITY",
                    },
                    "not a row",
                ]
            )
        )

        summary = await resolve_feed_files(
            _context(test_session_factory),
            [(SourceFeed.FEED_A, feed_a), (SourceFeed.FEED_B, feed_b)],
        )

        assert summary.processed == 3
        assert summary.dropped_malformed == 1
        assert summary.decided_approved == 1
