"""Tests for resolution store reads and writes."""

import datetime as dt

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fakes import FIXED_NOW, make_decision, make_entity
from secmaster.adjudication.resolver import AdjudicationEntry
from secmaster.clustering.graph_cluster import build_canonical_graph
from secmaster.domain import MatchMethod, MatchStatus, SourceFeed, Verdict
from secmaster.models.adjudication_log import AdjudicationLog
from secmaster.models.canonical_security import CanonicalSecurity, CanonicalSecurityMember
from secmaster.models.match_decision import MatchDecision
from secmaster.models.resolution_run import ResolutionRun
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

A1 = make_entity("SEC001", SourceFeed.FEED_A, isin="GB0005405286")
A2 = make_entity("SEC002", SourceFeed.FEED_A, name="BARCLAYS PLC")
B1 = make_entity("HSBA.L", SourceFeed.FEED_B)
B2 = make_entity("BARC.L", SourceFeed.FEED_B, name="BARCLAYS BANK PLC")


async def _seed(session_factory, decisions):
    async with session_factory() as session, session.begin():
        await replace_harmonized_entities(session, [A1, A2, B1, B2])
        await replace_match_decisions(session, decisions)


class TestEntities:
    async def test_round_trip(self, test_session_factory):
        async with test_session_factory() as session, session.begin():
            assert await replace_harmonized_entities(session, [B1, A1]) == 2

        async with test_session_factory() as session:
            loaded = await load_entities(session)
        assert loaded == [A1, B1]

    async def test_replace_clears_previous(self, test_session_factory):
        async with test_session_factory() as session, session.begin():
            await replace_harmonized_entities(session, [A1, B1])
        async with test_session_factory() as session, session.begin():
            await replace_harmonized_entities(session, [A2])

        async with test_session_factory() as session:
            loaded = await load_entities(session)
        assert [e.harmonized_id for e in loaded] == ["FA_SEC002"]


class TestDecisions:
    async def test_round_trip_keyed_by_pair(self, test_session_factory):
        approved = make_decision(A1, B1, 0.97, status=MatchStatus.APPROVED, match_id="MATCH_1")
        pending = make_decision(A2, B2, 0.85, match_id="MATCH_2")
        await _seed(test_session_factory, [approved, pending])

        async with test_session_factory() as session:
            stored = await load_decisions(session)

        assert set(stored) == {("FA_SEC001", "FB_HSBA.L"), ("FA_SEC002", "FB_BARC.L")}
        record = stored[("FA_SEC002", "FB_BARC.L")]
        assert record.match_id == "MATCH_2"
        assert record.status is MatchStatus.PENDING
        assert record.method is MatchMethod.SIMILARITY
        assert record.source_1 is SourceFeed.FEED_A
        assert record.similarity_score == 0.85
        assert record.created_at == FIXED_NOW

    async def test_replace_drops_absent_pairs(self, test_session_factory):
        await _seed(test_session_factory, [make_decision(A1, B1, 0.97, match_id="MATCH_1")])
        await _seed(test_session_factory, [make_decision(A2, B2, 0.85, match_id="MATCH_1")])

        async with test_session_factory() as session:
            stored = await load_decisions(session)
        assert list(stored) == [("FA_SEC002", "FB_BARC.L")]

    async def test_duplicate_pair_rejected_by_store(self, test_session_factory):
        with pytest.raises(IntegrityError):
            await _seed(
                test_session_factory,
                [
                    make_decision(A1, B1, 0.97, match_id="MATCH_1"),
                    make_decision(A1, B1, 0.85, match_id="MATCH_2"),
                ],
            )

    async def test_load_pending_with_entities(self, test_session_factory):
        await _seed(
            test_session_factory,
            [
                make_decision(A1, B1, 0.97, status=MatchStatus.APPROVED, match_id="MATCH_1"),
                make_decision(A2, B2, 0.85, match_id="MATCH_2"),
            ],
        )
        async with test_session_factory() as session:
            pending, entities = await load_pending_decisions(session)

        assert [d.match_id for d in pending] == ["MATCH_2"]
        assert set(entities) == {"FA_SEC002", "FB_BARC.L"}

    async def test_apply_verdict_only_once(self, test_session_factory):
        await _seed(test_session_factory, [make_decision(A2, B2, 0.85, match_id="MATCH_1")])

        verdict = make_decision(
            A2,
            B2,
            0.85,
            status=MatchStatus.REJECTED,
            method=MatchMethod.ORACLE_VALIDATED,
            rationale="different legal entity",
        )
        verdict.adjudicated_at = dt.datetime(2026, 3, 3)
        async with test_session_factory() as session, session.begin():
            assert await apply_verdict(session, verdict) is True

        verdict.status = MatchStatus.APPROVED
        async with test_session_factory() as session, session.begin():
            assert await apply_verdict(session, verdict) is False

        async with test_session_factory() as session:
            stored = (await load_decisions(session))[("FA_SEC002", "FB_BARC.L")]
        assert stored.status is MatchStatus.REJECTED
        assert stored.method is MatchMethod.ORACLE_VALIDATED
        assert stored.rationale == "different legal entity"
        assert stored.adjudicated_at == dt.datetime(2026, 3, 3)


class TestAuditAndGraph:
    async def test_adjudication_log(self, test_session_factory):
        entry = AdjudicationEntry(
            match_id="MATCH_2",
            harmonized_id_1="FA_SEC002",
            harmonized_id_2="FB_BARC.L",
            similarity_score=0.85,
            verdict=Verdict.INCONCLUSIVE,
            rationale="no verdict token",
            response="Hard to say.",
            model="scripted-v1",
        )
        async with test_session_factory() as session, session.begin():
            assert await write_adjudication_log(session, [entry], run_id="run1") == 1

        async with test_session_factory() as session:
            rows = (await session.execute(select(AdjudicationLog))).scalars().all()
        assert len(rows) == 1
        assert rows[0].verdict == "INCONCLUSIVE"
        assert rows[0].applied is False
        assert rows[0].run_id == "run1"

    async def test_canonical_graph_replaced(self, test_session_factory):
        approved = make_decision(A1, B1, 0.97, status=MatchStatus.APPROVED)
        graph = build_canonical_graph([A1, A2, B1], [approved])

        async with test_session_factory() as session, session.begin():
            assert await replace_canonical_graph(session, graph) == 2
        async with test_session_factory() as session, session.begin():
            await replace_canonical_graph(session, graph)

        async with test_session_factory() as session:
            securities = (
                await session.execute(
                    select(CanonicalSecurity).order_by(CanonicalSecurity.canonical_id)
                )
            ).scalars().all()
            members = (await session.execute(select(CanonicalSecurityMember))).scalars().all()

        assert [s.canonical_id for s in securities] == ["SEC_FA_SEC001", "SEC_FA_SEC002"]
        assert securities[0].member_count == 2
        assert securities[0].sources == ["FEED_A", "FEED_B"]
        assert securities[0].isin == "GB0005405286"
        assert securities[0].name == "HSBC HOLDINGS PLC"
        assert len(members) == 3

    async def test_record_run(self, test_session_factory):
        summary = RunSummary(run_id="abc", started_at=FIXED_NOW, status="aborted")
        summary.add_errors({"pipeline_aborted": 1})
        async with test_session_factory() as session, session.begin():
            await record_run(session, summary, error="boom")

        async with test_session_factory() as session:
            run = await session.get(ResolutionRun, "abc")
        assert run.status == "aborted"
        assert run.error == "boom"
        assert run.summary["errors"] == {"pipeline_aborted": 1}
        assert run.summary["started_at"] == FIXED_NOW.isoformat()


async def test_source_ordering_enforced_by_store(test_session_factory):
    backwards = make_decision(B1, A1, 0.95, match_id="MATCH_1")
    with pytest.raises(IntegrityError):
        async with test_session_factory() as session, session.begin():
            session.add(MatchDecision.from_record(backwards))
