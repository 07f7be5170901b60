"""Oracle adjudication of PENDING match decisions.

Only PENDING decisions are ever sent to the reasoning oracle.  A decision
is claimed (per-pair lock) for the whole round-trip, and its status is
re-checked once the claim is held, so two concurrent adjudications of the
same decision result in exactly one oracle call and one state change.
"""

from __future__ import annotations

import asyncio
import datetime as dt
from collections.abc import Awaitable, Callable
from typing import NamedTuple

import structlog

from secmaster.adjudication.parser import parse_verdict
from secmaster.adjudication.prompt import format_pair_prompt
from secmaster.domain import (
    HarmonizedEntity,
    MatchDecisionRecord,
    MatchMethod,
    MatchStatus,
    Verdict,
)
from secmaster.errors import AdjudicationUnavailableError, InconclusiveAdjudicationError
from secmaster.matching.config import AdjudicationConfig
from secmaster.oracles.base import ReasoningOracle
from secmaster.oracles.retry import call_with_retry

logger = structlog.get_logger()


class AdjudicationOutcome(NamedTuple):
    verdict: Verdict
    rationale: str
    response: str = ""
    invoked: bool = False


class Adjudicator:
    """Applies reasoning-oracle verdicts to PENDING decisions.

    Args:
        oracle: Reasoning backend.
        config: Retry policy (and model name, for logging).
        cancel_event: Once set, no new oracle calls are issued.
        sleep: Backoff sleep, injectable for tests.
    """

    def __init__(
        self,
        oracle: ReasoningOracle,
        config: AdjudicationConfig | None = None,
        cancel_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.oracle = oracle
        self.config = config or AdjudicationConfig()
        self.cancel_event = cancel_event
        self._sleep = sleep
        self._claims: dict[tuple[str, str], asyncio.Lock] = {}
        self.oracle_calls = 0

    @property
    def model(self) -> str:
        return self.oracle.model

    async def adjudicate(
        self,
        decision: MatchDecisionRecord,
        entity_1: HarmonizedEntity,
        entity_2: HarmonizedEntity,
    ) -> tuple[Verdict, str]:
        """Adjudicate one decision and return ``(verdict, rationale)``.

        See :meth:`review` for the state change and the errors raised.
        """
        outcome = await self.review(decision, entity_1, entity_2)
        return outcome.verdict, outcome.rationale

    async def review(
        self,
        decision: MatchDecisionRecord,
        entity_1: HarmonizedEntity,
        entity_2: HarmonizedEntity,
    ) -> AdjudicationOutcome:
        """Adjudicate one decision, mutating it on a definite verdict.

        On APPROVED/REJECTED the decision takes ``status := verdict`` and
        ``method := ORACLE_VALIDATED``.  On INCONCLUSIVE it stays PENDING.
        A decision that is already terminal is returned unchanged without
        calling the oracle.

        Raises:
            AdjudicationUnavailableError: The oracle failed after all
                retries, or the run was cancelled.
            ValueError: The entities do not belong to the decision.
        """
        if (entity_1.harmonized_id, entity_2.harmonized_id) != decision.pair_key:
            raise ValueError(
                f"Entities {entity_1.harmonized_id}/{entity_2.harmonized_id} "
                f"do not belong to decision {decision.pair_key}"
            )

        lock = self._claims.setdefault(decision.pair_key, asyncio.Lock())
        async with lock:
            if decision.is_terminal:
                return _terminal_outcome(decision)

            if self.cancel_event is not None and self.cancel_event.is_set():
                raise AdjudicationUnavailableError("Run cancelled before adjudication")

            prompt = format_pair_prompt(entity_1, entity_2, decision.similarity_score)
            response = await call_with_retry(
                lambda: self._complete(prompt),
                self.config.retry,
                error_cls=AdjudicationUnavailableError,
                operation="adjudicate",
                sleep=self._sleep,
            )

            try:
                verdict, rationale = parse_verdict(response)
            except InconclusiveAdjudicationError as e:
                logger.warning(
                    "adjudication_inconclusive",
                    match_id=decision.match_id,
                    pair=f"{decision.harmonized_id_1}:{decision.harmonized_id_2}",
                    response=response[:200],
                )
                return AdjudicationOutcome(
                    Verdict.INCONCLUSIVE, str(e), response, invoked=True
                )

            decision.status = MatchStatus(verdict.value)
            decision.method = MatchMethod.ORACLE_VALIDATED
            decision.rationale = rationale
            decision.adjudicated_at = dt.datetime.now(dt.UTC).replace(tzinfo=None)

        logger.info(
            "decision_adjudicated",
            match_id=decision.match_id,
            verdict=verdict.value,
            score=decision.similarity_score,
        )
        return AdjudicationOutcome(verdict, rationale, response, invoked=True)

    async def _complete(self, prompt: str) -> str:
        self.oracle_calls += 1
        return await self.oracle.complete(prompt)


def _terminal_outcome(decision: MatchDecisionRecord) -> AdjudicationOutcome:
    return AdjudicationOutcome(
        Verdict(decision.status.value), decision.rationale or "", invoked=False
    )
