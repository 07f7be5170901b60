"""Embedding-based similarity scorer.

Each entity is embedded at most once per run.  ``warm()`` looks up the
persistent cache, then embeds everything still missing in batches of
``batch_size`` descriptions, at most ``max_concurrent_requests`` oracle
calls at a time.  Concurrent requests for an entity that is already
being embedded wait on the call that claimed it instead of issuing a
second call.

A failed batch marks its entities unavailable for the rest of the run;
every pair touching them scores as unknown (``ScoringUnavailableError``)
rather than a guessed value.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Iterable

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from secmaster.domain import CandidatePair, HarmonizedEntity
from secmaster.errors import ScoringUnavailableError
from secmaster.matching.config import EmbeddingConfig
from secmaster.oracles.base import EmbeddingOracle
from secmaster.oracles.retry import call_with_retry
from secmaster.scoring.cache import lookup_embeddings, store_embeddings
from secmaster.scoring.similarity import cosine_similarity, vector_norm

logger = structlog.get_logger()


class SimilarityScorer:
    """Scores candidate pairs by cosine similarity of their embeddings.

    Args:
        oracle: Embedding backend.
        config: Batching, concurrency, retry and cache settings.
        session_factory: Enables the persistent cache when given.
        cancel_event: Once set, no new oracle calls are issued.
        sleep: Backoff sleep, injectable for tests.
    """

    def __init__(
        self,
        oracle: EmbeddingOracle,
        config: EmbeddingConfig,
        session_factory: async_sessionmaker | None = None,
        cancel_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.oracle = oracle
        self.config = config
        self.session_factory = session_factory
        self.cancel_event = cancel_event
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(config.max_concurrent_requests)
        self._vectors: dict[str, list[float]] = {}
        self._failed: dict[str, ScoringUnavailableError] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self.oracle_calls = 0
        self.cache_hits = 0

    def description_for(self, entity: HarmonizedEntity) -> str:
        return entity.description[: self.config.max_description_chars]

    @property
    def cached_count(self) -> int:
        return len(self._vectors)

    async def warm(self, entities: Iterable[HarmonizedEntity]) -> int:
        """Embed every entity that has no vector yet.

        Returns:
            Number of entities that could not be embedded.
        """
        todo: dict[str, HarmonizedEntity] = {}
        waiting: set[asyncio.Future] = set()
        for entity in entities:
            hid = entity.harmonized_id
            if hid in self._vectors or hid in self._failed:
                continue
            if hid in self._inflight:
                waiting.add(self._inflight[hid])
                continue
            todo[hid] = entity

        # Claim before the first await so concurrent callers wait on us
        claim = asyncio.get_running_loop().create_future()
        for hid in todo:
            self._inflight[hid] = claim

        missing: list[HarmonizedEntity] = []
        batches = 0
        try:
            if todo and self.session_factory is not None and self.config.cache_enabled:
                hits = await lookup_embeddings(
                    self.session_factory,
                    {hid: self.description_for(e) for hid, e in todo.items()},
                    self.oracle.model,
                )
                self._vectors.update(hits)
                self.cache_hits += len(hits)

            missing = [e for hid, e in todo.items() if hid not in self._vectors]
            size = self.config.batch_size
            batch_results = await asyncio.gather(
                *[
                    self._embed_batch(missing[start:start + size])
                    for start in range(0, len(missing), size)
                ]
            )
            batches = len(batch_results)

            fresh = [entry for entries in batch_results for entry in entries]
            if fresh and self.session_factory is not None and self.config.cache_enabled:
                await store_embeddings(self.session_factory, fresh, self.oracle.model)
        finally:
            for hid in todo:
                self._inflight.pop(hid, None)
            claim.set_result(None)

        if waiting:
            await asyncio.gather(*waiting)

        failed = sum(1 for e in missing if e.harmonized_id in self._failed)
        if missing:
            logger.info(
                "embeddings_warmed",
                requested=len(missing),
                failed=failed,
                batches=batches,
                cache_hits=self.cache_hits,
            )
        return failed

    async def embedding(self, entity: HarmonizedEntity) -> list[float]:
        """Vector for ``entity``, embedding it on demand.

        Raises:
            ScoringUnavailableError: The entity could not be embedded.
        """
        hid = entity.harmonized_id
        if hid not in self._vectors and hid not in self._failed:
            if hid in self._inflight:
                await self._inflight[hid]
            else:
                await self.warm([entity])

        if hid in self._failed:
            raise self._failed[hid]
        if hid not in self._vectors:
            # The call that claimed this entity raised before recording it
            raise ScoringUnavailableError(f"No embedding available for {hid}")
        return self._vectors[hid]

    async def score(self, pair: CandidatePair) -> float:
        """Cosine similarity of the pair's embeddings, 4 decimal places.

        Raises:
            ScoringUnavailableError: Either side has no usable embedding.
        """
        await self.warm([pair.entity_1, pair.entity_2])
        vector_1 = await self.embedding(pair.entity_1)
        vector_2 = await self.embedding(pair.entity_2)
        try:
            return cosine_similarity(vector_1, vector_2)
        except ValueError as e:
            raise ScoringUnavailableError(
                f"Cannot score {pair.key[0]} vs {pair.key[1]}: {e}"
            ) from e

    async def _embed_batch(
        self, batch: list[HarmonizedEntity]
    ) -> list[tuple[str, str, list[float]]]:
        """Embed one batch; failures are recorded, never raised."""
        texts = [self.description_for(e) for e in batch]

        async with self._semaphore:
            if self.cancel_event is not None and self.cancel_event.is_set():
                error = ScoringUnavailableError("Run cancelled before embedding")
                for entity in batch:
                    self._failed[entity.harmonized_id] = error
                return []

            try:
                vectors = await call_with_retry(
                    lambda: self._call_oracle(texts),
                    self.config.retry,
                    error_cls=ScoringUnavailableError,
                    operation="embed",
                    sleep=self._sleep,
                )
            except ScoringUnavailableError as e:
                logger.warning(
                    "embedding_batch_failed",
                    size=len(batch),
                    first=batch[0].harmonized_id,
                    error=str(e),
                )
                for entity in batch:
                    self._failed[entity.harmonized_id] = e
                return []

        entries = []
        for entity, text, vector in zip(batch, texts, vectors):
            self._vectors[entity.harmonized_id] = vector
            entries.append((entity.harmonized_id, text, vector))
        return entries

    async def _call_oracle(self, texts: list[str]) -> list[list[float]]:
        self.oracle_calls += 1
        vectors = await self.oracle.embed(texts)
        self._validate(texts, vectors)
        return [[float(v) for v in vector] for vector in vectors]

    def _validate(self, texts: list[str], vectors: list[list[float]]) -> None:
        """Reject malformed oracle output so the retry policy can kick in."""
        if len(vectors) != len(texts):
            raise ValueError(
                f"Oracle returned {len(vectors)} vectors for {len(texts)} texts"
            )
        for vector in vectors:
            if len(vector) != self.config.dimension:
                raise ValueError(
                    f"Expected dimension {self.config.dimension}, got {len(vector)}"
                )
            if not all(math.isfinite(v) for v in vector):
                raise ValueError("Embedding contains non-finite values")
            if vector_norm(vector) == 0:
                raise ValueError("Embedding is a zero vector")
