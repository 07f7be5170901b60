"""Persistent description/embedding cache.

Rows in ``security_embeddings`` are keyed by ``harmonized_id`` and carry
the description and model that produced the vector.  A row only counts
as a hit when both still match, so a re-harmonized entity or a model
upgrade silently falls through to a fresh oracle call.
"""
from __future__ import annotations

from collections.abc import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from secmaster.models.security_embedding import SecurityEmbedding

logger = structlog.get_logger()


async def lookup_embeddings(
    session_factory: async_sessionmaker,
    descriptions: dict[str, str],
    current_model: str,
) -> dict[str, list[float]]:
    """Fetch cached vectors for the given entities.

    Args:
        session_factory: Async session factory.
        descriptions: ``harmonized_id -> description`` to look up.
        current_model: Embedding model currently configured.

    Returns:
        ``harmonized_id -> vector`` for fresh rows only.
    """
    if not descriptions:
        return {}

    async with session_factory() as session:
        result = await session.execute(
            select(SecurityEmbedding).where(
                SecurityEmbedding.harmonized_id.in_(list(descriptions))
            )
        )
        rows = result.scalars().all()

    hits: dict[str, list[float]] = {}
    stale = 0
    for row in rows:
        if row.model != current_model or row.description != descriptions[row.harmonized_id]:
            stale += 1
            continue
        hits[row.harmonized_id] = list(row.vector)

    if stale:
        logger.debug("embedding_cache_stale", stale=stale, model=current_model)
    return hits


async def store_embeddings(
    session_factory: async_sessionmaker,
    entries: Iterable[tuple[str, str, list[float]]],
    model: str,
) -> int:
    """Upsert ``(harmonized_id, description, vector)`` rows.

    Writes are idempotent: storing the same vector twice leaves one row.

    Returns:
        Number of rows written.
    """
    count = 0
    async with session_factory() as session, session.begin():
        for harmonized_id, description, vector in entries:
            await session.merge(
                SecurityEmbedding(
                    harmonized_id=harmonized_id,
                    description=description,
                    model=model,
                    dimension=len(vector),
                    vector=vector,
                )
            )
            count += 1
    return count
