"""Candidate pair generator over asset-type blocking partitions.

Generates cross-source pairs only.  Within a partition every source
bucket is paired with every later-ranked source bucket, which yields
each unordered pair exactly once, never pairs an entity with itself and
never pairs two entities from the same feed.  Also computes blocking
reduction statistics to verify that blocking is practical at scale.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from itertools import combinations, product

from secmaster.domain import CandidatePair, HarmonizedEntity
from secmaster.preprocessing.blocking import partition_entities


@dataclass
class CandidatePairStats:
    """Statistics about candidate pair generation.

    Attributes:
        total_entities: Number of input entities.
        partition_count: Number of distinct blocking keys.
        total_possible_pairs: Cross-source pairs without blocking (naive).
        blocked_pairs: Cross-source pairs after blocking.
        reduction_pct: Percentage of pairs eliminated by blocking.
    """

    total_entities: int
    partition_count: int
    total_possible_pairs: int
    blocked_pairs: int
    reduction_pct: float


def generate_candidates(
    entities: Sequence[HarmonizedEntity],
) -> Iterator[CandidatePair]:
    """Lazily yield every cross-source pair that shares an asset type.

    The generator is finite and not restartable; call again to re-derive
    pairs from the current entity set.
    """
    for by_source in partition_entities(entities).values():
        # Buckets are already in source rank order
        for (_, left), (_, right) in combinations(by_source.items(), 2):
            for entity_1, entity_2 in product(left, right):
                yield CandidatePair(entity_1=entity_1, entity_2=entity_2)


def candidate_stats(entities: Sequence[HarmonizedEntity]) -> CandidatePairStats:
    """Count blocked vs naive cross-source pairs without materializing them."""
    partitions = partition_entities(entities)

    blocked = 0
    for by_source in partitions.values():
        sizes = [len(bucket) for bucket in by_source.values()]
        blocked += _cross_product_total(sizes)

    total_possible = _cross_product_total(
        list(Counter(e.source for e in entities).values())
    )
    reduction = (1 - blocked / total_possible) * 100 if total_possible > 0 else 0.0

    return CandidatePairStats(
        total_entities=len(entities),
        partition_count=len(partitions),
        total_possible_pairs=total_possible,
        blocked_pairs=blocked,
        reduction_pct=reduction,
    )


def _cross_product_total(sizes: list[int]) -> int:
    """Sum of ``a * b`` over every pair of distinct groups."""
    return sum(a * b for a, b in combinations(sizes, 2))
