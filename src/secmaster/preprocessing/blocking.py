"""Blocking partitions for candidate pair reduction.

Entities are grouped by their post-normalization ``asset_type``.  Only
entities in the same partition are ever compared, so comparison cost is
the sum of squared partition sizes instead of the square of the whole
entity set.  No re-cleaning happens here: partition correctness rests
on the normalizer's asset type invariant.
"""

from __future__ import annotations

from collections.abc import Iterable

from secmaster.domain import HarmonizedEntity, SourceFeed


def blocking_key(entity: HarmonizedEntity) -> str:
    """Partition key for an entity (its normalized asset type)."""
    return entity.asset_type


def partition_entities(
    entities: Iterable[HarmonizedEntity],
) -> dict[str, dict[SourceFeed, list[HarmonizedEntity]]]:
    """Group entities by blocking key, then by source feed.

    Partitions come back in key order and each source bucket is sorted
    by ``harmonized_id`` so downstream iteration is deterministic.

    Returns:
        Mapping ``blocking_key -> {source -> [entities]}``.
    """
    partitions: dict[str, dict[SourceFeed, list[HarmonizedEntity]]] = {}
    for entity in entities:
        by_source = partitions.setdefault(blocking_key(entity), {})
        by_source.setdefault(entity.source, []).append(entity)

    ordered: dict[str, dict[SourceFeed, list[HarmonizedEntity]]] = {}
    for key in sorted(partitions):
        ordered[key] = {
            source: sorted(bucket, key=lambda e: e.harmonized_id)
            for source, bucket in sorted(
                partitions[key].items(), key=lambda item: item[0].rank
            )
        }
    return ordered
