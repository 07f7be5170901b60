"""Harmonization of source records into the canonical attribute schema.

Name and issuer text is upper-cased and reduced to ``[A-Z0-9 ]``.
Abbreviations are deliberately left alone ("LTD" and "LIMITED" stay
distinct); the embedding scorer absorbs that residual variation.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from secmaster.domain import HarmonizedEntity, make_harmonized_id
from secmaster.errors import MalformedRecordError
from secmaster.ingestion.feeds import SourceRecord

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^A-Z0-9 ]")
_SPACES = re.compile(r" {2,}")


def clean_text(text: str | None) -> str:
    """Canonicalize free text for matching.

    Steps:
        1. Return empty string for None/empty input
        2. Uppercase
        3. Turn every whitespace run (tabs, newlines) into one space
        4. Drop every character outside ``[A-Z0-9 ]``
        5. Collapse the spaces left behind and trim

    The result is a fixed point: ``clean_text(clean_text(x)) == clean_text(x)``.
    """
    if not text:
        return ""

    result = _WHITESPACE.sub(" ", text.upper())
    result = _DISALLOWED.sub("", result)
    return _SPACES.sub(" ", result).strip()


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize(record: SourceRecord) -> HarmonizedEntity:
    """Map a source record onto a ``HarmonizedEntity``.

    Pure and deterministic: the same record always yields the same entity.

    Raises:
        MalformedRecordError: If native id, name, issuer or asset type is
            missing, blank, or cleans down to nothing.
    """
    fields = record.common_fields()
    source = record.source

    native_id = _optional(fields.native_id)
    if native_id is None:
        raise MalformedRecordError(
            f"{source.value} record has no native id", source=source.value
        )

    required = {
        "name": fields.name,
        "issuer": fields.issuer,
        "asset_type": fields.asset_type,
    }
    missing = [name for name, value in required.items() if _optional(value) is None]
    if missing:
        raise MalformedRecordError(
            f"{source.value} record {native_id} missing {', '.join(missing)}",
            source=source.value,
            native_id=native_id,
        )

    name_clean = clean_text(fields.name)
    issuer_clean = clean_text(fields.issuer)
    if not name_clean or not issuer_clean:
        raise MalformedRecordError(
            f"{source.value} record {native_id} has no usable name/issuer characters",
            source=source.value,
            native_id=native_id,
        )

    return HarmonizedEntity(
        harmonized_id=make_harmonized_id(source, native_id),
        source=source,
        native_id=native_id,
        name_clean=name_clean,
        issuer_clean=issuer_clean,
        asset_type=fields.asset_type.strip().upper(),
        isin=_optional(fields.isin),
        sedol=_optional(fields.sedol),
        ticker=_optional(fields.ticker),
        currency=_optional(fields.currency),
    )


@dataclass
class HarmonizationResult:
    """Outcome of harmonizing one batch of records.

    Attributes:
        entities: One entity per record that normalized cleanly.
        dropped: Errors for the records that did not.
        duplicates: Records whose ``harmonized_id`` was already produced
            earlier in the batch (the first occurrence wins).
    """

    entities: list[HarmonizedEntity] = field(default_factory=list)
    dropped: list[MalformedRecordError] = field(default_factory=list)
    duplicates: int = 0


def harmonize_records(records: Iterable[SourceRecord]) -> HarmonizationResult:
    """Normalize a batch, dropping and logging malformed records."""
    result = HarmonizationResult()
    seen: set[str] = set()

    for record in records:
        try:
            entity = normalize(record)
        except MalformedRecordError as e:
            logger.warning(
                "record_dropped",
                source=e.source,
                native_id=e.native_id,
                reason=str(e),
            )
            result.dropped.append(e)
            continue

        if entity.harmonized_id in seen:
            logger.warning(
                "duplicate_record_skipped", harmonized_id=entity.harmonized_id
            )
            result.duplicates += 1
            continue

        seen.add(entity.harmonized_id)
        result.entities.append(entity)

    return result
