"""Row models and file loaders for the three source feeds.

Each feed delivers flat key/value rows in its own native schema.  The
row models validate those rows and expose ``common_fields()``, which
maps the feed's column names onto the shared capability set
(identifier, name, issuer/manager, asset classification, ISIN, SEDOL,
ticker, currency).  Required-field checks belong to the normalizer, so
every column is optional here.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from secmaster.domain import SourceFeed
from secmaster.errors import MalformedRecordError


@dataclass(frozen=True)
class CommonFields:
    """A source row projected onto the shared attribute set."""

    native_id: str | None
    name: str | None
    issuer: str | None
    asset_type: str | None
    isin: str | None = None
    sedol: str | None = None
    ticker: str | None = None
    currency: str | None = None


class _FeedRow(BaseModel):
    # Feeds export upper-case column names (SECURITY_ID) and numeric ids
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    source: ClassVar[SourceFeed]

    @model_validator(mode="before")
    @classmethod
    def lowercase_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {str(k).strip("\ufeff \t").lower(): v for k, v in data.items()}
        return data

    def common_fields(self) -> CommonFields:  # pragma: no cover - abstract
        raise NotImplementedError


class FeedARecord(_FeedRow):
    """Market-data vendor A row."""

    source: ClassVar[SourceFeed] = SourceFeed.FEED_A

    security_id: str | None = None
    security_name: str | None = None
    issuer_name: str | None = None
    asset_class: str | None = None
    isin: str | None = None
    sedol: str | None = None
    ticker: str | None = None
    currency: str | None = None

    def common_fields(self) -> CommonFields:
        return CommonFields(
            native_id=self.security_id,
            name=self.security_name,
            issuer=self.issuer_name,
            asset_type=self.asset_class,
            isin=self.isin,
            sedol=self.sedol,
            ticker=self.ticker,
            currency=self.currency,
        )


class FeedBRecord(_FeedRow):
    """Market-data vendor B row (RIC-keyed)."""

    source: ClassVar[SourceFeed] = SourceFeed.FEED_B

    ric_code: str | None = None
    instrument_name: str | None = None
    issuer: str | None = None
    instrument_type: str | None = None
    isin_code: str | None = None
    sedol_code: str | None = None
    ticker_symbol: str | None = None
    currency_code: str | None = None

    def common_fields(self) -> CommonFields:
        return CommonFields(
            native_id=self.ric_code,
            name=self.instrument_name,
            issuer=self.issuer,
            asset_type=self.instrument_type,
            isin=self.isin_code,
            sedol=self.sedol_code,
            ticker=self.ticker_symbol,
            currency=self.currency_code,
        )


class FeedCRecord(_FeedRow):
    """Regulatory filings row.  Funds carry a manager, not an issuer, and no ticker."""

    source: ClassVar[SourceFeed] = SourceFeed.FEED_C

    fca_ref_number: str | None = None
    fund_name: str | None = None
    manager_name: str | None = None
    fund_type: str | None = None
    isin: str | None = None
    sedol: str | None = None
    currency: str | None = None

    def common_fields(self) -> CommonFields:
        return CommonFields(
            native_id=self.fca_ref_number,
            name=self.fund_name,
            issuer=self.manager_name,
            asset_type=self.fund_type,
            isin=self.isin,
            sedol=self.sedol,
            ticker=None,
            currency=self.currency,
        )


SourceRecord = Union[FeedARecord, FeedBRecord, FeedCRecord]

RECORD_TYPES: dict[SourceFeed, type[_FeedRow]] = {
    SourceFeed.FEED_A: FeedARecord,
    SourceFeed.FEED_B: FeedBRecord,
    SourceFeed.FEED_C: FeedCRecord,
}


@dataclass
class FeedLoadResult:
    """Rows parsed from one feed file.

    Attributes:
        source: Feed the file belongs to.
        records: Rows that validated against the feed schema.
        errors: One ``MalformedRecordError`` per rejected row.
    """

    source: SourceFeed
    records: list[SourceRecord] = field(default_factory=list)
    errors: list[MalformedRecordError] = field(default_factory=list)


def parse_row(row: dict, source: SourceFeed) -> SourceRecord:
    """Validate a raw row against ``source``'s native schema.

    Raises:
        MalformedRecordError: If the row is not a mapping or a column has
            an unusable type (e.g. a nested object).
    """
    if not isinstance(row, dict):
        raise MalformedRecordError(
            f"{source.value} row is not a key/value mapping", source=source.value
        )
    try:
        return RECORD_TYPES[source].model_validate(row)
    except ValidationError as e:
        raise MalformedRecordError(
            f"{source.value} row failed validation: {e.error_count()} error(s)",
            source=source.value,
        ) from e


def parse_rows(rows: list[dict], source: SourceFeed) -> FeedLoadResult:
    """Validate every row, isolating failures per row."""
    result = FeedLoadResult(source=source)
    for row in rows:
        try:
            result.records.append(parse_row(row, source))
        except MalformedRecordError as e:
            result.errors.append(e)
    return result


def load_feed_file(file_path: Path, source: SourceFeed) -> FeedLoadResult:
    """Read a ``.csv`` or ``.json`` feed export.

    JSON files hold either a list of rows or an object with a ``rows``
    list.

    Raises:
        ValueError: If the file cannot be parsed at all.
    """
    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        with open(file_path, encoding="utf-8-sig", newline="") as f:
            rows: list = list(csv.DictReader(f))
    elif suffix == ".json":
        try:
            with open(file_path, encoding="utf-8-sig") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}") from e
        rows = raw.get("rows", []) if isinstance(raw, dict) else raw
        if not isinstance(rows, list):
            raise ValueError(f"Expected a list of rows in {file_path}")
    else:
        raise ValueError(f"Unsupported feed file type: {file_path.name}")

    return parse_rows(rows, source)
