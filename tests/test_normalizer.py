"""Tests for record harmonization."""

import re

import pytest

from secmaster.domain import SourceFeed
from secmaster.errors import MalformedRecordError
from secmaster.ingestion.feeds import FeedARecord, FeedBRecord, FeedCRecord
from secmaster.preprocessing.normalizer import clean_text, harmonize_records, normalize

ALLOWED = re.compile(r"^[A-Z0-9 ]*$")


def test_clean_text_uppercases_and_strips_punctuation():
    assert clean_text("HSBC Holdings plc.") == "HSBC HOLDINGS PLC"
    assert clean_text("Lloyds 4% 2030 (Senior)") == "LLOYDS 4 2030 SENIOR"


def test_clean_text_collapses_whitespace():
    """Tabs, newlines and runs of spaces become one space."""
    assert clean_text("  HSBC\t\tHoldings \n plc  ") == "HSBC HOLDINGS PLC"


def test_clean_text_drops_space_left_by_removed_characters():
    assert clean_text("A & B") == "A B"
    assert clean_text("Marks - Spencer") == "MARKS SPENCER"


def test_clean_text_non_ascii_removed():
    assert clean_text("Société Générale") == "SOCIT GNRALE"


def test_clean_text_leaves_abbreviations_alone():
    assert clean_text("HSBC Hldgs Ltd") == "HSBC HLDGS LTD"
    assert clean_text("HSBC Holdings Limited") == "HSBC HOLDINGS LIMITED"


def test_clean_text_empty():
    assert clean_text(None) == ""
    assert clean_text("") == ""
    assert clean_text("!!!") == ""


@pytest.mark.parametrize(
    "text",
    ["HSBC Holdings plc", "  a\tb  c ", "Société & Cie.", "X - Y -- Z", "é é", "42"],
)
def test_clean_text_idempotent_and_charset(text):
    once = clean_text(text)
    assert clean_text(once) == once
    assert ALLOWED.match(once)


def test_normalize_feed_a():
    entity = normalize(
        FeedARecord(
            security_id="SEC001",
            security_name="HSBC Holdings plc",
            issuer_name="HSBC Holdings plc",
            asset_class="equity ",
            isin=" GB0005405286 ",
        )
    )
    assert entity.harmonized_id == "FA_SEC001"
    assert entity.source is SourceFeed.FEED_A
    assert entity.name_clean == "HSBC HOLDINGS PLC"
    assert entity.asset_type == "EQUITY"
    assert entity.isin == "GB0005405286"
    assert entity.sedol is None


def test_normalize_feed_b_and_c_ids():
    b = normalize(
        FeedBRecord(
            ric_code="HSBA.L", instrument_name="HSBC", issuer="HSBC", instrument_type="EQUITY"
        )
    )
    c = normalize(
        FeedCRecord(
            fca_ref_number="FCA9", fund_name="Fund", manager_name="Mgr", fund_type="FUND"
        )
    )
    assert b.harmonized_id == "FB_HSBA.L"
    assert c.harmonized_id == "FC_FCA9"


def test_normalize_is_deterministic():
    record = FeedARecord(
        security_id="1", security_name="Barclays", issuer_name="Barclays", asset_class="EQUITY"
    )
    assert normalize(record) == normalize(record)


def test_normalize_missing_name_raises():
    record = FeedARecord(security_id="SEC009", issuer_name="X", asset_class="EQUITY")
    with pytest.raises(MalformedRecordError) as exc_info:
        normalize(record)
    assert exc_info.value.native_id == "SEC009"
    assert "name" in str(exc_info.value)


def test_normalize_blank_native_id_raises():
    record = FeedBRecord(ric_code="  ", instrument_name="X", issuer="X", instrument_type="EQUITY")
    with pytest.raises(MalformedRecordError):
        normalize(record)


def test_normalize_name_without_usable_characters_raises():
    record = FeedARecord(
        security_id="SEC010", security_name="***", issuer_name="X", asset_class="EQUITY"
    )
    with pytest.raises(MalformedRecordError):
        normalize(record)


def test_harmonize_records_drops_malformed_and_keeps_siblings():
    records = [
        FeedARecord(
            security_id="SEC001", security_name="HSBC", issuer_name="HSBC", asset_class="EQUITY"
        ),
        FeedARecord(security_id="SEC002", security_name="", issuer_name="X", asset_class="EQUITY"),
        FeedARecord(
            security_id="SEC003", security_name="Lloyds", issuer_name="Lloyds", asset_class="EQUITY"
        ),
    ]
    result = harmonize_records(records)
    assert [e.harmonized_id for e in result.entities] == ["FA_SEC001", "FA_SEC003"]
    assert len(result.dropped) == 1
    assert result.dropped[0].native_id == "SEC002"


def test_harmonize_records_first_duplicate_wins():
    records = [
        FeedARecord(
            security_id="SEC001", security_name="First", issuer_name="X", asset_class="EQUITY"
        ),
        FeedARecord(
            security_id="SEC001", security_name="Second", issuer_name="X", asset_class="EQUITY"
        ),
    ]
    result = harmonize_records(records)
    assert len(result.entities) == 1
    assert result.entities[0].name_clean == "FIRST"
    assert result.duplicates == 1
