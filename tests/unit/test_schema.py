"""Tests for DynamoDB schema key builders and validators."""

import pytest

from click_tally import schema
from click_tally.exceptions import ValidationError
from click_tally.schema import (
    DATE_INDEX_NAME,
    ItemKeys,
    daily_stat_keys,
    date_key,
    event_keys,
    get_table_definition,
    index_key_attributes,
    month_key,
    monthly_stat_keys,
    record_sort_click,
    total_stat_keys,
    validate_date,
    validate_month,
    validate_subject_id,
    validate_timestamp,
)

TIMESTAMP = "2025-10-02T08:15:30.123Z"


class TestEventKeys:
    """Tests for click event key derivation."""

    def test_event_keys(self):
        keys = event_keys("user-001", TIMESTAMP)

        assert keys == ItemKeys(
            partition_key="user-001",
            sort_key=TIMESTAMP,
            date_key="DATE#2025-10-02",
            record_sort="CLICK#2025-10-02T08:15:30.123Z#user-001",
        )

    def test_event_primary_key_uses_table_attribute_names(self):
        keys = event_keys("user-001", TIMESTAMP)

        assert keys.primary_key() == {"userId": "user-001", "createDateTime": TIMESTAMP}

    def test_event_index_attributes(self):
        keys = event_keys("user-001", TIMESTAMP)

        assert keys.index_attributes() == {
            "dateKey": "DATE#2025-10-02",
            "recordSort": "CLICK#2025-10-02T08:15:30.123Z#user-001",
        }

    def test_date_is_first_ten_characters(self):
        keys = event_keys("u", "2025-12-31T23:59:59.999Z")
        assert keys.date_key == "DATE#2025-12-31"

    def test_rejects_reserved_subject(self):
        with pytest.raises(ValidationError) as exc_info:
            event_keys("STAT#TOTAL", TIMESTAMP)
        assert exc_info.value.field == "subject_id"

    def test_rejects_malformed_timestamp(self):
        with pytest.raises(ValidationError):
            event_keys("user-001", "2025-10-02 08:15:30")


class TestStatKeys:
    """Tests for aggregate row key derivation."""

    def test_total_stat_keys(self):
        keys = total_stat_keys()

        assert keys.primary_key() == {"userId": "STAT#TOTAL", "createDateTime": "METADATA"}
        assert keys.index_attributes() == {}

    def test_daily_stat_keys(self):
        assert daily_stat_keys("2025-10-02") == ItemKeys(
            partition_key="STAT#DAILY",
            sort_key="2025-10-02",
            date_key="DATE#2025-10-02",
            record_sort="STAT#DAILY",
        )

    def test_monthly_stat_keys(self):
        assert monthly_stat_keys("2025-10") == ItemKeys(
            partition_key="STAT#MONTHLY",
            sort_key="2025-10",
            date_key="MONTH#2025-10",
            record_sort="STAT#MONTHLY",
        )

    def test_daily_stat_rejects_month(self):
        with pytest.raises(ValidationError):
            daily_stat_keys("2025-10")

    def test_monthly_stat_rejects_date(self):
        with pytest.raises(ValidationError):
            monthly_stat_keys("2025-10-02")


class TestKeyFragments:
    """Tests for single-attribute builders."""

    def test_date_key(self):
        assert date_key("2025-10-02") == "DATE#2025-10-02"

    def test_month_key(self):
        assert month_key("2025-10") == "MONTH#2025-10"

    def test_record_sort_click(self):
        assert record_sort_click(TIMESTAMP, "u1") == f"CLICK#{TIMESTAMP}#u1"

    def test_click_record_sort_sorts_before_stat_markers(self):
        # Both live under the same DATE# index partition
        assert record_sort_click(TIMESTAMP, "u1") < schema.RECORD_SORT_DAILY


class TestValidateSubjectId:
    """Tests for subject id validation."""

    @pytest.mark.parametrize("subject_id", ["user-001", "a", "user#1", "STAT", "stat#total"])
    def test_valid(self, subject_id):
        validate_subject_id(subject_id)

    @pytest.mark.parametrize(
        "subject_id",
        ["", "STAT#", "STAT#DAILY", "STAT#anything", "bad\nid", "x" * 1025, None, 42],
    )
    def test_invalid(self, subject_id):
        with pytest.raises(ValidationError):
            validate_subject_id(subject_id)


class TestValidateTemporal:
    """Tests for timestamp, date and month validation."""

    def test_valid_timestamp(self):
        validate_timestamp(TIMESTAMP)

    @pytest.mark.parametrize(
        "value",
        [
            "2025-10-02T08:15:30Z",
            "2025-10-02T08:15:30.123+00:00",
            "2025-10-02T08:15:30.123456Z",
            "2025-02-30T08:15:30.123Z",
            "2025-10-02T25:00:00.000Z",
            "",
        ],
    )
    def test_invalid_timestamp(self, value):
        with pytest.raises(ValidationError):
            validate_timestamp(value)

    def test_valid_leap_day(self):
        validate_date("2024-02-29")

    @pytest.mark.parametrize("value", ["2025-02-29", "2025-13-01", "2025-1-01", "20251002"])
    def test_invalid_date(self, value):
        with pytest.raises(ValidationError):
            validate_date(value)

    @pytest.mark.parametrize("value", ["2025-00", "2025-13", "2025-1", "2025/10"])
    def test_invalid_month(self, value):
        with pytest.raises(ValidationError):
            validate_month(value)

    def test_field_name_in_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date("nope", field="start")
        assert exc_info.value.field == "start"
        assert "start" in str(exc_info.value)


class TestTableDefinition:
    """Tests for the CreateTable definition."""

    def test_key_schema(self):
        definition = get_table_definition("clicks")

        assert definition["TableName"] == "clicks"
        assert definition["KeySchema"] == [
            {"AttributeName": "userId", "KeyType": "HASH"},
            {"AttributeName": "createDateTime", "KeyType": "RANGE"},
        ]

    def test_date_index(self):
        definition = get_table_definition("clicks")
        (index,) = definition["GlobalSecondaryIndexes"]

        assert index["IndexName"] == DATE_INDEX_NAME == "DateIndex"
        assert index["KeySchema"] == [
            {"AttributeName": "dateKey", "KeyType": "HASH"},
            {"AttributeName": "recordSort", "KeyType": "RANGE"},
        ]
        assert index["Projection"] == {"ProjectionType": "ALL"}

    def test_all_key_attributes_defined(self):
        definition = get_table_definition("clicks")
        names = {a["AttributeName"] for a in definition["AttributeDefinitions"]}

        assert names == {"userId", "createDateTime", "dateKey", "recordSort"}

    def test_index_key_attributes(self):
        assert index_key_attributes(None) == ("userId", "createDateTime")
        assert index_key_attributes(DATE_INDEX_NAME) == ("dateKey", "recordSort")
        with pytest.raises(ValueError):
            index_key_attributes("GSI9")
