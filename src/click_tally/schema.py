"""DynamoDB schema definitions and key builders.

One table holds both click events and aggregate counters. Event rows live
under the user's own partition; aggregate rows live under reserved ``STAT#``
partitions. The ``DateIndex`` GSI groups both by calendar date or month.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .exceptions import ValidationError

# Table and index names
DEFAULT_TABLE_NAME = "qit-db-local"
DATE_INDEX_NAME = "DateIndex"

# Physical attribute names
PK_ATTR = "userId"
SK_ATTR = "createDateTime"
DATE_KEY_ATTR = "dateKey"
RECORD_SORT_ATTR = "recordSort"
CLICK_COUNT_ATTR = "clickCount"
CLICK_ID_ATTR = "clickId"
TOTAL_CLICKS_ATTR = "totalClicks"

# Reserved aggregate partitions
STAT_PREFIX = "STAT#"
PK_STAT_TOTAL = "STAT#TOTAL"
PK_STAT_DAILY = "STAT#DAILY"
PK_STAT_MONTHLY = "STAT#MONTHLY"
SK_METADATA = "METADATA"

# Index key prefixes
DATE_PREFIX = "DATE#"
MONTH_PREFIX = "MONTH#"
CLICK_PREFIX = "CLICK#"

# Index sort markers for rollup rows
RECORD_SORT_DAILY = PK_STAT_DAILY
RECORD_SORT_MONTHLY = PK_STAT_MONTHLY

MAX_SUBJECT_ID_LENGTH = 1024

TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_subject_id(subject_id: str, field: str = "subject_id") -> None:
    """
    Validate a user-supplied subject id.

    Raises:
        ValidationError: If the id is empty, too long, contains control
            characters, or falls inside the reserved ``STAT#`` namespace
    """
    if not isinstance(subject_id, str) or not subject_id:
        raise ValidationError(field, subject_id, "must be a non-empty string")
    if len(subject_id) > MAX_SUBJECT_ID_LENGTH:
        raise ValidationError(
            field, subject_id, f"exceeds {MAX_SUBJECT_ID_LENGTH} characters"
        )
    if _CONTROL_CHARS.search(subject_id):
        raise ValidationError(field, subject_id, "contains control characters")
    if subject_id.startswith(STAT_PREFIX):
        raise ValidationError(
            field, subject_id, f"prefix {STAT_PREFIX!r} is reserved for aggregates"
        )


def validate_timestamp(timestamp: str, field: str = "timestamp") -> None:
    """Validate an ISO-8601 UTC timestamp with millisecond precision."""
    if not isinstance(timestamp, str) or not TIMESTAMP_PATTERN.match(timestamp):
        raise ValidationError(
            field, timestamp, "expected format YYYY-MM-DDTHH:MM:SS.sssZ"
        )
    try:
        datetime.strptime(timestamp, "%Y-%m-%dT%H:%M:%S.%fZ")
    except ValueError as e:
        raise ValidationError(field, timestamp, str(e)) from e


def validate_date(date: str, field: str = "date") -> None:
    """Validate a calendar date (YYYY-MM-DD)."""
    if not isinstance(date, str) or not DATE_PATTERN.match(date):
        raise ValidationError(field, date, "expected format YYYY-MM-DD")
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(field, date, str(e)) from e


def validate_month(month: str, field: str = "month") -> None:
    """Validate a calendar month (YYYY-MM)."""
    if not isinstance(month, str) or not MONTH_PATTERN.match(month):
        raise ValidationError(field, month, "expected format YYYY-MM")
    try:
        datetime.strptime(month, "%Y-%m")
    except ValueError as e:
        raise ValidationError(field, month, str(e)) from e


# ---------------------------------------------------------------------------
# Key fragments
# ---------------------------------------------------------------------------


def date_of(timestamp: str) -> str:
    """Calendar date (UTC) of a timestamp: its first 10 characters."""
    return timestamp[:10]


def month_of(date_or_timestamp: str) -> str:
    """Calendar month (UTC) of a date or timestamp: its first 7 characters."""
    return date_or_timestamp[:7]


def date_key(date: str) -> str:
    """Build DateIndex partition key for a calendar date."""
    return f"{DATE_PREFIX}{date}"


def month_key(month: str) -> str:
    """Build DateIndex partition key for a calendar month."""
    return f"{MONTH_PREFIX}{month}"


def record_sort_click(timestamp: str, subject_id: str) -> str:
    """Build DateIndex sort key for a click event."""
    return f"{CLICK_PREFIX}{timestamp}#{subject_id}"


def record_sort_click_prefix() -> str:
    """Build DateIndex sort key prefix matching click events only."""
    return CLICK_PREFIX


# ---------------------------------------------------------------------------
# Composite keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemKeys:
    """
    Physical key attributes of one row.

    ``date_key`` and ``record_sort`` are None for rows that are not
    projected into the DateIndex (the total counter).
    """

    partition_key: str
    sort_key: str
    date_key: str | None = None
    record_sort: str | None = None

    def primary_key(self) -> dict[str, str]:
        """Table key for get/put/update requests."""
        return {PK_ATTR: self.partition_key, SK_ATTR: self.sort_key}

    def index_attributes(self) -> dict[str, str]:
        """DateIndex attributes to store alongside the row."""
        attrs: dict[str, str] = {}
        if self.date_key is not None:
            attrs[DATE_KEY_ATTR] = self.date_key
        if self.record_sort is not None:
            attrs[RECORD_SORT_ATTR] = self.record_sort
        return attrs


def event_keys(subject_id: str, timestamp: str) -> ItemKeys:
    """Keys for a click event row."""
    validate_subject_id(subject_id)
    validate_timestamp(timestamp)
    return ItemKeys(
        partition_key=subject_id,
        sort_key=timestamp,
        date_key=date_key(date_of(timestamp)),
        record_sort=record_sort_click(timestamp, subject_id),
    )


def total_stat_keys() -> ItemKeys:
    """Keys for the all-time total counter row."""
    return ItemKeys(partition_key=PK_STAT_TOTAL, sort_key=SK_METADATA)


def daily_stat_keys(date: str) -> ItemKeys:
    """Keys for a daily rollup row."""
    validate_date(date)
    return ItemKeys(
        partition_key=PK_STAT_DAILY,
        sort_key=date,
        date_key=date_key(date),
        record_sort=RECORD_SORT_DAILY,
    )


def monthly_stat_keys(month: str) -> ItemKeys:
    """Keys for a monthly rollup row."""
    validate_month(month)
    return ItemKeys(
        partition_key=PK_STAT_MONTHLY,
        sort_key=month,
        date_key=month_key(month),
        record_sort=RECORD_SORT_MONTHLY,
    )


def get_table_definition(table_name: str) -> dict[str, Any]:
    """
    Get the DynamoDB table definition for CreateTable.

    Returns a dictionary suitable for boto3 create_table().
    """
    return {
        "TableName": table_name,
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": PK_ATTR, "AttributeType": "S"},
            {"AttributeName": SK_ATTR, "AttributeType": "S"},
            {"AttributeName": DATE_KEY_ATTR, "AttributeType": "S"},
            {"AttributeName": RECORD_SORT_ATTR, "AttributeType": "S"},
        ],
        "KeySchema": [
            {"AttributeName": PK_ATTR, "KeyType": "HASH"},
            {"AttributeName": SK_ATTR, "KeyType": "RANGE"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": DATE_INDEX_NAME,
                "KeySchema": [
                    {"AttributeName": DATE_KEY_ATTR, "KeyType": "HASH"},
                    {"AttributeName": RECORD_SORT_ATTR, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
    }


def index_key_attributes(index_name: str | None) -> tuple[str, str]:
    """Return the (hash, range) attribute names for the table or an index."""
    if index_name is None:
        return PK_ATTR, SK_ATTR
    if index_name == DATE_INDEX_NAME:
        return DATE_KEY_ATTR, RECORD_SORT_ATTR
    raise ValueError(f"Unknown index: {index_name}")
