"""Core models for click-tally."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from . import schema
from .exceptions import ValidationError


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Matches JavaScript's ``Date.toISOString()``: ``2025-10-02T08:15:30.123Z``.
    """
    if dt.tzinfo is None:
        raise ValueError("timestamp must be timezone-aware")
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_increment(increment: int) -> None:
    """Rollup increments must be positive integers."""
    if isinstance(increment, bool) or not isinstance(increment, int):
        raise ValidationError("increment", increment, "must be an integer")
    if increment <= 0:
        raise ValidationError("increment", increment, "must be positive")


@dataclass(frozen=True)
class ClickEvent:
    """
    One recorded click.

    Event rows are append-only: written once by ``record_click`` and never
    updated or deleted.
    """

    subject_id: str
    timestamp: str
    click_count: int = 1
    date_key: str | None = None
    record_sort: str | None = None
    click_id: str | None = None

    @property
    def date(self) -> str:
        """Calendar date (UTC) of the click."""
        return schema.date_of(self.timestamp)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "ClickEvent":
        """Build from a store item."""
        return cls(
            subject_id=item[schema.PK_ATTR],
            timestamp=item[schema.SK_ATTR],
            click_count=int(item.get(schema.CLICK_COUNT_ATTR, 1)),
            date_key=item.get(schema.DATE_KEY_ATTR),
            record_sort=item.get(schema.RECORD_SORT_ATTR),
            click_id=item.get(schema.CLICK_ID_ATTR),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the table's attribute names."""
        return {
            schema.PK_ATTR: self.subject_id,
            schema.SK_ATTR: self.timestamp,
            schema.CLICK_COUNT_ATTR: self.click_count,
            schema.DATE_KEY_ATTR: self.date_key,
            schema.RECORD_SORT_ATTR: self.record_sort,
            schema.CLICK_ID_ATTR: self.click_id,
        }


@dataclass(frozen=True)
class AggregateStat:
    """
    A rollup counter row (daily or monthly).

    Attributes:
        scope: Reserved partition (``STAT#DAILY`` or ``STAT#MONTHLY``)
        period: Date (YYYY-MM-DD) or month (YYYY-MM) being aggregated
        total_clicks: Counter value, only ever changed by atomic add
        date_key: DateIndex partition value
        record_sort: DateIndex sort value
    """

    scope: str
    period: str
    total_clicks: int
    date_key: str | None = None
    record_sort: str | None = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "AggregateStat":
        """Build from a store item."""
        return cls(
            scope=item[schema.PK_ATTR],
            period=item[schema.SK_ATTR],
            total_clicks=int(item.get(schema.TOTAL_CLICKS_ATTR, 0)),
            date_key=item.get(schema.DATE_KEY_ATTR),
            record_sort=item.get(schema.RECORD_SORT_ATTR),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the table's attribute names."""
        return {
            schema.PK_ATTR: self.scope,
            schema.SK_ATTR: self.period,
            schema.TOTAL_CLICKS_ATTR: self.total_clicks,
            schema.DATE_KEY_ATTR: self.date_key,
            schema.RECORD_SORT_ATTR: self.record_sort,
        }


@dataclass(frozen=True)
class ClickResult:
    """Outcome of ``record_click``."""

    subject_id: str
    timestamp: str
    date: str
    total_clicks: int

    def as_dict(self) -> dict[str, Any]:
        """
        Serialize for JSON API responses.

        Uses the field names of the public click API.
        """
        return {
            "userId": self.subject_id,
            "createDateTime": self.timestamp,
            "date": self.date,
            "totalClicks": self.total_clicks,
        }
