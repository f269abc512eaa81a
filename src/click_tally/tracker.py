"""Click tracking access patterns."""

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from ulid import ULID

from . import schema
from .exceptions import StoreError, ValidationError
from .models import AggregateStat, ClickEvent, ClickResult, format_timestamp, validate_increment
from .store_protocol import KeyCondition, StoreProtocol

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@contextmanager
def _annotate(operation: str) -> Iterator[None]:
    """Attach the access pattern name to store errors passing through."""
    try:
        yield
    except StoreError as e:
        e.add_note(f"while running {operation}")
        raise


def _validate_limit(limit: int | None) -> None:
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
        raise ValidationError("limit", limit, "must be a positive integer")


def _range_bound(value: str, field: str, *, end: bool) -> str:
    """Normalize a range bound to a timestamp; bare dates cover the whole day."""
    if isinstance(value, str) and schema.DATE_PATTERN.match(value):
        schema.validate_date(value, field)
        return f"{value}T23:59:59.999Z" if end else f"{value}T00:00:00.000Z"
    schema.validate_timestamp(value, field)
    return value


class ClickTracker:
    """
    Async click tracker over a single-table store.

    Records click events and maintains total, daily and monthly counters.
    Counters only change through the store's atomic add, so any number of
    concurrent callers may share one tracker or use separate ones.

    The store is injected and owned by the caller's lifecycle: closing the
    tracker (or leaving its ``async with`` block) closes the store.

    Example:
        async with ClickTracker(DynamoStore("clicks")) as tracker:
            result = await tracker.record_click("user-001")
            print(result.total_clicks)
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utc_now

    @property
    def store(self) -> StoreProtocol:
        return self._store

    async def close(self) -> None:
        """Close the underlying store."""
        await self._store.close()

    async def __aenter__(self) -> "ClickTracker":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Click events
    # -------------------------------------------------------------------------

    async def record_click(self, subject_id: str, *, rollups: bool = False) -> ClickResult:
        """
        Record one click and bump the total counter.

        The event write and the counter increment are two separate store
        calls. If the second one fails the event stays recorded without a
        matching increment; the error propagates and nothing is rolled back.

        Args:
            subject_id: User the click belongs to
            rollups: Also increment the daily and monthly counters

        Returns:
            ClickResult with the post-increment total

        Raises:
            ValidationError: If subject_id is invalid
            StoreUnavailable: If the store cannot be reached
        """
        timestamp = format_timestamp(self._clock())
        keys = schema.event_keys(subject_id, timestamp)
        date = schema.date_of(timestamp)

        with _annotate("record_click"):
            await self._store.put(
                keys.primary_key(),
                {
                    schema.CLICK_COUNT_ATTR: 1,
                    schema.CLICK_ID_ATTR: str(ULID()),
                    **keys.index_attributes(),
                },
            )
            total_item = await self._store.atomic_add(
                schema.total_stat_keys().primary_key(), schema.TOTAL_CLICKS_ATTR, 1
            )
            if rollups:
                await self._add_to_stat(schema.daily_stat_keys(date), 1)
                await self._add_to_stat(schema.monthly_stat_keys(schema.month_of(date)), 1)

        total = int(total_item.get(schema.TOTAL_CLICKS_ATTR, 0))
        logger.debug("Recorded click for %s at %s (total=%d)", subject_id, timestamp, total)
        return ClickResult(
            subject_id=subject_id,
            timestamp=timestamp,
            date=date,
            total_clicks=total,
        )

    async def list_clicks_for_subject(
        self,
        subject_id: str,
        *,
        limit: int | None = None,
    ) -> list[ClickEvent]:
        """Get all clicks of a subject, newest first."""
        schema.validate_subject_id(subject_id)
        _validate_limit(limit)

        with _annotate("list_clicks_for_subject"):
            items = await self._store.query(
                KeyCondition.eq(schema.PK_ATTR, subject_id),
                scan_forward=False,
                limit=limit,
            )
        return [ClickEvent.from_item(item) for item in items]

    async def list_clicks_in_range(
        self,
        subject_id: str,
        start: str,
        end: str,
        *,
        limit: int | None = None,
    ) -> list[ClickEvent]:
        """
        Get a subject's clicks with ``start <= timestamp <= end``, newest first.

        Bounds may be full timestamps or dates (YYYY-MM-DD). A date start
        means the first millisecond of that day; a date end means the last.

        Raises:
            ValidationError: If a bound is malformed or start is after end
        """
        schema.validate_subject_id(subject_id)
        _validate_limit(limit)
        low = _range_bound(start, "start", end=False)
        high = _range_bound(end, "end", end=True)
        if low > high:
            raise ValidationError("start", start, f"must not be after end {end!r}")

        with _annotate("list_clicks_in_range"):
            items = await self._store.query(
                KeyCondition.eq(schema.PK_ATTR, subject_id),
                KeyCondition.between(schema.SK_ATTR, low, high),
                scan_forward=False,
                limit=limit,
            )
        return [ClickEvent.from_item(item) for item in items]

    async def list_clicks_by_date(self, date: str) -> list[ClickEvent]:
        """
        Get every click recorded on a date, across all subjects.

        Uses the DateIndex. Order is unspecified.
        """
        schema.validate_date(date)

        with _annotate("list_clicks_by_date"):
            items = await self._store.query(
                KeyCondition.eq(schema.DATE_KEY_ATTR, schema.date_key(date)),
                KeyCondition.begins_with(
                    schema.RECORD_SORT_ATTR, schema.record_sort_click_prefix()
                ),
                index_name=schema.DATE_INDEX_NAME,
            )
        return [ClickEvent.from_item(item) for item in items]

    # -------------------------------------------------------------------------
    # Counters
    # -------------------------------------------------------------------------

    async def get_total_clicks(self) -> int:
        """Get the all-time click total (0 before the first click)."""
        with _annotate("get_total_clicks"):
            item = await self._store.get(schema.total_stat_keys().primary_key())
        if not item:
            return 0
        return int(item.get(schema.TOTAL_CLICKS_ATTR, 0))

    async def upsert_daily_stat(self, date: str, increment: int = 1) -> AggregateStat:
        """Atomically add to a date's counter, creating it on first use."""
        keys = schema.daily_stat_keys(date)
        validate_increment(increment)
        with _annotate("upsert_daily_stat"):
            return await self._add_to_stat(keys, increment)

    async def get_daily_stat(self, date: str) -> AggregateStat | None:
        """Get a date's counter via the DateIndex, or None."""
        schema.validate_date(date)
        with _annotate("get_daily_stat"):
            return await self._get_stat(schema.date_key(date), schema.RECORD_SORT_DAILY)

    async def upsert_monthly_stat(self, month: str, increment: int = 1) -> AggregateStat:
        """Atomically add to a month's counter, creating it on first use."""
        keys = schema.monthly_stat_keys(month)
        validate_increment(increment)
        with _annotate("upsert_monthly_stat"):
            return await self._add_to_stat(keys, increment)

    async def get_monthly_stat(self, month: str) -> AggregateStat | None:
        """Get a month's counter via the DateIndex, or None."""
        schema.validate_month(month)
        with _annotate("get_monthly_stat"):
            return await self._get_stat(schema.month_key(month), schema.RECORD_SORT_MONTHLY)

    async def _add_to_stat(self, keys: schema.ItemKeys, increment: int) -> AggregateStat:
        # Index attributes ride along with the ADD so a new row is indexed at creation
        item = await self._store.atomic_add(
            keys.primary_key(),
            schema.TOTAL_CLICKS_ATTR,
            increment,
            set_attributes=keys.index_attributes(),
        )
        return AggregateStat.from_item(item)

    async def _get_stat(self, index_pk: str, marker: str) -> AggregateStat | None:
        items = await self._store.query(
            KeyCondition.eq(schema.DATE_KEY_ATTR, index_pk),
            KeyCondition.eq(schema.RECORD_SORT_ATTR, marker),
            index_name=schema.DATE_INDEX_NAME,
            limit=1,
        )
        if not items:
            return None
        return AggregateStat.from_item(items[0])


class SyncClickTracker:
    """
    Synchronous click tracker.

    Wraps ClickTracker, running async operations on a private event loop.
    """

    def __init__(
        self,
        store: StoreProtocol,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tracker = ClickTracker(store, clock=clock)
        self._loop: asyncio.AbstractEventLoop | None = None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        """Get or create the private event loop."""
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def _run(self, coro: Any) -> Any:
        """Run a coroutine in the event loop."""
        return self._get_loop().run_until_complete(coro)

    def close(self) -> None:
        """Close the underlying store and the event loop."""
        self._run(self._tracker.close())
        if self._loop is not None:
            self._loop.close()

    def __enter__(self) -> "SyncClickTracker":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def record_click(self, subject_id: str, *, rollups: bool = False) -> ClickResult:
        """Record one click and bump the total counter."""
        return self._run(self._tracker.record_click(subject_id, rollups=rollups))

    def list_clicks_for_subject(
        self, subject_id: str, *, limit: int | None = None
    ) -> list[ClickEvent]:
        """Get all clicks of a subject, newest first."""
        return self._run(self._tracker.list_clicks_for_subject(subject_id, limit=limit))

    def list_clicks_in_range(
        self, subject_id: str, start: str, end: str, *, limit: int | None = None
    ) -> list[ClickEvent]:
        """Get a subject's clicks within [start, end], newest first."""
        return self._run(
            self._tracker.list_clicks_in_range(subject_id, start, end, limit=limit)
        )

    def list_clicks_by_date(self, date: str) -> list[ClickEvent]:
        """Get every click recorded on a date."""
        return self._run(self._tracker.list_clicks_by_date(date))

    def get_total_clicks(self) -> int:
        """Get the all-time click total."""
        return self._run(self._tracker.get_total_clicks())

    def upsert_daily_stat(self, date: str, increment: int = 1) -> AggregateStat:
        """Atomically add to a date's counter."""
        return self._run(self._tracker.upsert_daily_stat(date, increment))

    def get_daily_stat(self, date: str) -> AggregateStat | None:
        """Get a date's counter, or None."""
        return self._run(self._tracker.get_daily_stat(date))

    def upsert_monthly_stat(self, month: str, increment: int = 1) -> AggregateStat:
        """Atomically add to a month's counter."""
        return self._run(self._tracker.upsert_monthly_stat(month, increment))

    def get_monthly_stat(self, month: str) -> AggregateStat | None:
        """Get a month's counter, or None."""
        return self._run(self._tracker.get_monthly_stat(month))
