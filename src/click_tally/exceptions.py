"""Exceptions for click-tally."""

from typing import Any

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class ClickTallyError(Exception):
    """
    Base exception for all click-tally errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Validation Exceptions
# ---------------------------------------------------------------------------


class ValidationError(ClickTallyError):
    """
    Raised when a caller-supplied value is malformed.

    Covers subject ids, timestamps, dates, months, range bounds and
    increments. Validation always happens before any store call, so a
    ValidationError never leaves partial writes behind. Never retried.

    Attributes:
        field: Name of the offending argument
        value: The rejected value
        reason: Human-readable explanation
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# ---------------------------------------------------------------------------
# Store Exceptions
# ---------------------------------------------------------------------------


class StoreError(ClickTallyError):
    """
    Raised when the backing store rejects a request.

    This is the category for non-transient failures (for example a
    malformed request reported by DynamoDB). Transient failures use the
    StoreUnavailable subclass.

    Attributes:
        cause: The underlying exception reported by the store client
        table_name: The table that was being accessed
        operation: The store primitive that failed (put, get, atomic_add, query)
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        *,
        table_name: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.cause = cause
        self.table_name = table_name
        self.operation = operation
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        parts = [message]
        context = []
        if self.table_name:
            context.append(f"table={self.table_name}")
        if self.operation:
            context.append(f"operation={self.operation}")
        if context:
            parts.append(f"[{', '.join(context)}]")
        return " ".join(parts)


class StoreUnavailable(StoreError):  # noqa: N818
    """
    Raised when the store cannot be reached or does not answer in time.

    Connectivity failures, throttling, service errors, timeouts and a
    missing table all map here. Safe to retry with backoff.
    """

    pass


class StoreWriteConflict(StoreError):  # noqa: N818
    """
    Raised when the store reports a conditional-write failure.

    All writes issued by ClickTracker are unconditional, so this is
    currently unreachable from the access patterns.
    """

    pass
