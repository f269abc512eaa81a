"""Store protocol for click-tally backends.

This module defines the StoreProtocol that all storage backends must implement.
The protocol uses Python's typing.Protocol with @runtime_checkable decorator,
enabling duck typing and isinstance() checks at runtime.

A store is bound to one table. Keys and items are plain Python dicts keyed by
the physical attribute names from ``schema``; serialization to the backend's
wire format is the store's concern.
"""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

EQ = "eq"
BETWEEN = "between"
BEGINS_WITH = "begins_with"


@dataclass(frozen=True)
class KeyCondition:
    """
    A key condition on a partition or sort key attribute.

    Partition conditions must use ``eq``. Sort conditions may use ``eq``,
    ``between`` (inclusive on both ends) or ``begins_with``.
    """

    attribute: str
    operator: str
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        expected = {EQ: 1, BETWEEN: 2, BEGINS_WITH: 1}
        if self.operator not in expected:
            raise ValueError(f"Unknown key condition operator: {self.operator}")
        if len(self.values) != expected[self.operator]:
            raise ValueError(
                f"{self.operator} takes {expected[self.operator]} value(s), "
                f"got {len(self.values)}"
            )

    @classmethod
    def eq(cls, attribute: str, value: Any) -> "KeyCondition":
        return cls(attribute, EQ, (value,))

    @classmethod
    def between(cls, attribute: str, low: Any, high: Any) -> "KeyCondition":
        return cls(attribute, BETWEEN, (low, high))

    @classmethod
    def begins_with(cls, attribute: str, prefix: str) -> "KeyCondition":
        return cls(attribute, BEGINS_WITH, (prefix,))

    def matches(self, value: Any) -> bool:
        """Evaluate the condition against an attribute value."""
        if value is None:
            return False
        if self.operator == EQ:
            return bool(value == self.values[0])
        if self.operator == BETWEEN:
            return bool(self.values[0] <= value <= self.values[1])
        return isinstance(value, str) and value.startswith(self.values[0])


@runtime_checkable
class StoreProtocol(Protocol):
    """
    Protocol for click-tally storage backends.

    Backends (DynamoDB, in-memory) must implement these primitives to work
    with ClickTracker:

    - **put**: unconditional insert/replace
    - **get**: point lookup, None when absent
    - **atomic_add**: server-side increment, creating the item if needed
    - **query**: key-condition query against the table or a secondary index

    Failures surface as StoreError subclasses; not-found is never an error.
    """

    @property
    def table_name(self) -> str:
        """Name of the table this store is bound to."""
        ...

    async def close(self) -> None:
        """
        Close the backend connection and release resources.

        Safe to call multiple times.
        """
        ...

    async def put(self, key: dict[str, Any], attributes: dict[str, Any]) -> None:
        """
        Write an item, replacing any existing item with the same key.

        Args:
            key: Primary key attributes
            attributes: Non-key attributes

        Raises:
            StoreUnavailable: If the store cannot be reached
        """
        ...

    async def get(self, key: dict[str, Any]) -> dict[str, Any] | None:
        """
        Fetch one item by primary key.

        Returns:
            The item, or None if it does not exist.
        """
        ...

    async def atomic_add(
        self,
        key: dict[str, Any],
        field: str,
        delta: int,
        set_attributes: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Atomically add ``delta`` to a numeric field.

        The increment is applied by the backend in a single request, creating
        the item (with the field starting at zero) when it does not exist.
        ``set_attributes`` are written in the same request.

        Returns:
            The full item after the update.
        """
        ...

    async def query(
        self,
        partition: KeyCondition,
        sort: KeyCondition | None = None,
        *,
        index_name: str | None = None,
        scan_forward: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Query items by key condition.

        Args:
            partition: Equality condition on the partition key
            sort: Optional condition on the sort key
            index_name: Secondary index to query, or None for the table
            scan_forward: Ascending sort-key order if True, descending if False
            limit: Maximum number of items to return (None for all)

        Returns:
            Matching items. Order is by sort key within one partition.
        """
        ...
