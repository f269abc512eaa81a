"""In-process store for local development and tests.

Holds items in a dict keyed by (partition key, sort key) and evaluates
queries against the same key layout as the DynamoDB table, including the
DateIndex projection. Mutations run under an asyncio.Lock so atomic_add
stays atomic across concurrent coroutines.
"""

import asyncio
import copy
from typing import Any

from . import schema
from .store_protocol import KeyCondition


class MemoryStore:
    """StoreProtocol implementation backed by a Python dict."""

    def __init__(self, table_name: str = schema.DEFAULT_TABLE_NAME) -> None:
        self._table_name = table_name
        self._items: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self.closed = False

    @property
    def table_name(self) -> str:
        return self._table_name

    def __len__(self) -> int:
        return len(self._items)

    async def close(self) -> None:
        self.closed = True

    @staticmethod
    def _key_tuple(key: dict[str, Any]) -> tuple[str, str]:
        return key[schema.PK_ATTR], key[schema.SK_ATTR]

    async def put(self, key: dict[str, Any], attributes: dict[str, Any]) -> None:
        item = {k: v for k, v in {**attributes, **key}.items() if v is not None}
        async with self._lock:
            self._items[self._key_tuple(key)] = copy.deepcopy(item)

    async def get(self, key: dict[str, Any]) -> dict[str, Any] | None:
        item = self._items.get(self._key_tuple(key))
        return copy.deepcopy(item) if item is not None else None

    async def atomic_add(
        self,
        key: dict[str, Any],
        field: str,
        delta: int,
        set_attributes: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._lock:
            item = self._items.setdefault(self._key_tuple(key), dict(key))
            item[field] = item.get(field, 0) + delta
            for name, value in (set_attributes or {}).items():
                item[name] = value
            return copy.deepcopy(item)

    async def query(
        self,
        partition: KeyCondition,
        sort: KeyCondition | None = None,
        *,
        index_name: str | None = None,
        scan_forward: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        hash_attr, range_attr = schema.index_key_attributes(index_name)
        if partition.attribute != hash_attr:
            raise ValueError(f"{partition.attribute} is not the partition key of {index_name}")
        if sort is not None and sort.attribute != range_attr:
            raise ValueError(f"{sort.attribute} is not the sort key of {index_name}")

        matches = [
            item
            for item in self._items.values()
            # Sparse index: rows without both index attributes are not projected
            if hash_attr in item
            and range_attr in item
            and partition.matches(item[hash_attr])
            and (sort is None or sort.matches(item[range_attr]))
        ]
        matches.sort(key=lambda item: item[range_attr], reverse=not scan_forward)
        if limit is not None:
            matches = matches[:limit]
        return copy.deepcopy(matches)
