"""
click-tally: click event log and rollup counters on a single DynamoDB table.

This library provides:
- An append-only click log partitioned by user, listed newest first
- An all-time total counter updated with atomic ADD
- Daily and monthly rollup counters reachable through the DateIndex
- Pluggable backends via StoreProtocol (DynamoDB, in-memory)

Example:
    from click_tally import ClickTracker, DynamoStore

    async with ClickTracker(DynamoStore("qit-db-local")) as tracker:
        result = await tracker.record_click("user-001")
        history = await tracker.list_clicks_for_subject("user-001")
"""

# ---------------------------------------------------------------------------
# Lazy imports
# ---------------------------------------------------------------------------
# DynamoStore depends on aioboto3. It is imported lazily via __getattr__ so
# the key scheme, models and in-memory backend stay importable without it.
# ---------------------------------------------------------------------------
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

from .config import Settings
from .exceptions import (
    ClickTallyError,
    StoreError,
    StoreUnavailable,
    StoreWriteConflict,
    ValidationError,
)
from .memory import MemoryStore
from .models import AggregateStat, ClickEvent, ClickResult
from .schema import ItemKeys
from .store_protocol import KeyCondition, StoreProtocol
from .tracker import ClickTracker, SyncClickTracker

if TYPE_CHECKING:
    from .store import DynamoStore as DynamoStore

try:
    __version__ = version("click-tally")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Main classes
    "ClickTracker",
    "SyncClickTracker",
    "Settings",
    # Stores
    "StoreProtocol",
    "DynamoStore",
    "MemoryStore",
    "KeyCondition",
    # Models
    "ClickEvent",
    "ClickResult",
    "AggregateStat",
    "ItemKeys",
    # Exceptions
    "ClickTallyError",
    "ValidationError",
    "StoreError",
    "StoreUnavailable",
    "StoreWriteConflict",
]


def __getattr__(name: str) -> type:
    """Lazy import for modules that require aioboto3."""
    if name == "DynamoStore":
        from .store import DynamoStore

        return DynamoStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
