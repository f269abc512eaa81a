"""Runtime settings.

Each setting resolves from an explicit argument, then its environment
variable, then the default:

- ``table_name``: ``DYNAMODB_TABLE`` → ``"qit-db-local"``
- ``region``: ``AWS_REGION`` → boto3 defaults
- ``endpoint_url``: ``DYNAMODB_ENDPOINT`` → AWS
- ``timeout_seconds``: ``CLICK_TALLY_TIMEOUT`` → ``10``
- ``max_attempts``: ``CLICK_TALLY_MAX_ATTEMPTS`` → ``3``
- ``default_subject_id``: ``CLICK_TALLY_DEFAULT_SUBJECT`` → unset

``default_subject_id`` is the user id the request handler falls back to when
a request omits ``userId``. Leaving it unset makes such requests fail
validation instead of being attributed to a placeholder user.
"""

import math
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import ValidationError
from .schema import DEFAULT_TABLE_NAME, validate_subject_id

if TYPE_CHECKING:
    from .store import DynamoStore

TABLE_ENV_VAR = "DYNAMODB_TABLE"
REGION_ENV_VAR = "AWS_REGION"
ENDPOINT_ENV_VAR = "DYNAMODB_ENDPOINT"
TIMEOUT_ENV_VAR = "CLICK_TALLY_TIMEOUT"
MAX_ATTEMPTS_ENV_VAR = "CLICK_TALLY_MAX_ATTEMPTS"
DEFAULT_SUBJECT_ENV_VAR = "CLICK_TALLY_DEFAULT_SUBJECT"

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class Settings:
    """Connection and request-handling settings."""

    table_name: str = DEFAULT_TABLE_NAME
    region: str | None = None
    endpoint_url: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    default_subject_id: str | None = None

    def __post_init__(self) -> None:
        if not self.table_name:
            raise ValidationError("table_name", self.table_name, "must not be empty")
        if not math.isfinite(self.timeout_seconds) or self.timeout_seconds <= 0:
            raise ValidationError(
                "timeout_seconds", self.timeout_seconds, "must be a positive finite number"
            )
        if self.max_attempts < 1:
            raise ValidationError("max_attempts", self.max_attempts, "must be >= 1")
        if self.default_subject_id is not None:
            validate_subject_id(self.default_subject_id, "default_subject_id")

    @classmethod
    def from_env(
        cls,
        table_name: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        timeout_seconds: float | None = None,
        max_attempts: int | None = None,
        default_subject_id: str | None = None,
    ) -> "Settings":
        """Resolve settings from explicit arguments, environment, then defaults."""
        return cls(
            table_name=table_name or os.environ.get(TABLE_ENV_VAR) or DEFAULT_TABLE_NAME,
            region=region or os.environ.get(REGION_ENV_VAR) or None,
            endpoint_url=endpoint_url or os.environ.get(ENDPOINT_ENV_VAR) or None,
            timeout_seconds=(
                timeout_seconds
                if timeout_seconds is not None
                else _env_number(TIMEOUT_ENV_VAR, float, DEFAULT_TIMEOUT_SECONDS)
            ),
            max_attempts=(
                max_attempts
                if max_attempts is not None
                else _env_number(MAX_ATTEMPTS_ENV_VAR, int, DEFAULT_MAX_ATTEMPTS)
            ),
            default_subject_id=(
                default_subject_id or os.environ.get(DEFAULT_SUBJECT_ENV_VAR) or None
            ),
        )

    def create_store(self) -> "DynamoStore":
        """Build a DynamoStore for these settings."""
        from .store import DynamoStore

        return DynamoStore(
            table_name=self.table_name,
            region=self.region,
            endpoint_url=self.endpoint_url,
            timeout_seconds=self.timeout_seconds,
            max_attempts=self.max_attempts,
        )


def _env_number(name: str, kind: type[int] | type[float], default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return kind(raw)
    except ValueError as e:
        raise ValidationError(name, raw, f"must be a number ({kind.__name__})") from e
