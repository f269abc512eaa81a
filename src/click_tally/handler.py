"""Lambda handler for the click API.

Accepts API Gateway proxy events whose JSON body carries ``userId``, records
one click, and answers with the running total.
"""

import asyncio
import json
import traceback
from datetime import UTC, datetime
from typing import Any

from .config import Settings
from .exceptions import ValidationError
from .models import ClickResult
from .store_protocol import StoreProtocol
from .tracker import ClickTracker

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST,OPTIONS",
}

SUCCESS_MESSAGE = "Click recorded"
FAILURE_MESSAGE = "Failed to record click"


class StructuredLogger:
    """JSON-formatted logger for CloudWatch Logs Insights."""

    def __init__(self, name: str):
        self._name = name

    def _log(self, level: str, message: str, **extra: Any) -> None:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "logger": self._name,
            "message": message,
            **extra,
        }
        print(json.dumps(log_entry, default=str))

    def info(self, message: str, **extra: Any) -> None:
        self._log("INFO", message, **extra)

    def warning(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        if exc_info:
            extra["exception"] = traceback.format_exc()
        self._log("WARNING", message, **extra)

    def error(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        if exc_info:
            extra["exception"] = traceback.format_exc()
        self._log("ERROR", message, **extra)


logger = StructuredLogger(__name__)


def _response(status_code: int, body: dict[str, Any] | None) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": json.dumps(body) if body is not None else "",
    }


def _success(result: ClickResult) -> dict[str, Any]:
    return _response(
        200,
        {
            "success": True,
            "message": SUCCESS_MESSAGE,
            "data": {
                "userId": result.subject_id,
                "createDateTime": result.timestamp,
                "totalClicks": result.total_clicks,
            },
        },
    )


def _failure(status_code: int, error: Exception) -> dict[str, Any]:
    return _response(
        status_code,
        {"success": False, "message": FAILURE_MESSAGE, "error": str(error)},
    )


def parse_subject_id(event: dict[str, Any], settings: Settings) -> str:
    """
    Extract the user id from a proxy event body.

    Falls back to ``settings.default_subject_id`` only when it is configured.

    Raises:
        ValidationError: If the body is not a JSON object or no user id is available
    """
    raw_body = event.get("body") or "{}"
    if event.get("isBase64Encoded"):
        raise ValidationError("body", raw_body, "base64-encoded bodies are not supported")
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise ValidationError("body", raw_body, f"not valid JSON: {e.msg}") from e
    if not isinstance(body, dict):
        raise ValidationError("body", raw_body, "must be a JSON object")

    social_media_type = body.get("socialMediaType")
    if social_media_type is not None:
        logger.info("Click source", social_media_type=social_media_type)

    subject_id = body.get("userId") or settings.default_subject_id
    if subject_id is None:
        raise ValidationError("userId", None, "is required")
    return subject_id


async def handle_request(
    event: dict[str, Any],
    store: StoreProtocol,
    settings: Settings,
) -> dict[str, Any]:
    """
    Handle one proxy event against an explicit store.

    Status codes:
        200: click recorded (or OPTIONS preflight, empty body)
        400: malformed body or missing/invalid ``userId``. Earlier versions of
            this endpoint answered every failure with 500; clients that only
            check for 500 must treat 400 as a failure too.
        500: store failure or any other error

    The tracker is built around ``store`` and closed (closing the store)
    before returning.
    """
    if event.get("httpMethod") == "OPTIONS":
        return _response(200, None)

    async with ClickTracker(store) as tracker:
        try:
            subject_id = parse_subject_id(event, settings)
            result = await tracker.record_click(subject_id)
        except ValidationError as e:
            logger.warning("Rejected click request", field=e.field, reason=e.reason)
            return _failure(400, e)
        except Exception as e:
            logger.error("Failed to record click", exc_info=True, error=str(e))
            return _failure(500, e)

    logger.info(
        "Click recorded",
        user_id=result.subject_id,
        create_date_time=result.timestamp,
        total_clicks=result.total_clicks,
    )
    return _success(result)


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Lambda handler for API Gateway proxy events.

    Environment variables: see ``click_tally.config``.

    Args:
        event: API Gateway Lambda proxy input
        context: Lambda context

    Returns:
        API Gateway Lambda proxy output (status codes as in handle_request)
    """
    request_id = getattr(context, "aws_request_id", "unknown")
    logger.info("Lambda invocation started", request_id=request_id)

    try:
        settings = Settings.from_env()
    except ValidationError as e:
        logger.error("Invalid configuration", exc_info=True, request_id=request_id)
        return _failure(500, e)

    return asyncio.run(handle_request(event, settings.create_store(), settings))
