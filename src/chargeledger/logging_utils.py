"""Structured JSON logging utilities for event-based logging."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .models import ActionsResponse


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add event-specific fields if present
        if hasattr(record, "event_type"):
            log_data["event_type"] = record.event_type
        if hasattr(record, "event_data"):
            log_data.update(record.event_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def log_action(
    logger: logging.Logger,
    level: int,
    tenant_id: str,
    action: str,
    message: str,
    module: str | None = None,
    method: str | None = None,
    user: str | None = None,
    action_on_user: str | None = None,
    detailed_messages: dict[str, Any] | None = None,
    **kwargs: Any,
) -> None:
    """
    Log a service action event.

    Args:
        logger: Logger instance
        level: Logging level (e.g. logging.INFO)
        tenant_id: Tenant the action ran for
        action: Server action name
        message: Human readable message
        module: Emitting module name
        method: Emitting method name
        user: ID of the acting user
        action_on_user: ID of the user affected by the action
        detailed_messages: Extra payload attached to the event
        **kwargs: Additional fields to include
    """
    event_data = {
        "tenant_id": tenant_id,
        "action": str(action.value if hasattr(action, "value") else action),
    }

    if module is not None:
        event_data["module"] = module
    if method is not None:
        event_data["method"] = method
    if user is not None:
        event_data["user"] = user
    if action_on_user is not None:
        event_data["action_on_user"] = action_on_user
    if detailed_messages:
        event_data["detailed_messages"] = detailed_messages

    for key, value in kwargs.items():
        if value is not None:
            event_data[key] = value

    extra = {
        "event_type": "action",
        "event_data": event_data,
    }
    logger.log(level, message, extra=extra)


def log_error(
    logger: logging.Logger,
    error_type: str,
    message: str,
    tenant_id: str | None = None,
    exc_info: Exception | None = None,
    **kwargs: Any,
) -> None:
    """
    Log an error event.

    Args:
        logger: Logger instance
        error_type: Type of error (e.g., "plugin_error", "tenant_sync_error")
        message: Error message
        tenant_id: Tenant ID (if applicable)
        exc_info: Exception object (will extract traceback)
        **kwargs: Additional fields to include
    """
    event_data = {
        "error_type": error_type,
    }

    if tenant_id is not None:
        event_data["tenant_id"] = tenant_id

    for key, value in kwargs.items():
        if value is not None:
            event_data[key] = value

    extra = {
        "event_type": "error",
        "event_data": event_data,
    }
    logger.error(message, extra=extra, exc_info=exc_info)


def log_actions_response(
    logger: logging.Logger,
    tenant_id: str,
    action: str,
    module: str,
    method: str,
    result: ActionsResponse,
    message_success: str,
    message_error: str,
    message_success_and_error: str,
    message_no_success_no_error: str,
) -> None:
    """
    Log the aggregated outcome of a batch operation.

    Messages may reference ``{in_success}`` and ``{in_error}``. The level is
    INFO when every item succeeded and WARNING as soon as one failed.
    """
    counts = {"in_success": result.in_success, "in_error": result.in_error}
    if result.in_success and result.in_error:
        level, template = logging.WARNING, message_success_and_error
    elif result.in_success:
        level, template = logging.INFO, message_success
    elif result.in_error:
        level, template = logging.WARNING, message_error
    else:
        level, template = logging.INFO, message_no_success_no_error

    log_action(
        logger,
        level,
        tenant_id,
        action,
        template.format(**counts),
        module=module,
        method=method,
        detailed_messages=result.to_dict(),
    )
