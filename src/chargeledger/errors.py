"""Exceptions raised by the transaction service."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine readable error codes returned to the transport layer."""

    GENERAL_ERROR = "general_error"
    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"
    AUTHORIZATION_DENIED = "authorization_denied"
    OBJECT_DOES_NOT_EXIST = "object_does_not_exist"
    TRANSACTION_NOT_FROM_TENANT = "transaction_not_from_tenant"
    TRANSACTION_WITH_NO_OCPI_DATA = "transaction_with_no_ocpi_data"
    TRANSACTION_CDR_ALREADY_PUSHED = "transaction_cdr_already_pushed"
    TRANSACTION_ALREADY_STOPPED = "transaction_already_stopped"
    USER_NOT_ISSUED = "user_not_issued"
    INTEGRATION_NOT_CONFIGURED = "integration_not_configured"


class ChargeLedgerError(Exception):
    """Base class for all service errors."""

    default_code = ErrorCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        error_code: ErrorCode | None = None,
        module: str | None = None,
        method: str | None = None,
        detailed_messages: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.module = module
        self.method = method
        self.detailed_messages = detailed_messages or {}

    def to_dict(self) -> dict[str, Any]:
        return {"errorCode": self.error_code.value, "message": self.message}


class ValidationError(ChargeLedgerError):
    """A required identifier or field is missing or malformed."""

    default_code = ErrorCode.MISSING_PARAMETER


class AuthorizationError(ChargeLedgerError):
    """The caller lacks the capability required by the operation."""

    default_code = ErrorCode.AUTHORIZATION_DENIED

    def __init__(
        self,
        user_id: str,
        action: str,
        entity: str,
        value: str | None = None,
        module: str | None = None,
        method: str | None = None,
    ):
        message = f"Role is not authorized to perform '{action}' on '{entity}'"
        if value is not None:
            message += f" with ID '{value}'"
        super().__init__(message, module=module, method=method)
        self.user_id = user_id
        self.action = action
        self.entity = entity
        self.value = value


class NotFoundError(ChargeLedgerError):
    """A referenced entity does not exist."""

    default_code = ErrorCode.OBJECT_DOES_NOT_EXIST


class ConflictError(ChargeLedgerError):
    """The entity is in a state that forbids the operation."""


class IntegrationUnavailableError(ChargeLedgerError):
    """A required refund, billing or roaming integration is not configured."""

    default_code = ErrorCode.INTEGRATION_NOT_CONFIGURED
