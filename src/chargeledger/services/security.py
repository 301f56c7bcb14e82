"""Request sanitization and response redaction for transaction operations."""

from datetime import UTC, datetime
from typing import Any

from .. import config
from ..errors import ErrorCode, ValidationError
from ..models import (
    Consumption,
    DataResult,
    DbParams,
    RefundReport,
    Transaction,
    TransactionInError,
    User,
    UserRole,
    UserToken,
)
from ..repositories.transaction import SORTABLE_FIELDS

MODULE_NAME = "TransactionSecurity"

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


def _invalid(name: str, value: Any) -> ValidationError:
    return ValidationError(
        f"Invalid value '{value}' for parameter '{name}'",
        error_code=ErrorCode.INVALID_PARAMETER,
        module=MODULE_NAME,
        detailed_messages={"parameter": name, "value": value},
    )


def parse_int(request: dict, name: str) -> int | None:
    value = request.get(name)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise _invalid(name, value)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise _invalid(name, value) from e


def parse_int_list(request: dict, name: str) -> list[int] | None:
    """Accept a list of IDs or a ``1|2|3`` string."""
    values = request.get(name)
    if values is None:
        return None
    if isinstance(values, str):
        values = [v for v in values.split("|") if v]
    if not isinstance(values, (list, tuple)):
        raise _invalid(name, values)
    result = []
    for value in values:
        if isinstance(value, bool):
            raise _invalid(name, value)
        try:
            result.append(int(value))
        except (TypeError, ValueError) as e:
            raise _invalid(name, value) from e
    return result


def parse_str(request: dict, name: str) -> str | None:
    value = request.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def split_values(request: dict, name: str) -> list[str] | None:
    value = parse_str(request, name)
    if value is None:
        return None
    return [v for v in value.split("|") if v]


def parse_bool(request: dict, name: str) -> bool | None:
    value = request.get(name)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise _invalid(name, value)


def parse_float(request: dict, name: str) -> float | None:
    value = request.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise _invalid(name, value) from e


def parse_datetime(request: dict, name: str) -> datetime | None:
    """Parse an ISO 8601 value; naive values are taken as UTC."""
    value = request.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as e:
            raise _invalid(name, value) from e
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def parse_db_params(request: dict) -> DbParams:
    """Read ``Limit``, ``Skip``, ``Sort`` and ``OnlyRecordCount`` from a request."""
    limit = parse_int(request, "Limit")
    if limit is None or limit <= 0:
        limit = config.DB_RECORD_COUNT_DEFAULT
    limit = min(limit, config.DB_RECORD_COUNT_MAX)

    skip = parse_int(request, "Skip") or 0
    if skip < 0:
        raise _invalid("Skip", skip)

    sort = parse_str(request, "Sort")
    if sort:
        for item in sort.split(","):
            if item.strip().lstrip("-") not in SORTABLE_FIELDS:
                raise _invalid("Sort", item)

    return DbParams(
        limit=limit,
        skip=skip,
        sort=sort,
        only_record_count=bool(parse_bool(request, "OnlyRecordCount")),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _can_see_user(transaction: Transaction, user_token: UserToken) -> bool:
    if user_token.role == UserRole.ADMIN.value:
        return True
    if user_token.role == UserRole.DEMO.value:
        return False
    if transaction.user_id and transaction.user_id == user_token.id:
        return True
    return bool(transaction.site_id) and transaction.site_id in user_token.site_admin_ids


def filter_transaction_response(
    transaction: Transaction, user_token: UserToken, user: User | None = None
) -> dict[str, Any]:
    """
    Serialize a transaction for the caller.

    Owner identity (user, badges) is only exposed to admins, to the owner and
    to administrators of the transaction's site. Demo users never see it.
    """
    see_user = _can_see_user(transaction, user_token)
    data: dict[str, Any] = {
        "id": transaction.id,
        "chargeBoxID": transaction.charge_box_id,
        "connectorId": transaction.connector_id,
        "siteID": transaction.site_id,
        "siteAreaID": transaction.site_area_id,
        "issuer": transaction.issuer,
        "timestamp": _iso(transaction.timestamp),
        "meterStart": transaction.meter_start,
    }
    if see_user:
        data["userID"] = transaction.user_id
        data["tagID"] = transaction.tag_id
        if user is not None:
            data["user"] = {"id": user.id, "name": user.name, "firstName": user.first_name}

    stop = transaction.stop
    if stop is not None:
        data["stop"] = {
            "timestamp": _iso(stop.timestamp),
            "meterStop": stop.meter_stop,
            "totalConsumptionWh": stop.total_consumption_wh,
            "totalDurationSecs": stop.total_duration_secs,
            "totalInactivitySecs": stop.total_inactivity_secs,
            "inactivityStatus": stop.inactivity_status,
            "price": stop.price,
            "priceUnit": stop.price_unit,
            "reason": stop.reason,
        }
        if see_user:
            data["stop"]["userID"] = stop.user_id
            data["stop"]["tagID"] = stop.tag_id

    if transaction.refund_data is not None:
        data["refundData"] = {
            "refundId": transaction.refund_data.refund_id,
            "status": transaction.refund_data.status,
            "reportId": transaction.refund_data.report_id,
            "refundedAt": _iso(transaction.refund_data.refunded_at),
        }
    if transaction.billing_data is not None:
        data["billingData"] = {"invoiceID": transaction.billing_data.invoice_id}
    if transaction.ocpi_data is not None:
        data["ocpiData"] = {
            "sessionId": transaction.ocpi_data.session_id,
            "cdr": transaction.ocpi_data.cdr,
        }
    return data


def filter_transactions_response(
    transactions: DataResult, user_token: UserToken, users: dict[str, User] | None = None
) -> dict[str, Any]:
    users = users or {}
    result = []
    for item in transactions.result:
        if isinstance(item, TransactionInError):
            data = filter_transaction_response(
                item.transaction, user_token, users.get(item.transaction.user_id)
            )
            data["errorCode"] = item.error_code
        else:
            data = filter_transaction_response(item, user_token, users.get(item.user_id))
        result.append(data)

    response: dict[str, Any] = {"count": transactions.count, "result": result}
    if transactions.stats is not None:
        response["stats"] = transactions.stats
    return response


def filter_consumptions_response(
    transaction: Transaction, consumptions: list[Consumption], user_token: UserToken
) -> dict[str, Any]:
    data = filter_transaction_response(transaction, user_token)
    data["values"] = [
        {
            "startedAt": _iso(c.started_at),
            "endedAt": _iso(c.ended_at),
            "consumptionWh": c.consumption_wh,
            "cumulatedConsumptionWh": c.cumulated_consumption_wh,
            "instantWatts": c.instant_watts,
        }
        for c in consumptions
    ]
    return data


def filter_refund_reports_response(reports: DataResult, user_token: UserToken) -> dict[str, Any]:
    def to_dict(report: RefundReport) -> dict[str, Any]:
        data = {
            "id": report.id,
            "transactionCount": report.transaction_count,
            "totalConsumptionWh": report.total_consumption_wh,
            "totalPrice": report.total_price,
        }
        if user_token.role != UserRole.DEMO.value:
            data["userID"] = report.user_id
        return data

    return {"count": reports.count, "result": [to_dict(r) for r in reports.result]}
