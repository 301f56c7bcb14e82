"""CSV export of charging sessions."""

import hashlib
import math

from ..config import CSV_SEPARATOR
from ..models import Transaction, User

CSV_HEADER = (
    "ID",
    "Charging Station",
    "Connector",
    "User ID",
    "User",
    "Start Date",
    "Start Time",
    "End Date",
    "End Time",
    "Total Consumption (kW.h)",
    "Total Duration (Mins)",
    "Total Inactivity (Mins)",
    "Price",
    "Price Unit",
)

# Number of columns that depend on the stop record
STOP_COLUMNS = 7


def round_half_up(value: float, digits: int = 0) -> int | float:
    factor = 10**digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def format_number(value: int | float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def hash_user_id(user_id: str) -> str:
    return hashlib.sha256(user_id.encode()).hexdigest()


def build_user_full_name(user: User) -> str:
    return " ".join(part for part in (user.first_name, user.name) if part)


def _stop_cells(transaction: Transaction) -> list[str]:
    stop = transaction.stop
    if stop is None:
        return [""] * STOP_COLUMNS
    price = ""
    if stop.price is not None:
        price = format_number(round_half_up(stop.price, 2))
    return [
        stop.timestamp.strftime("%Y-%m-%d"),
        stop.timestamp.strftime("%H:%M:%S"),
        format_number(round_half_up((stop.total_consumption_wh or 0) / 1000)),
        format_number(round_half_up((stop.total_duration_secs or 0) / 60)),
        format_number(round_half_up((stop.total_inactivity_secs or 0) / 60)),
        price,
        stop.price_unit or "",
    ]


def convert_to_csv(
    transactions: list[Transaction],
    users: dict[str, User] | None = None,
    write_header: bool = True,
) -> str:
    """
    Render transactions as CSV rows terminated by ``\\r\\n``.

    Args:
        transactions: Transactions to export, in output order
        users: Owners of the transactions keyed by user ID
        write_header: Emit the column header line first

    Returns:
        The CSV text.
    """
    users = users or {}
    lines = []
    if write_header:
        lines.append(CSV_SEPARATOR.join(CSV_HEADER))

    for transaction in transactions:
        user = users.get(transaction.user_id) if transaction.user_id else None
        cells = [
            str(transaction.id),
            transaction.charge_box_id,
            str(transaction.connector_id),
            hash_user_id(user.id) if user else "",
            build_user_full_name(user) if user else "",
            transaction.timestamp.strftime("%Y-%m-%d"),
            transaction.timestamp.strftime("%H:%M:%S"),
            *_stop_cells(transaction),
        ]
        lines.append(CSV_SEPARATOR.join(cells))

    return "".join(f"{line}\r\n" for line in lines)
