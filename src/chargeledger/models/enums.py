"""Enumerations shared across the transaction service."""

from enum import Enum


class RefundStatus(str, Enum):
    """State of a refund reference held by a transaction."""

    NOT_SUBMITTED = "notSubmitted"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"
    APPROVED = "approved"


class InactivityStatus(str, Enum):
    """Inactivity level of a completed transaction."""

    INFO = "I"
    WARNING = "W"
    ERROR = "E"


class TransactionInErrorType(str, Enum):
    """Anomalies detected on completed transactions."""

    LONG_INACTIVITY = "long_inactivity"
    NEGATIVE_ACTIVITY = "negative_inactivity"
    NEGATIVE_DURATION = "negative_duration"
    OVER_CONSUMPTION = "over_consumption"
    INVALID_START_DATE = "invalid_start_date"
    NO_CONSUMPTION = "no_consumption"
    MISSING_PRICE = "missing_price"
    MISSING_USER = "missing_user"
    NO_BILLING_DATA = "no_billing_data"


class TenantComponent(str, Enum):
    """Optional features a tenant can activate."""

    ORGANIZATION = "organization"
    PRICING = "pricing"
    BILLING = "billing"
    REFUND = "refund"
    OCPI = "ocpi"
    STATISTICS = "statistics"


class UserRole(str, Enum):
    """Roles carried by a user token."""

    SUPER_ADMIN = "S"
    ADMIN = "A"
    BASIC = "B"
    DEMO = "D"


class Action(str, Enum):
    """Capabilities checked by the authorization layer."""

    READ = "Read"
    LIST = "List"
    UPDATE = "Update"
    DELETE = "Delete"
    REFUND_TRANSACTION = "RefundTransaction"


class Entity(str, Enum):
    """Entities subject to capability checks."""

    TRANSACTION = "Transaction"
    TRANSACTIONS = "Transactions"
    TRANSACTIONS_IN_ERROR = "TransactionsInError"


class ServerAction(str, Enum):
    """Names under which service operations are logged."""

    TRANSACTION = "Transaction"
    TRANSACTIONS_ACTIVE = "TransactionsActive"
    TRANSACTIONS_COMPLETED = "TransactionsCompleted"
    TRANSACTIONS_TO_REFUND = "TransactionsToRefund"
    TRANSACTIONS_IN_ERROR = "TransactionsInError"
    TRANSACTIONS_EXPORT = "TransactionsExport"
    TRANSACTIONS_TO_REFUND_EXPORT = "TransactionsToRefundExport"
    TRANSACTION_YEARS = "TransactionYears"
    TRANSACTION_CONSUMPTION = "TransactionConsumption"
    CHARGING_STATION_TRANSACTIONS = "ChargingStationTransactions"
    TRANSACTIONS_REFUND = "TransactionsRefund"
    REFUND_REPORTS = "RefundReports"
    SYNCHRONIZE_REFUNDED_TRANSACTIONS = "SynchronizeRefundedTransactions"
    TRANSACTION_PUSH_CDR = "TransactionPushCdr"
    TRANSACTION_DELETE = "TransactionDelete"
    TRANSACTIONS_DELETE = "TransactionsDelete"
    TRANSACTION_SOFT_STOP = "TransactionSoftStop"
    REBUILD_TRANSACTION_CONSUMPTIONS = "RebuildTransactionConsumptions"
    UNASSIGNED_TRANSACTIONS_COUNT = "UnassignedTransactionsCount"
    ASSIGN_TRANSACTIONS_TO_USER = "AssignTransactionsToUser"
