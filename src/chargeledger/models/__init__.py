from .domain import (
    ActionsResponse,
    BillingData,
    ChargingStation,
    Connector,
    Consumption,
    DataResult,
    DbParams,
    MeterValue,
    OcpiData,
    RefundData,
    RefundReport,
    Tenant,
    Transaction,
    TransactionFilter,
    TransactionInError,
    TransactionStop,
    User,
    UserToken,
)
from .enums import (
    Action,
    Entity,
    InactivityStatus,
    RefundStatus,
    ServerAction,
    TenantComponent,
    TransactionInErrorType,
    UserRole,
)

__all__ = [
    "Action",
    "ActionsResponse",
    "BillingData",
    "ChargingStation",
    "Connector",
    "Consumption",
    "DataResult",
    "DbParams",
    "Entity",
    "InactivityStatus",
    "MeterValue",
    "OcpiData",
    "RefundData",
    "RefundReport",
    "RefundStatus",
    "ServerAction",
    "Tenant",
    "TenantComponent",
    "Transaction",
    "TransactionFilter",
    "TransactionInError",
    "TransactionInErrorType",
    "TransactionStop",
    "User",
    "UserRole",
    "UserToken",
]
