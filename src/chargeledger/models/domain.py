"""Domain models for the charging transaction service."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import RefundStatus, TenantComponent, UserRole


@dataclass
class Tenant:
    """Represents a tenant and its activated components."""

    id: str
    name: str = ""
    subdomain: str = ""
    components: dict[str, dict[str, Any]] = field(default_factory=dict)

    def is_component_active(self, component: TenantComponent | str) -> bool:
        settings = self.components.get(TenantComponent(component).value)
        return bool(settings and settings.get("active"))


@dataclass
class User:
    """Represents a user owning charging transactions."""

    id: str
    tenant_id: str = ""
    name: str = ""
    first_name: str = ""
    email: str = ""
    role: str = UserRole.BASIC.value
    issuer: bool = True
    tag_ids: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class UserToken:
    """Identity and capabilities of the caller of a service operation."""

    id: str
    tenant_id: str
    role: str = UserRole.BASIC.value
    name: str = ""
    first_name: str = ""
    site_ids: list[str] = field(default_factory=list)
    site_admin_ids: list[str] = field(default_factory=list)
    tag_ids: list[str] = field(default_factory=list)
    active_components: set[str] = field(default_factory=set)
    locale: str = "en_US"

    def is_component_active(self, component: TenantComponent | str) -> bool:
        return TenantComponent(component).value in self.active_components


@dataclass
class Connector:
    """Represents a connector on a charging station."""

    connector_id: int = 0
    status: str = "Available"
    power_watts: Optional[float] = None
    current_transaction_id: Optional[int] = None
    current_tag_id: Optional[str] = None
    current_total_consumption_wh: float = 0.0
    current_total_inactivity_secs: int = 0
    current_instant_watts: float = 0.0
    updated_at: Optional[datetime] = None


@dataclass
class ChargingStation:
    """Represents a charging station and its connectors."""

    id: str
    tenant_id: str = ""
    site_id: Optional[str] = None
    site_area_id: Optional[str] = None
    issuer: bool = True
    connectors: list[Connector] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_connector(self, connector_id: int) -> Connector | None:
        for connector in self.connectors:
            if connector.connector_id == connector_id:
                return connector
        return None


@dataclass
class TransactionStop:
    """Stop record of a completed transaction."""

    timestamp: datetime
    meter_stop: int = 0
    total_consumption_wh: float = 0.0
    total_duration_secs: int = 0
    total_inactivity_secs: int = 0
    inactivity_status: Optional[str] = None
    price: Optional[float] = None
    price_unit: Optional[str] = None
    user_id: Optional[str] = None
    tag_id: Optional[str] = None
    reason: str = ""


@dataclass
class RefundData:
    """Refund reference attached to a transaction."""

    refund_id: Optional[str] = None
    status: str = RefundStatus.NOT_SUBMITTED.value
    report_id: Optional[str] = None
    refunded_at: Optional[datetime] = None

    @property
    def is_refunded(self) -> bool:
        """True when a refund reference exists and was not cancelled."""
        return bool(self.refund_id) and self.status != RefundStatus.CANCELLED.value


@dataclass
class BillingData:
    """Billing reference attached to a transaction."""

    invoice_id: Optional[str] = None


@dataclass
class OcpiData:
    """Roaming state of a transaction."""

    session_id: Optional[str] = None
    cdr: Optional[dict[str, Any]] = None

    @property
    def cdr_id(self) -> Optional[str]:
        return self.cdr.get("id") if self.cdr else None


@dataclass
class Transaction:
    """Represents a charging transaction."""

    id: Optional[int] = None
    tenant_id: str = ""
    charge_box_id: str = ""
    connector_id: int = 0
    user_id: Optional[str] = None
    tag_id: str = ""
    site_id: Optional[str] = None
    site_area_id: Optional[str] = None
    issuer: bool = True
    timestamp: Optional[datetime] = None
    meter_start: int = 0
    stop: Optional[TransactionStop] = None
    refund_data: Optional[RefundData] = None
    billing_data: Optional[BillingData] = None
    ocpi_data: Optional[OcpiData] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.stop is None


@dataclass
class TransactionInError:
    """A completed transaction together with the anomaly it exhibits."""

    transaction: Transaction
    error_code: str


@dataclass
class MeterValue:
    """Represents a meter value reading."""

    id: Optional[int] = None
    tenant_id: str = ""
    tx_id: Optional[int] = None
    charge_box_id: str = ""
    connector_id: int = 0
    timestamp: Optional[datetime] = None
    measurand: str = ""
    value: float = 0.0
    unit: str = "Wh"
    context: str = "Sample.Periodic"
    created_at: Optional[datetime] = None


@dataclass
class Consumption:
    """Consumption interval derived from two consecutive energy readings."""

    id: Optional[int] = None
    tenant_id: str = ""
    tx_id: Optional[int] = None
    charge_box_id: str = ""
    connector_id: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    consumption_wh: float = 0.0
    cumulated_consumption_wh: float = 0.0
    instant_watts: float = 0.0


@dataclass
class RefundReport:
    """Refunded transactions grouped under one report."""

    id: str
    user_id: Optional[str] = None
    transaction_count: int = 0
    total_consumption_wh: float = 0.0
    total_price: float = 0.0


@dataclass
class DbParams:
    """Pagination and sort options for store queries."""

    limit: int = 100
    skip: int = 0
    sort: Optional[str] = None
    only_record_count: bool = False


@dataclass
class DataResult:
    """Paginated query result."""

    count: int = 0
    result: list[Any] = field(default_factory=list)
    stats: Optional[dict[str, Any]] = None


@dataclass
class ActionsResponse:
    """Aggregated outcome of a batch operation."""

    in_success: int = 0
    in_error: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"inSuccess": self.in_success, "inError": self.in_error}


@dataclass
class TransactionFilter:
    """Canonical filter understood by the transaction store."""

    completed: Optional[bool] = None
    issuer: Optional[bool] = None
    charge_box_ids: Optional[list[str]] = None
    connector_id: Optional[int] = None
    user_ids: Optional[list[str]] = None
    tag_ids: Optional[list[str]] = None
    owner_id: Optional[str] = None
    site_area_ids: Optional[list[str]] = None
    site_ids: Optional[list[str]] = None
    site_admin_ids: Optional[list[str]] = None
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    refund_status: Optional[list[str]] = None
    minimal_price: Optional[float] = None
    statistics: Optional[str] = None
    search: Optional[str] = None
    report_ids: Optional[list[str]] = None
    inactivity_status: Optional[list[str]] = None
    error_types: Optional[list[str]] = None
