from .charging_station import ChargingStationRepository
from .consumption import ConsumptionRepository
from .meter_value import MeterValueRepository
from .tenant import TenantRepository
from .transaction import TransactionRepository
from .user import UserRepository

__all__ = [
    "ChargingStationRepository",
    "ConsumptionRepository",
    "MeterValueRepository",
    "TenantRepository",
    "TransactionRepository",
    "UserRepository",
]
