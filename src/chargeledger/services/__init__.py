"""Transaction services."""

from .consumption import ConsumptionService
from .export import convert_to_csv
from .transaction_service import REST_RESPONSE_SUCCESS, TransactionService

__all__ = [
    "ConsumptionService",
    "REST_RESPONSE_SUCCESS",
    "TransactionService",
    "convert_to_csv",
]
