"""
chargeledger - Charging transaction lifecycle service with SQLite storage

Refund submission, CDR push, safe deletion and reporting of electric
vehicle charging transactions for a multi-tenant backend, using aiosqlite
for persistence.
"""

__version__ = "0.1.0"

from .database import Database
from .services import TransactionService
from .tasks import SynchronizeRefundTransactionsTask

__all__ = ["Database", "SynchronizeRefundTransactionsTask", "TransactionService"]
