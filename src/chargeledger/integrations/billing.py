"""Billing integrations."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import aiosqlite

from ..models import BillingData, Tenant, Transaction
from ..repositories import TransactionRepository


class BillingIntegration(ABC):
    """
    Base class for billing integrations.

    The transaction service only uses a billing integration as a read-only
    oracle: a transaction carrying an invoice must not be deleted.
    """

    def __init__(self, tenant: Tenant, settings: dict[str, Any], connection: aiosqlite.Connection):
        self.tenant = tenant
        self.settings = settings
        self.tx_repo = TransactionRepository(connection)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def is_transaction_billed(self, transaction: Transaction) -> bool:
        return bool(transaction.billing_data and transaction.billing_data.invoice_id)

    @abstractmethod
    async def bill_transaction(self, tenant_id: str, transaction: Transaction) -> BillingData:
        """Attach an invoice to a completed transaction and persist it."""


class ManualBillingIntegration(BillingIntegration):
    """Invoices numbered locally as ``<prefix>-<transaction id>``."""

    async def bill_transaction(self, tenant_id: str, transaction: Transaction) -> BillingData:
        if self.is_transaction_billed(transaction):
            return transaction.billing_data
        prefix = self.settings.get("invoice_prefix", "INV")
        transaction.billing_data = BillingData(invoice_id=f"{prefix}-{transaction.id}")
        await self.tx_repo.save(transaction)
        self.logger.info(
            f"Transaction '{transaction.id}' billed with invoice "
            f"'{transaction.billing_data.invoice_id}'"
        )
        return transaction.billing_data
