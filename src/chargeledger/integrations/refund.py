"""Refund integrations."""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from ..logging_utils import log_actions_response, log_error
from ..models import (
    ActionsResponse,
    RefundData,
    RefundStatus,
    ServerAction,
    Tenant,
    Transaction,
)
from ..repositories import TransactionRepository

MODULE_NAME = "RefundIntegration"

logger = logging.getLogger(__name__)


class RefundIntegration(ABC):
    """
    Base class for refund integrations.

    A refund integration submits completed transactions to an external
    expense system and later reconciles the external state of the submitted
    refunds with the local ``refund_data``.

    Subclasses implement:
    - ``refund()``: submit transactions, return those that were accepted
    - ``fetch_refund_status()``: read the external status of one refund
    """

    def __init__(self, tenant: Tenant, settings: dict[str, Any], connection: aiosqlite.Connection):
        self.tenant = tenant
        self.settings = settings
        self.tx_repo = TransactionRepository(connection)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def refund(
        self, tenant_id: str, user_id: str, transactions: list[Transaction]
    ) -> list[Transaction]:
        """
        Submit transactions for refund.

        Args:
            tenant_id: Tenant owning the transactions
            user_id: ID of the user requesting the refund
            transactions: Transactions eligible for refund

        Returns:
            The transactions the external system accepted.
        """

    @abstractmethod
    async def fetch_refund_status(self, tenant_id: str, refund_data: RefundData) -> str | None:
        """Return the external status of a refund, or None when it is unknown."""

    def can_be_deleted(self, transaction: Transaction) -> bool:
        """A transaction holding a live refund reference must be kept."""
        return not (transaction.refund_data and transaction.refund_data.is_refunded)

    async def synchronize(self, tenant_id: str) -> ActionsResponse:
        """Reconcile every submitted refund of the tenant with the external state."""
        result = ActionsResponse()
        for transaction in await self.tx_repo.get_submitted_refunds(tenant_id):
            try:
                status = await self.fetch_refund_status(tenant_id, transaction.refund_data)
                if status and status != transaction.refund_data.status:
                    transaction.refund_data.status = status
                    await self.tx_repo.save(transaction)
                    result.in_success += 1
            except Exception as e:
                result.in_error += 1
                log_error(
                    logger,
                    "refund_synchronization_error",
                    f"Failed to synchronize refund of transaction '{transaction.id}': {e}",
                    tenant_id=tenant_id,
                    transaction_id=transaction.id,
                    refund_id=transaction.refund_data.refund_id,
                    exc_info=e,
                )

        log_actions_response(
            logger,
            tenant_id,
            ServerAction.SYNCHRONIZE_REFUNDED_TRANSACTIONS,
            MODULE_NAME,
            "synchronize",
            result,
            "{in_success} refunded transaction(s) have been synchronized",
            "{in_error} refunded transaction(s) failed to be synchronized",
            "{in_success} refunded transaction(s) have been synchronized and {in_error} failed",
            "No refunded transaction needed to be synchronized",
        )
        return result


class ManualRefundIntegration(RefundIntegration):
    """
    Refunds handled by the tenant's own accounting team.

    Submitting a transaction stores a local refund reference with status
    SUBMITTED. Once accounting attaches the refund to a report the refund is
    considered approved by the next synchronization.
    """

    async def refund(
        self, tenant_id: str, user_id: str, transactions: list[Transaction]
    ) -> list[Transaction]:
        refunded = []
        for transaction in transactions:
            transaction.refund_data = RefundData(
                refund_id=uuid.uuid4().hex,
                status=RefundStatus.SUBMITTED.value,
                refunded_at=datetime.now(UTC),
            )
            await self.tx_repo.save(transaction)
            refunded.append(transaction)
            self.logger.info(
                f"Transaction '{transaction.id}' submitted for refund by user '{user_id}'",
                extra={
                    "event_type": "refund_submitted",
                    "event_data": {
                        "tenant_id": tenant_id,
                        "transaction_id": transaction.id,
                        "refund_id": transaction.refund_data.refund_id,
                    },
                },
            )
        return refunded

    async def fetch_refund_status(self, tenant_id: str, refund_data: RefundData) -> str | None:
        if refund_data.report_id:
            return RefundStatus.APPROVED.value
        return None
