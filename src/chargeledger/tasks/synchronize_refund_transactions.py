"""Scheduled reconciliation of submitted refunds with the refund integrations."""

import logging

import aiosqlite

from ..integrations import IntegrationFactory
from ..logging_utils import log_action, log_error
from ..models import ActionsResponse, ServerAction, Tenant, TenantComponent
from ..plugins.base import PluginHost, ServiceHook, ServicePlugin
from ..repositories import TenantRepository

MODULE_NAME = "SynchronizeRefundTransactionsTask"

logger = logging.getLogger(__name__)


class SynchronizeRefundTransactionsTask(PluginHost):
    """
    Asks each tenant's refund integration to reconcile its submitted refunds.

    The task keeps no state between runs: refunds that could not be
    synchronized stay SUBMITTED and are retried on the next run.
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        integration_factory: IntegrationFactory | None = None,
        plugins: list[ServicePlugin] | None = None,
    ):
        self.tenant_repo = TenantRepository(connection)
        self.integrations = integration_factory or IntegrationFactory(connection)
        self._register_plugins(plugins)

    async def process_tenant(self, tenant: Tenant) -> ActionsResponse | None:
        """
        Synchronize the refunds of one tenant.

        Returns:
            The integration's outcome, or None when the tenant has no active
            and configured refund integration.
        """
        if not tenant.is_component_active(TenantComponent.REFUND):
            logger.debug(f"Refund component inactive for tenant '{tenant.id}', skipping")
            return None

        refund_impl = await self.integrations.get_refund_impl(tenant.id)
        if refund_impl is None:
            log_action(
                logger,
                logging.WARNING,
                tenant.id,
                ServerAction.SYNCHRONIZE_REFUNDED_TRANSACTIONS,
                "No refund implementation configured, refunds not synchronized",
                module=MODULE_NAME,
                method="process_tenant",
            )
            return None

        request_data = {"operation": "synchronize_refunds"}
        await self._execute_plugin_hooks(
            ServiceHook.BEFORE_SYNCHRONIZE_REFUNDS, tenant.id, None, request_data
        )
        result = await refund_impl.synchronize(tenant.id)
        await self._execute_plugin_hooks(
            ServiceHook.AFTER_SYNCHRONIZE_REFUNDS, tenant.id, None, request_data, result.to_dict()
        )
        return result

    async def run(self, tenant_ids: list[str] | None = None) -> dict[str, ActionsResponse]:
        """
        Synchronize every tenant, or only the listed ones.

        A failing tenant is logged and does not prevent the others from
        being processed.
        """
        results: dict[str, ActionsResponse] = {}
        for tenant in await self.tenant_repo.get_all():
            if tenant_ids and tenant.id not in tenant_ids:
                continue
            try:
                result = await self.process_tenant(tenant)
            except Exception as e:
                log_error(
                    logger,
                    "tenant_sync_error",
                    f"Failed to synchronize refunds of tenant '{tenant.id}': {e}",
                    tenant_id=tenant.id,
                    exc_info=e,
                )
                continue
            if result is not None:
                results[tenant.id] = result
        return results
