"""Per-tenant resolution of refund, billing and roaming integrations."""

import logging
from typing import Any

import aiosqlite

from ..models import Tenant, TenantComponent
from ..repositories import TenantRepository
from .billing import BillingIntegration, ManualBillingIntegration
from .refund import ManualRefundIntegration, RefundIntegration
from .roaming import RoamingIntegration

logger = logging.getLogger(__name__)

REFUND_INTEGRATIONS: dict[str, type[RefundIntegration]] = {
    "manual": ManualRefundIntegration,
}
BILLING_INTEGRATIONS: dict[str, type[BillingIntegration]] = {
    "manual": ManualBillingIntegration,
}
ROAMING_INTEGRATIONS: dict[str, type[RoamingIntegration]] = {}


class IntegrationFactory:
    """
    Builds and caches the integrations configured for each tenant.

    A tenant component looks like ``{"active": True, "type": "manual", ...}``.
    The ``type`` selects the implementation class from the matching registry
    (``REFUND_INTEGRATIONS``, ``BILLING_INTEGRATIONS``,
    ``ROAMING_INTEGRATIONS``); the whole component dict is handed to the
    implementation as settings.
    An inactive component, a missing ``type`` or an unregistered ``type``
    resolves to None and callers treat the integration as absent.
    """

    def __init__(self, connection: aiosqlite.Connection):
        self.connection = connection
        self.tenant_repo = TenantRepository(connection)
        self._cache: dict[tuple[str, str], Any] = {}

    async def get_refund_impl(self, tenant_id: str) -> RefundIntegration | None:
        return await self._get_impl(tenant_id, TenantComponent.REFUND, REFUND_INTEGRATIONS)

    async def get_billing_impl(self, tenant_id: str) -> BillingIntegration | None:
        return await self._get_impl(tenant_id, TenantComponent.BILLING, BILLING_INTEGRATIONS)

    async def get_roaming_impl(self, tenant_id: str) -> RoamingIntegration | None:
        return await self._get_impl(tenant_id, TenantComponent.OCPI, ROAMING_INTEGRATIONS)

    def clear(self, tenant_id: str | None = None):
        """Drop cached integrations, for one tenant or for all of them."""
        if tenant_id is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == tenant_id]:
            del self._cache[key]

    async def _get_impl(self, tenant_id: str, component: TenantComponent, registry: dict):
        key = (tenant_id, component.value)
        if key in self._cache:
            return self._cache[key]

        tenant = await self.tenant_repo.get_by_id(tenant_id)
        impl = self._build(tenant, component, registry) if tenant else None
        return self._cache.setdefault(key, impl)

    def _build(self, tenant: Tenant, component: TenantComponent, registry: dict):
        if not tenant.is_component_active(component):
            return None
        settings = tenant.components[component.value]
        type_name = settings.get("type")
        cls = registry.get(type_name)
        if cls is None:
            logger.warning(
                f"No {component.value} integration registered for type '{type_name}'",
                extra={
                    "event_type": "integration_not_found",
                    "event_data": {
                        "tenant_id": tenant.id,
                        "component": component.value,
                        "type": type_name,
                    },
                },
            )
            return None
        return cls(tenant, settings, self.connection)
