"""Refund, billing and roaming integrations."""

from .billing import BillingIntegration, ManualBillingIntegration
from .factory import IntegrationFactory
from .refund import ManualRefundIntegration, RefundIntegration
from .roaming import RoamingIntegration

__all__ = [
    "BillingIntegration",
    "IntegrationFactory",
    "ManualBillingIntegration",
    "ManualRefundIntegration",
    "RefundIntegration",
    "RoamingIntegration",
]
