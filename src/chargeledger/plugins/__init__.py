"""Plugin framework for extending the transaction service."""

from .base import PluginContext, PluginHost, ServiceHook, ServicePlugin
from .fluentd_audit import FluentdAuditPlugin
from .prometheus_metrics import PrometheusMetricsPlugin

__all__ = [
    "FluentdAuditPlugin",
    "PluginContext",
    "PluginHost",
    "PrometheusMetricsPlugin",
    "ServiceHook",
    "ServicePlugin",
]
