"""Plugin for Prometheus metrics instrumentation."""

import time

from prometheus_client import Counter, Gauge, Histogram

from .base import PluginContext, ServiceHook, ServicePlugin


class PrometheusMetricsPlugin(ServicePlugin):
    """
    Exposes Prometheus metrics for the transaction service.

    This plugin tracks:
    - Operation latency per tenant
    - Batch outcomes (deletions, refunds, refund synchronizations)
    - CDR pushes, soft stops and consumption rebuilds

    Metrics are exposed via the standard prometheus_client registry.
    Use prometheus_client.start_http_server() or generate_latest() to expose /metrics.
    """

    # Class-level metrics (shared across all plugin instances)

    chargeledger_up = Gauge(
        "chargeledger_up",
        "1 if the transaction service is running, 0 otherwise",
    )

    chargeledger_operation_seconds = Histogram(
        "chargeledger_operation_seconds",
        "Transaction service operation duration in seconds",
        labelnames=["tenant_id", "operation"],
    )

    chargeledger_tx_deleted_total = Counter(
        "chargeledger_tx_deleted_total",
        "Total number of deleted transactions",
        labelnames=["tenant_id"],
    )

    chargeledger_tx_delete_errors_total = Counter(
        "chargeledger_tx_delete_errors_total",
        "Total number of transactions that could not be deleted",
        labelnames=["tenant_id"],
    )

    chargeledger_tx_refunded_total = Counter(
        "chargeledger_tx_refunded_total",
        "Total number of transactions submitted for refund",
        labelnames=["tenant_id"],
    )

    chargeledger_tx_refund_errors_total = Counter(
        "chargeledger_tx_refund_errors_total",
        "Total number of transactions rejected by the refund integration",
        labelnames=["tenant_id"],
    )

    chargeledger_cdr_pushed_total = Counter(
        "chargeledger_cdr_pushed_total",
        "Total number of CDRs pushed to the roaming partner",
        labelnames=["tenant_id"],
    )

    chargeledger_tx_soft_stopped_total = Counter(
        "chargeledger_tx_soft_stopped_total",
        "Total number of transactions stopped by an operator",
        labelnames=["tenant_id"],
    )

    chargeledger_consumptions_rebuilt_total = Counter(
        "chargeledger_consumptions_rebuilt_total",
        "Total number of consumption intervals rebuilt",
        labelnames=["tenant_id"],
    )

    chargeledger_refunds_synchronized_total = Counter(
        "chargeledger_refunds_synchronized_total",
        "Total number of refund reconciliations",
        labelnames=["tenant_id", "outcome"],
    )

    def __init__(self):
        """Initialize the Prometheus metrics plugin."""
        super().__init__()
        self.chargeledger_up.set(1)
        # Track operation start times for histogram
        self._operation_start_times = {}

    def hooks(self) -> dict[ServiceHook, str]:
        """Register hooks for every instrumented operation."""
        return {
            ServiceHook.BEFORE_DELETE_TRANSACTIONS: "before_operation",
            ServiceHook.AFTER_DELETE_TRANSACTIONS: "after_delete_transactions",
            ServiceHook.BEFORE_REFUND_TRANSACTIONS: "before_operation",
            ServiceHook.AFTER_REFUND_TRANSACTIONS: "after_refund_transactions",
            ServiceHook.BEFORE_PUSH_CDR: "before_operation",
            ServiceHook.AFTER_PUSH_CDR: "after_push_cdr",
            ServiceHook.BEFORE_SOFT_STOP: "before_operation",
            ServiceHook.AFTER_SOFT_STOP: "after_soft_stop",
            ServiceHook.BEFORE_REBUILD_CONSUMPTIONS: "before_operation",
            ServiceHook.AFTER_REBUILD_CONSUMPTIONS: "after_rebuild_consumptions",
            ServiceHook.BEFORE_SYNCHRONIZE_REFUNDS: "before_operation",
            ServiceHook.AFTER_SYNCHRONIZE_REFUNDS: "after_synchronize_refunds",
        }

    async def cleanup(self):
        self.chargeledger_up.set(0)

    # Helper methods

    def _get_operation(self, context: PluginContext) -> str:
        return context.request_data.get("operation", "unknown")

    def _result_count(self, context: PluginContext, key: str) -> int:
        if isinstance(context.result, dict):
            return int(context.result.get(key) or 0)
        return 0

    # Hook handlers

    async def before_operation(self, context: PluginContext):
        """Record operation start time for latency tracking."""
        key = (context.tenant_id, self._get_operation(context))
        self._operation_start_times[key] = time.time()

    async def after_operation(self, context: PluginContext):
        """Record operation duration."""
        operation = self._get_operation(context)
        key = (context.tenant_id, operation)

        if key in self._operation_start_times:
            duration = time.time() - self._operation_start_times.pop(key)
            self.chargeledger_operation_seconds.labels(
                tenant_id=context.tenant_id,
                operation=operation,
            ).observe(duration)

    async def after_delete_transactions(self, context: PluginContext):
        await self.after_operation(context)
        self.chargeledger_tx_deleted_total.labels(tenant_id=context.tenant_id).inc(
            self._result_count(context, "inSuccess")
        )
        self.chargeledger_tx_delete_errors_total.labels(tenant_id=context.tenant_id).inc(
            self._result_count(context, "inError")
        )

    async def after_refund_transactions(self, context: PluginContext):
        await self.after_operation(context)
        self.chargeledger_tx_refunded_total.labels(tenant_id=context.tenant_id).inc(
            self._result_count(context, "inSuccess")
        )
        self.chargeledger_tx_refund_errors_total.labels(tenant_id=context.tenant_id).inc(
            self._result_count(context, "inError")
        )

    async def after_push_cdr(self, context: PluginContext):
        await self.after_operation(context)
        self.chargeledger_cdr_pushed_total.labels(tenant_id=context.tenant_id).inc()

    async def after_soft_stop(self, context: PluginContext):
        await self.after_operation(context)
        self.chargeledger_tx_soft_stopped_total.labels(tenant_id=context.tenant_id).inc()

    async def after_rebuild_consumptions(self, context: PluginContext):
        await self.after_operation(context)
        self.chargeledger_consumptions_rebuilt_total.labels(tenant_id=context.tenant_id).inc(
            self._result_count(context, "nbrOfConsumptions")
        )

    async def after_synchronize_refunds(self, context: PluginContext):
        await self.after_operation(context)
        self.chargeledger_refunds_synchronized_total.labels(
            tenant_id=context.tenant_id, outcome="success"
        ).inc(self._result_count(context, "inSuccess"))
        self.chargeledger_refunds_synchronized_total.labels(
            tenant_id=context.tenant_id, outcome="error"
        ).inc(self._result_count(context, "inError"))
