"""Plugin for structured audit logging to Fluentd."""

import asyncio
from typing import Any

from fluent import sender

from .base import PluginContext, ServiceHook, ServicePlugin


class FluentdAuditPlugin(ServicePlugin):
    """
    Sends structured audit records of state-changing operations to Fluentd.

    Every mutating transaction operation (deletion, refund, CDR push, soft
    stop, consumption rebuild, refund synchronization) is recorded once it
    completes, together with the caller and the outcome.

    Example log entry:
    {
        "type": "audit",
        "tenant": "t1",
        "user": "u42",
        "operation": "delete_transactions",
        "request": {"transactionIds": [501, 502, 503]},
        "result": {"status": "Success", "inSuccess": 2, "inError": 1}
    }
    """

    def __init__(
        self,
        tag_prefix: str = "chargeledger",
        host: str = "localhost",
        port: int = 24224,
        timeout: float = 3.0,
        buffer_overflow_handler: Any = None,
        nanosecond_precision: bool = False,
    ):
        """
        Initialize the Fluentd audit plugin.

        Args:
            tag_prefix: Prefix for Fluentd tags (default: "chargeledger")
                       Tags will be: chargeledger.transaction.delete, etc.
            host: Fluentd server hostname (default: "localhost")
            port: Fluentd server port (default: 24224)
            timeout: Connection timeout in seconds (default: 3.0)
            buffer_overflow_handler: Handler for buffer overflow (default: None)
            nanosecond_precision: Use nanosecond precision timestamps (default: False)
        """
        super().__init__()
        self.tag_prefix = tag_prefix
        self.host = host
        self.port = port
        self.timeout = timeout
        self.buffer_overflow_handler = buffer_overflow_handler
        self.nanosecond_precision = nanosecond_precision
        self.sender = None

    def hooks(self) -> dict[ServiceHook, str]:
        return {
            ServiceHook.AFTER_DELETE_TRANSACTIONS: "log_delete_transactions",
            ServiceHook.AFTER_REFUND_TRANSACTIONS: "log_refund_transactions",
            ServiceHook.AFTER_PUSH_CDR: "log_push_cdr",
            ServiceHook.AFTER_SOFT_STOP: "log_soft_stop",
            ServiceHook.AFTER_REBUILD_CONSUMPTIONS: "log_rebuild_consumptions",
            ServiceHook.AFTER_SYNCHRONIZE_REFUNDS: "log_synchronize_refunds",
        }

    async def initialize(self):
        """Initialize Fluentd sender."""
        try:
            self.sender = sender.FluentSender(
                self.tag_prefix,
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                buffer_overflow_handler=self.buffer_overflow_handler,
                nanosecond_precision=self.nanosecond_precision,
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize Fluentd sender: {e}", exc_info=True)
            self.sender = None

    async def cleanup(self):
        """Close Fluentd sender."""
        if self.sender:
            try:
                await asyncio.to_thread(self.sender.close)
            except Exception as e:
                self.logger.error(f"Error closing Fluentd sender: {e}", exc_info=True)

    async def _send_event(self, tag: str, data: dict):
        """
        Send an event to Fluentd without blocking the event loop.

        Args:
            tag: Event tag (e.g., "transaction.delete", "refund.sync")
            data: Event data dictionary
        """
        if not self.sender:
            return

        try:
            await asyncio.to_thread(self.sender.emit, tag, data)
        except Exception as e:
            self.logger.error(f"Failed to send event to Fluentd (tag={tag}): {e}")

    def _audit_event_data(self, context: PluginContext) -> dict:
        request = {k: v for k, v in context.request_data.items() if k != "operation"}
        data = {
            "type": "audit",
            "tenant": context.tenant_id,
            "operation": context.request_data.get("operation"),
            "request": request,
            "result": context.result,
        }
        if context.user_token is not None:
            data["user"] = context.user_token.id
        return data

    async def log_delete_transactions(self, context: PluginContext):
        await self._send_event("transaction.delete", self._audit_event_data(context))

    async def log_refund_transactions(self, context: PluginContext):
        await self._send_event("transaction.refund", self._audit_event_data(context))

    async def log_push_cdr(self, context: PluginContext):
        await self._send_event("transaction.cdr", self._audit_event_data(context))

    async def log_soft_stop(self, context: PluginContext):
        await self._send_event("transaction.soft_stop", self._audit_event_data(context))

    async def log_rebuild_consumptions(self, context: PluginContext):
        await self._send_event("transaction.consumptions", self._audit_event_data(context))

    async def log_synchronize_refunds(self, context: PluginContext):
        await self._send_event("refund.sync", self._audit_event_data(context))
