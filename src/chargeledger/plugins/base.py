"""Base plugin infrastructure for the transaction service."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..logging_utils import log_error
from ..models import UserToken

logger = logging.getLogger(__name__)


class ServiceHook(str, Enum):
    """
    Available plugin hooks in the transaction lifecycle.

    Hooks are called at specific points during operation processing:
    - BEFORE_*: Called once the request is validated and authorized
    - AFTER_*: Called after the operation completes successfully
    """

    # Deletion hooks
    BEFORE_DELETE_TRANSACTIONS = "before_delete_transactions"
    AFTER_DELETE_TRANSACTIONS = "after_delete_transactions"

    # Refund hooks
    BEFORE_REFUND_TRANSACTIONS = "before_refund_transactions"
    AFTER_REFUND_TRANSACTIONS = "after_refund_transactions"

    # Roaming hooks
    BEFORE_PUSH_CDR = "before_push_cdr"
    AFTER_PUSH_CDR = "after_push_cdr"

    # Soft stop hooks
    BEFORE_SOFT_STOP = "before_soft_stop"
    AFTER_SOFT_STOP = "after_soft_stop"

    # Consumption hooks
    BEFORE_REBUILD_CONSUMPTIONS = "before_rebuild_consumptions"
    AFTER_REBUILD_CONSUMPTIONS = "after_rebuild_consumptions"

    # Refund synchronization hooks
    BEFORE_SYNCHRONIZE_REFUNDS = "before_synchronize_refunds"
    AFTER_SYNCHRONIZE_REFUNDS = "after_synchronize_refunds"


@dataclass
class PluginContext:
    """
    Context provided to plugin hooks.

    Contains:
    - tenant_id: Tenant the operation runs for
    - user_token: The caller (None for scheduled tasks)
    - request_data: The operation input (transaction IDs, filters, ...)
    - result: The operation result (only available in AFTER hooks)
    """

    tenant_id: str
    user_token: UserToken | None
    request_data: dict[str, Any]
    result: Any = None


class ServicePlugin(ABC):
    """
    Base class for transaction service plugins.

    To create a plugin:
    1. Subclass ServicePlugin
    2. Implement the `hooks()` method to register your hook handlers
    3. Implement async methods for each hook you want to handle

    Example:
        class MyPlugin(ServicePlugin):
            def hooks(self) -> dict[ServiceHook, str]:
                return {
                    ServiceHook.AFTER_DELETE_TRANSACTIONS: "on_deleted"
                }

            async def on_deleted(self, context: PluginContext):
                logger.info(f"Deleted {context.result['inSuccess']} transactions")
    """

    def __init__(self):
        """Initialize the plugin."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def hooks(self) -> dict[ServiceHook, str]:
        """
        Return a mapping of hooks to handler method names.

        Returns:
            Dictionary mapping ServiceHook enum values to method names on this class.
        """

    async def initialize(self):
        """Called once before the host starts serving. Override for setup logic."""

    async def cleanup(self):
        """Called when the host shuts down. Override for teardown logic."""


class PluginHost:
    """
    Mixin running plugin hooks around service operations.

    Plugin failures are logged and never interrupt the operation.
    """

    def _register_plugins(self, plugins: list[ServicePlugin] | None):
        """Register all plugins and build hook mapping."""
        self.plugins: list[ServicePlugin] = plugins or []
        self._plugin_hooks: dict[ServiceHook, list[tuple[ServicePlugin, str]]] = {}
        for plugin in self.plugins:
            try:
                hooks = plugin.hooks()
                for hook, method_name in hooks.items():
                    self._plugin_hooks.setdefault(hook, []).append((plugin, method_name))
            except Exception as e:
                log_error(
                    logger,
                    "plugin_registration_error",
                    f"Failed to register plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def initialize_plugins(self):
        for plugin in self.plugins:
            try:
                await plugin.initialize()
            except Exception as e:
                log_error(
                    logger,
                    "plugin_initialization_error",
                    f"Failed to initialize plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def cleanup_plugins(self):
        for plugin in self.plugins:
            try:
                await plugin.cleanup()
            except Exception as e:
                log_error(
                    logger,
                    "plugin_cleanup_error",
                    f"Failed to clean up plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def _execute_plugin_hooks(
        self,
        hook: ServiceHook,
        tenant_id: str,
        user_token: UserToken | None,
        request_data: dict,
        result=None,
    ):
        """
        Execute all registered plugin hooks for a given lifecycle point.

        Args:
            hook: The hook point to execute
            tenant_id: Tenant the operation runs for
            user_token: The caller
            request_data: The operation input
            result: The operation result (for AFTER hooks)
        """
        if hook not in self._plugin_hooks:
            return

        context = PluginContext(
            tenant_id=tenant_id,
            user_token=user_token,
            request_data=request_data,
            result=result,
        )

        for plugin, method_name in self._plugin_hooks[hook]:
            try:
                method = getattr(plugin, method_name)
                await method(context)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_execution_error",
                    f"Error executing {plugin.__class__.__name__}.{method_name} for hook {hook.value}: {e}",
                    tenant_id=tenant_id,
                    plugin=plugin.__class__.__name__,
                    hook=hook.value,
                    method=method_name,
                    exc_info=e,
                )
