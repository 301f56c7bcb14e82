"""Role based capability checks for transaction operations."""

import logging

from .errors import AuthorizationError
from .models import Action, Entity, TenantComponent, Transaction, UserRole, UserToken

logger = logging.getLogger(__name__)

_ROLE_GRANTS: dict[str, dict[Entity, set[Action]]] = {
    UserRole.ADMIN.value: {
        Entity.TRANSACTION: {
            Action.READ,
            Action.UPDATE,
            Action.DELETE,
            Action.REFUND_TRANSACTION,
        },
        Entity.TRANSACTIONS: {Action.LIST},
        Entity.TRANSACTIONS_IN_ERROR: {Action.LIST},
    },
    UserRole.BASIC.value: {
        Entity.TRANSACTION: {Action.READ, Action.REFUND_TRANSACTION},
        Entity.TRANSACTIONS: {Action.LIST},
    },
    UserRole.DEMO.value: {
        Entity.TRANSACTION: {Action.READ},
        Entity.TRANSACTIONS: {Action.LIST},
    },
    UserRole.SUPER_ADMIN.value: {},
}

# Extra capabilities of users administering at least one site
_SITE_ADMIN_GRANTS: dict[Entity, set[Action]] = {
    Entity.TRANSACTION: {Action.READ, Action.REFUND_TRANSACTION},
    Entity.TRANSACTIONS_IN_ERROR: {Action.LIST},
}


class Authorizations:
    """
    Capability checker consulted by the transaction service.

    Admins act on every transaction of their tenant and demo users read all
    of them. Basic users act on the transactions they own, plus the
    transactions of the sites they administer when the organization
    component is active.
    """

    def is_admin(self, user_token: UserToken) -> bool:
        return user_token.role == UserRole.ADMIN.value

    def is_basic(self, user_token: UserToken) -> bool:
        return user_token.role == UserRole.BASIC.value

    def is_demo(self, user_token: UserToken) -> bool:
        return user_token.role == UserRole.DEMO.value

    def can(
        self,
        user_token: UserToken,
        action: Action,
        entity: Entity,
        instance: Transaction | None = None,
    ) -> bool:
        """Return True when the caller may perform ``action`` on ``entity``."""
        grants = _ROLE_GRANTS.get(user_token.role, {}).get(entity, set())
        via_site_admin = False
        if action not in grants:
            if not user_token.site_admin_ids or action not in _SITE_ADMIN_GRANTS.get(entity, set()):
                return False
            via_site_admin = True

        if instance is None or self.is_admin(user_token):
            return True
        # Demo users read every transaction; identity is redacted on output
        if self.is_demo(user_token) and action is Action.READ:
            return True

        if not via_site_admin and instance.user_id == user_token.id:
            return True
        return bool(instance.site_id) and instance.site_id in user_token.site_admin_ids

    def assert_can(
        self,
        user_token: UserToken,
        action: Action,
        entity: Entity,
        instance: Transaction | None = None,
        value: str | None = None,
        module: str | None = None,
        method: str | None = None,
    ) -> None:
        """Raise AuthorizationError when the capability check fails."""
        if self.can(user_token, action, entity, instance):
            return
        logger.warning(
            f"User '{user_token.id}' denied '{action.value}' on '{entity.value}'",
            extra={
                "event_type": "authorization_denied",
                "event_data": {
                    "tenant_id": user_token.tenant_id,
                    "user": user_token.id,
                    "action": action.value,
                    "entity": entity.value,
                    "value": value,
                    "module": module,
                    "method": method,
                },
            },
        )
        raise AuthorizationError(
            user_token.id,
            action.value,
            entity.value,
            value=value,
            module=module,
            method=method,
        )

    def get_authorized_site_admin_ids(
        self, user_token: UserToken, requested_site_ids: list[str] | None = None
    ) -> list[str] | None:
        """
        Scope a list of site IDs to what the caller administers.

        Returns None when no site restriction applies (organization component
        inactive, or an admin not asking for specific sites).
        """
        if not user_token.is_component_active(TenantComponent.ORGANIZATION):
            return None
        if self.is_admin(user_token):
            return requested_site_ids
        if requested_site_ids:
            return [s for s in requested_site_ids if s in user_token.site_admin_ids]
        return list(user_token.site_admin_ids) or None
