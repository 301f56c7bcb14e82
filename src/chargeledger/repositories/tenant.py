"""Repository for tenant operations."""

import json

from ..models import Tenant
from .base import BaseRepository


class TenantRepository(BaseRepository):
    """Handles database operations for tenants."""

    async def save(self, tenant: Tenant) -> Tenant:
        """Insert or update a tenant."""
        await self._execute_and_commit(
            """
            INSERT INTO tenant (id, name, subdomain, components, updated_at)
            VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                subdomain = excluded.subdomain,
                components = excluded.components,
                updated_at = CURRENT_TIMESTAMP
            """,
            (tenant.id, tenant.name, tenant.subdomain, json.dumps(tenant.components)),
        )
        return tenant

    async def get_by_id(self, tenant_id: str) -> Tenant | None:
        """Get tenant by ID."""
        row = await self._fetchone("SELECT * FROM tenant WHERE id = ?", (tenant_id,))
        if row:
            return self._row_to_model(row)
        return None

    async def get_all(self) -> list[Tenant]:
        """Get all tenants."""
        rows = await self._fetchall("SELECT * FROM tenant ORDER BY id")
        return [self._row_to_model(row) for row in rows]

    def _row_to_model(self, row) -> Tenant:
        """Convert database row to Tenant model."""
        return Tenant(
            id=row["id"],
            name=row["name"],
            subdomain=row["subdomain"],
            components=json.loads(row["components"] or "{}"),
        )
