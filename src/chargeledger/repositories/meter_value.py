"""Repository for meter value operations."""

from ..models import MeterValue
from .base import BaseRepository

ENERGY_MEASURAND = "Energy.Active.Import.Register"


class MeterValueRepository(BaseRepository):
    """Handles database operations for raw meter values."""

    async def create_batch(self, meter_values: list[MeterValue]):
        """Create multiple meter value records efficiently."""
        query = """
            INSERT INTO meter_val (
                tenant_id, tx_id, charge_box_id, connector_id, timestamp,
                measurand, value, unit, context
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        params = [
            (
                mv.tenant_id,
                mv.tx_id,
                mv.charge_box_id,
                mv.connector_id,
                mv.timestamp,
                mv.measurand,
                mv.value,
                mv.unit,
                mv.context,
            )
            for mv in meter_values
        ]

        await self.conn.executemany(query, params)
        await self.conn.commit()

    async def get_energy_for_transaction(self, tenant_id: str, tx_id: int) -> list[MeterValue]:
        """Get energy register readings of a transaction in chronological order."""
        rows = await self._fetchall(
            """
            SELECT * FROM meter_val
            WHERE tenant_id = ? AND tx_id = ? AND measurand = ?
            ORDER BY timestamp ASC, id ASC
            """,
            (tenant_id, tx_id, ENERGY_MEASURAND),
        )
        return [self._row_to_model(row) for row in rows]

    async def get_last_for_transaction(self, tenant_id: str, tx_id: int) -> MeterValue | None:
        """Get the last (most recent) energy reading for a transaction."""
        row = await self._fetchone(
            """
            SELECT * FROM meter_val
            WHERE tenant_id = ? AND tx_id = ? AND measurand = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            (tenant_id, tx_id, ENERGY_MEASURAND),
        )
        if row:
            return self._row_to_model(row)
        return None

    def _row_to_model(self, row) -> MeterValue:
        """Convert database row to MeterValue model."""
        return MeterValue(
            id=row["id"],
            tenant_id=row["tenant_id"],
            tx_id=row["tx_id"],
            charge_box_id=row["charge_box_id"],
            connector_id=row["connector_id"],
            timestamp=row["timestamp"],
            measurand=row["measurand"],
            value=row["value"],
            unit=row["unit"],
            context=row["context"],
            created_at=row["created_at"],
        )
