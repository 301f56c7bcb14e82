"""Repository for consumption operations."""

from datetime import datetime

from ..models import Consumption
from .base import BaseRepository


class ConsumptionRepository(BaseRepository):
    """Handles database operations for derived consumption intervals."""

    async def replace_for_transaction(
        self, tenant_id: str, tx_id: int, consumptions: list[Consumption]
    ) -> int:
        """Replace every consumption of a transaction in a single commit."""
        await self._execute(
            "DELETE FROM consumption WHERE tenant_id = ? AND tx_id = ?", (tenant_id, tx_id)
        )
        await self.conn.executemany(
            """
            INSERT INTO consumption (
                tenant_id, tx_id, charge_box_id, connector_id, started_at, ended_at,
                consumption_wh, cumulated_consumption_wh, instant_watts
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    tenant_id,
                    tx_id,
                    c.charge_box_id,
                    c.connector_id,
                    c.started_at,
                    c.ended_at,
                    c.consumption_wh,
                    c.cumulated_consumption_wh,
                    c.instant_watts,
                )
                for c in consumptions
            ],
        )
        await self.conn.commit()
        return len(consumptions)

    async def get_for_transaction(
        self,
        tenant_id: str,
        tx_id: int,
        start_date_time: datetime | None = None,
        end_date_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Consumption]:
        """Get consumptions of a transaction in chronological order."""
        where = ["tenant_id = ?", "tx_id = ?"]
        params: list = [tenant_id, tx_id]
        if start_date_time:
            where.append("ended_at >= ?")
            params.append(start_date_time)
        if end_date_time:
            where.append("started_at <= ?")
            params.append(end_date_time)
        query = f"SELECT * FROM consumption WHERE {' AND '.join(where)} ORDER BY started_at, id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await self._fetchall(query, tuple(params))
        return [self._row_to_model(row) for row in rows]

    def _row_to_model(self, row) -> Consumption:
        """Convert database row to Consumption model."""
        return Consumption(
            id=row["id"],
            tenant_id=row["tenant_id"],
            tx_id=row["tx_id"],
            charge_box_id=row["charge_box_id"],
            connector_id=row["connector_id"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            consumption_wh=row["consumption_wh"],
            cumulated_consumption_wh=row["cumulated_consumption_wh"],
            instant_watts=row["instant_watts"],
        )
