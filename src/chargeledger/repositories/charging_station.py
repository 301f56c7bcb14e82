"""Repository for charging station and connector operations."""

from ..models import ChargingStation, Connector
from .base import BaseRepository


class ChargingStationRepository(BaseRepository):
    """Handles database operations for charging stations and their connectors."""

    async def save(self, station: ChargingStation) -> ChargingStation:
        """Insert or update a charging station together with its connectors."""
        await self._execute(
            """
            INSERT INTO charging_station (
                tenant_id, id, site_id, site_area_id, issuer, updated_at
            ) VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(tenant_id, id) DO UPDATE SET
                site_id = excluded.site_id,
                site_area_id = excluded.site_area_id,
                issuer = excluded.issuer,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                station.tenant_id,
                station.id,
                station.site_id,
                station.site_area_id,
                1 if station.issuer else 0,
            ),
        )

        params = [
            (
                station.tenant_id,
                station.id,
                connector.connector_id,
                connector.status,
                connector.power_watts,
                connector.current_transaction_id,
                connector.current_tag_id,
                connector.current_total_consumption_wh,
                connector.current_total_inactivity_secs,
                connector.current_instant_watts,
            )
            for connector in station.connectors
        ]
        await self.conn.executemany(
            """
            INSERT INTO connector (
                tenant_id, charge_box_id, connector_id, status, power_watts,
                current_transaction_id, current_tag_id, current_total_consumption_wh,
                current_total_inactivity_secs, current_instant_watts, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(tenant_id, charge_box_id, connector_id) DO UPDATE SET
                status = excluded.status,
                power_watts = excluded.power_watts,
                current_transaction_id = excluded.current_transaction_id,
                current_tag_id = excluded.current_tag_id,
                current_total_consumption_wh = excluded.current_total_consumption_wh,
                current_total_inactivity_secs = excluded.current_total_inactivity_secs,
                current_instant_watts = excluded.current_instant_watts,
                updated_at = CURRENT_TIMESTAMP
            """,
            params,
        )
        await self.conn.commit()
        return station

    async def get_by_id(self, tenant_id: str, station_id: str) -> ChargingStation | None:
        """Get a charging station with its connectors."""
        row = await self._fetchone(
            "SELECT * FROM charging_station WHERE tenant_id = ? AND id = ?",
            (tenant_id, station_id),
        )
        if not row:
            return None

        connector_rows = await self._fetchall(
            """
            SELECT * FROM connector
            WHERE tenant_id = ? AND charge_box_id = ?
            ORDER BY connector_id
            """,
            (tenant_id, station_id),
        )
        return ChargingStation(
            id=row["id"],
            tenant_id=row["tenant_id"],
            site_id=row["site_id"],
            site_area_id=row["site_area_id"],
            issuer=bool(row["issuer"]),
            connectors=[self._row_to_connector(r) for r in connector_rows],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_connector(self, row) -> Connector:
        """Convert database row to Connector model."""
        return Connector(
            connector_id=row["connector_id"],
            status=row["status"],
            power_watts=row["power_watts"],
            current_transaction_id=row["current_transaction_id"],
            current_tag_id=row["current_tag_id"],
            current_total_consumption_wh=row["current_total_consumption_wh"],
            current_total_inactivity_secs=row["current_total_inactivity_secs"],
            current_instant_watts=row["current_instant_watts"],
            updated_at=row["updated_at"],
        )
