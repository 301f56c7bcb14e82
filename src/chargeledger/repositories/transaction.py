"""Repository for transaction operations."""

import json

from ..models import (
    BillingData,
    DataResult,
    DbParams,
    OcpiData,
    RefundData,
    RefundReport,
    RefundStatus,
    Transaction,
    TransactionFilter,
    TransactionInError,
    TransactionInErrorType,
    TransactionStop,
    User,
)
from .base import BaseRepository

_COLUMNS = (
    "tenant_id",
    "id",
    "charge_box_id",
    "connector_id",
    "user_id",
    "tag_id",
    "site_id",
    "site_area_id",
    "issuer",
    "timestamp",
    "meter_start",
    "stop_timestamp",
    "stop_meter_stop",
    "stop_total_consumption_wh",
    "stop_total_duration_secs",
    "stop_total_inactivity_secs",
    "stop_inactivity_status",
    "stop_price",
    "stop_price_unit",
    "stop_user_id",
    "stop_tag_id",
    "stop_reason",
    "refund_id",
    "refund_status",
    "refund_report_id",
    "refunded_at",
    "invoice_id",
    "ocpi_data",
)

SORTABLE_FIELDS = {
    "id": "tx.id",
    "timestamp": "tx.timestamp",
    "charge_box_id": "tx.charge_box_id",
    "connector_id": "tx.connector_id",
    "user_id": "tx.user_id",
    "stop_timestamp": "tx.stop_timestamp",
    "total_consumption_wh": "tx.stop_total_consumption_wh",
    "total_duration_secs": "tx.stop_total_duration_secs",
    "total_inactivity_secs": "tx.stop_total_inactivity_secs",
    "price": "tx.stop_price",
}

DEFAULT_SORT = "-timestamp"

LONG_INACTIVITY_SECS = 24 * 3600
MIN_VALID_START_DATE = "2015-01-01"

# Conditions are evaluated on completed transactions only
_ERROR_CONDITIONS = {
    TransactionInErrorType.LONG_INACTIVITY.value: (
        f"tx.stop_total_inactivity_secs >= {LONG_INACTIVITY_SECS}"
    ),
    TransactionInErrorType.NEGATIVE_ACTIVITY.value: (
        "(tx.stop_total_inactivity_secs < 0"
        " OR tx.stop_total_inactivity_secs > tx.stop_total_duration_secs)"
    ),
    TransactionInErrorType.NEGATIVE_DURATION.value: "tx.stop_total_duration_secs < 0",
    TransactionInErrorType.OVER_CONSUMPTION.value: (
        "(c.power_watts > 0 AND tx.stop_total_duration_secs > 0"
        " AND tx.stop_total_consumption_wh * 3600.0 / tx.stop_total_duration_secs"
        " > c.power_watts)"
    ),
    TransactionInErrorType.INVALID_START_DATE.value: (
        f"tx.timestamp < '{MIN_VALID_START_DATE}'"
    ),
    TransactionInErrorType.NO_CONSUMPTION.value: (
        "COALESCE(tx.stop_total_consumption_wh, 0) <= 0"
    ),
    TransactionInErrorType.MISSING_PRICE.value: (
        "(tx.stop_total_consumption_wh > 0 AND COALESCE(tx.stop_price, 0) <= 0)"
    ),
    TransactionInErrorType.MISSING_USER.value: "tx.user_id IS NULL",
    TransactionInErrorType.NO_BILLING_DATA.value: (
        "(tx.user_id IS NOT NULL AND tx.invoice_id IS NULL)"
    ),
}


class TransactionRepository(BaseRepository):
    """Handles database operations for transactions."""

    async def create(self, tx: Transaction) -> Transaction:
        """Create a new transaction, allocating the next tenant-scoped ID if needed."""
        if tx.id is None:
            row = await self._fetchone(
                "SELECT COALESCE(MAX(id), 0) + 1 AS next_id FROM tx WHERE tenant_id = ?",
                (tx.tenant_id,),
            )
            tx.id = row["next_id"]

        query = f"""
            INSERT INTO tx ({", ".join(_COLUMNS)})
            VALUES ({self._placeholders(list(_COLUMNS))})
        """
        await self._execute_and_commit(query, self._to_params(tx))
        return tx

    async def save(self, tx: Transaction) -> Transaction:
        """Insert or update a transaction."""
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in _COLUMNS
            if column not in ("tenant_id", "id")
        )
        query = f"""
            INSERT INTO tx ({", ".join(_COLUMNS)})
            VALUES ({self._placeholders(list(_COLUMNS))})
            ON CONFLICT(tenant_id, id) DO UPDATE SET
                {updates},
                updated_at = CURRENT_TIMESTAMP
        """
        await self._execute_and_commit(query, self._to_params(tx))
        return tx

    async def get_by_id(self, tenant_id: str, tx_id: int) -> Transaction | None:
        """Get transaction by ID within a tenant."""
        row = await self._fetchone(
            "SELECT * FROM tx WHERE tenant_id = ? AND id = ?", (tenant_id, tx_id)
        )
        if row:
            return self._row_to_model(row)
        return None

    async def get_transactions(
        self,
        tenant_id: str,
        tx_filter: TransactionFilter,
        db_params: DbParams,
    ) -> DataResult:
        """Get a page of transactions matching the filter."""
        where, params = self._build_where(tenant_id, tx_filter)
        where_sql = " AND ".join(where)

        count_row = await self._fetchone(
            f"SELECT COUNT(*) AS count FROM tx WHERE {where_sql}", tuple(params)
        )
        result = DataResult(count=count_row["count"])

        if tx_filter.statistics:
            result.stats = await self._get_statistics(where_sql, params)

        if db_params.only_record_count:
            return result

        rows = await self._fetchall(
            f"""
            SELECT tx.* FROM tx
            WHERE {where_sql}
            ORDER BY {self._order_by(db_params.sort)}
            LIMIT ? OFFSET ?
            """,
            (*params, db_params.limit, db_params.skip),
        )
        result.result = [self._row_to_model(row) for row in rows]
        return result

    async def get_transactions_in_error(
        self,
        tenant_id: str,
        tx_filter: TransactionFilter,
        db_params: DbParams,
    ) -> DataResult:
        """Get completed transactions exhibiting one of the requested anomalies."""
        error_types = [t for t in (tx_filter.error_types or []) if t in _ERROR_CONDITIONS]
        if not error_types:
            return DataResult()

        where, params = self._build_where(tenant_id, tx_filter)
        where.append("tx.stop_timestamp IS NOT NULL")
        conditions = [_ERROR_CONDITIONS[t] for t in error_types]
        where.append("(" + " OR ".join(conditions) + ")")
        where_sql = " AND ".join(where)
        case_sql = " ".join(
            f"WHEN {_ERROR_CONDITIONS[t]} THEN '{t}'" for t in error_types
        )
        join_sql = """
            LEFT JOIN connector c
                ON c.tenant_id = tx.tenant_id
                AND c.charge_box_id = tx.charge_box_id
                AND c.connector_id = tx.connector_id
        """

        count_row = await self._fetchone(
            f"SELECT COUNT(*) AS count FROM tx {join_sql} WHERE {where_sql}",
            tuple(params),
        )
        result = DataResult(count=count_row["count"])
        if db_params.only_record_count:
            return result

        rows = await self._fetchall(
            f"""
            SELECT tx.*, CASE {case_sql} END AS error_code
            FROM tx {join_sql}
            WHERE {where_sql}
            ORDER BY {self._order_by(db_params.sort)}
            LIMIT ? OFFSET ?
            """,
            (*params, db_params.limit, db_params.skip),
        )
        result.result = [
            TransactionInError(self._row_to_model(row), row["error_code"]) for row in rows
        ]
        return result

    async def delete_transactions(self, tenant_id: str, tx_ids: list[int]) -> int:
        """Delete transactions and their samples; return the number of transactions removed."""
        if not tx_ids:
            return 0

        in_clause = self._placeholders(tx_ids)
        params = (tenant_id, *tx_ids)
        await self._execute(
            f"DELETE FROM consumption WHERE tenant_id = ? AND tx_id IN ({in_clause})", params
        )
        await self._execute(
            f"DELETE FROM meter_val WHERE tenant_id = ? AND tx_id IN ({in_clause})", params
        )
        return await self._execute_and_commit(
            f"DELETE FROM tx WHERE tenant_id = ? AND id IN ({in_clause})", params
        )

    async def get_unassigned_transactions_count(self, tenant_id: str, user: User) -> int:
        """Count issuer transactions without owner whose badge belongs to the user."""
        if not user.tag_ids:
            return 0
        row = await self._fetchone(
            f"""
            SELECT COUNT(*) AS count FROM tx
            WHERE tenant_id = ? AND issuer = 1 AND user_id IS NULL
              AND tag_id IN ({self._placeholders(user.tag_ids)})
            """,
            (tenant_id, *user.tag_ids),
        )
        return row["count"]

    async def assign_transactions_to_user(self, tenant_id: str, user: User) -> int:
        """Give the user ownership of unassigned transactions started with their badges."""
        if not user.tag_ids:
            return 0
        return await self._execute_and_commit(
            f"""
            UPDATE tx
            SET user_id = ?,
                stop_user_id = CASE
                    WHEN stop_timestamp IS NOT NULL AND stop_user_id IS NULL THEN ?
                    ELSE stop_user_id
                END,
                updated_at = CURRENT_TIMESTAMP
            WHERE tenant_id = ? AND issuer = 1 AND user_id IS NULL
              AND tag_id IN ({self._placeholders(user.tag_ids)})
            """,
            (user.id, user.id, tenant_id, *user.tag_ids),
        )

    async def get_transaction_years(self, tenant_id: str) -> list[int]:
        """Get the distinct years in which transactions started."""
        rows = await self._fetchall(
            """
            SELECT DISTINCT CAST(substr(timestamp, 1, 4) AS INTEGER) AS year
            FROM tx
            WHERE tenant_id = ?
            ORDER BY year
            """,
            (tenant_id,),
        )
        return [row["year"] for row in rows]

    async def get_refund_reports(
        self,
        tenant_id: str,
        tx_filter: TransactionFilter,
        db_params: DbParams,
    ) -> DataResult:
        """Group refunded transactions by refund report."""
        where, params = self._build_where(tenant_id, tx_filter)
        where.append("tx.refund_report_id IS NOT NULL")
        where_sql = " AND ".join(where)

        count_row = await self._fetchone(
            f"SELECT COUNT(DISTINCT tx.refund_report_id) AS count FROM tx WHERE {where_sql}",
            tuple(params),
        )
        result = DataResult(count=count_row["count"])
        if db_params.only_record_count:
            return result

        rows = await self._fetchall(
            f"""
            SELECT tx.refund_report_id AS id,
                   MIN(tx.user_id) AS user_id,
                   COUNT(*) AS transaction_count,
                   COALESCE(SUM(tx.stop_total_consumption_wh), 0) AS total_consumption_wh,
                   COALESCE(SUM(tx.stop_price), 0) AS total_price
            FROM tx
            WHERE {where_sql}
            GROUP BY tx.refund_report_id
            ORDER BY tx.refund_report_id
            LIMIT ? OFFSET ?
            """,
            (*params, db_params.limit, db_params.skip),
        )
        result.result = [
            RefundReport(
                id=row["id"],
                user_id=row["user_id"],
                transaction_count=row["transaction_count"],
                total_consumption_wh=row["total_consumption_wh"],
                total_price=row["total_price"],
            )
            for row in rows
        ]
        return result

    async def get_submitted_refunds(self, tenant_id: str) -> list[Transaction]:
        """Get transactions whose refund is submitted and awaiting reconciliation."""
        rows = await self._fetchall(
            """
            SELECT * FROM tx
            WHERE tenant_id = ? AND refund_id IS NOT NULL AND refund_status = ?
            ORDER BY id
            """,
            (tenant_id, RefundStatus.SUBMITTED.value),
        )
        return [self._row_to_model(row) for row in rows]

    async def _get_statistics(self, where_sql: str, params: list) -> dict:
        row = await self._fetchone(
            f"""
            SELECT COUNT(*) AS count,
                   COALESCE(SUM(tx.stop_total_consumption_wh), 0) AS total_consumption_wh,
                   COALESCE(SUM(tx.stop_total_duration_secs), 0) AS total_duration_secs,
                   COALESCE(SUM(tx.stop_total_inactivity_secs), 0) AS total_inactivity_secs,
                   COALESCE(SUM(tx.stop_price), 0) AS total_price,
                   MAX(tx.stop_price_unit) AS currency,
                   COUNT(DISTINCT tx.user_id) AS count_users
            FROM tx
            WHERE {where_sql}
            """,
            tuple(params),
        )
        return dict(row)

    def _build_where(
        self, tenant_id: str, tx_filter: TransactionFilter
    ) -> tuple[list[str], list]:
        """Translate a canonical filter into SQL conditions on the ``tx`` table."""
        where = ["tx.tenant_id = ?"]
        params: list = [tenant_id]

        def add_in(column: str, values: list | None):
            if values is None:
                return
            if not values:
                where.append("0")
                return
            where.append(f"{column} IN ({self._placeholders(values)})")
            params.extend(values)

        if tx_filter.completed is True:
            where.append("tx.stop_timestamp IS NOT NULL")
        elif tx_filter.completed is False:
            where.append("tx.stop_timestamp IS NULL")
        if tx_filter.issuer is not None:
            where.append("tx.issuer = ?")
            params.append(1 if tx_filter.issuer else 0)
        add_in("tx.charge_box_id", tx_filter.charge_box_ids)
        if tx_filter.connector_id is not None:
            where.append("tx.connector_id = ?")
            params.append(tx_filter.connector_id)
        add_in("tx.user_id", tx_filter.user_ids)
        add_in("tx.tag_id", tx_filter.tag_ids)
        add_in("tx.site_area_id", tx_filter.site_area_ids)
        add_in("tx.site_id", tx_filter.site_ids)

        site_admin_ids = tx_filter.site_admin_ids or []
        if tx_filter.owner_id and site_admin_ids:
            where.append(
                f"(tx.user_id = ? OR tx.site_id IN ({self._placeholders(site_admin_ids)}))"
            )
            params.extend([tx_filter.owner_id, *site_admin_ids])
        elif tx_filter.owner_id:
            where.append("tx.user_id = ?")
            params.append(tx_filter.owner_id)
        elif site_admin_ids:
            add_in("tx.site_id", site_admin_ids)

        if tx_filter.start_date_time:
            where.append("tx.timestamp >= ?")
            params.append(tx_filter.start_date_time)
        if tx_filter.end_date_time:
            where.append("tx.timestamp <= ?")
            params.append(tx_filter.end_date_time)

        if tx_filter.refund_status:
            statuses = [s for s in tx_filter.refund_status if s != RefundStatus.NOT_SUBMITTED.value]
            clauses = []
            if statuses:
                clauses.append(f"tx.refund_status IN ({self._placeholders(statuses)})")
                params.extend(statuses)
            if RefundStatus.NOT_SUBMITTED.value in tx_filter.refund_status:
                clauses.append("tx.refund_id IS NULL")
            where.append("(" + " OR ".join(clauses) + ")")

        if tx_filter.minimal_price is not None:
            where.append("tx.stop_price >= ?")
            params.append(tx_filter.minimal_price)
        add_in("tx.refund_report_id", tx_filter.report_ids)
        add_in("tx.stop_inactivity_status", tx_filter.inactivity_status)

        if tx_filter.search:
            like = f"%{tx_filter.search}%"
            where.append(
                "(CAST(tx.id AS TEXT) = ? OR tx.tag_id LIKE ?"
                " OR tx.charge_box_id LIKE ? OR tx.user_id LIKE ?)"
            )
            params.extend([tx_filter.search, like, like, like])

        return where, params

    def _order_by(self, sort: str | None) -> str:
        """Build an ORDER BY clause from ``field,-field`` notation."""
        clauses = []
        for item in (sort or DEFAULT_SORT).split(","):
            item = item.strip()
            descending = item.startswith("-")
            column = SORTABLE_FIELDS.get(item.lstrip("-"))
            if column:
                clauses.append(f"{column} {'DESC' if descending else 'ASC'}")
        clauses.append("tx.id DESC")
        return ", ".join(clauses)

    def _to_params(self, tx: Transaction) -> tuple:
        stop = tx.stop
        refund = tx.refund_data
        ocpi = None
        if tx.ocpi_data is not None:
            ocpi = json.dumps({"session_id": tx.ocpi_data.session_id, "cdr": tx.ocpi_data.cdr})
        return (
            tx.tenant_id,
            tx.id,
            tx.charge_box_id,
            tx.connector_id,
            tx.user_id,
            tx.tag_id,
            tx.site_id,
            tx.site_area_id,
            1 if tx.issuer else 0,
            tx.timestamp,
            tx.meter_start,
            stop.timestamp if stop else None,
            stop.meter_stop if stop else None,
            stop.total_consumption_wh if stop else None,
            stop.total_duration_secs if stop else None,
            stop.total_inactivity_secs if stop else None,
            stop.inactivity_status if stop else None,
            stop.price if stop else None,
            stop.price_unit if stop else None,
            stop.user_id if stop else None,
            stop.tag_id if stop else None,
            stop.reason if stop else None,
            refund.refund_id if refund else None,
            refund.status if refund else None,
            refund.report_id if refund else None,
            refund.refunded_at if refund else None,
            tx.billing_data.invoice_id if tx.billing_data else None,
            ocpi,
        )

    def _row_to_model(self, row) -> Transaction:
        """Convert database row to Transaction model."""
        stop = None
        if row["stop_timestamp"] is not None:
            stop = TransactionStop(
                timestamp=row["stop_timestamp"],
                meter_stop=row["stop_meter_stop"] or 0,
                total_consumption_wh=row["stop_total_consumption_wh"] or 0.0,
                total_duration_secs=row["stop_total_duration_secs"] or 0,
                total_inactivity_secs=row["stop_total_inactivity_secs"] or 0,
                inactivity_status=row["stop_inactivity_status"],
                price=row["stop_price"],
                price_unit=row["stop_price_unit"],
                user_id=row["stop_user_id"],
                tag_id=row["stop_tag_id"],
                reason=row["stop_reason"] or "",
            )

        refund_data = None
        if row["refund_id"] is not None or row["refund_status"] is not None:
            refund_data = RefundData(
                refund_id=row["refund_id"],
                status=row["refund_status"] or RefundStatus.NOT_SUBMITTED.value,
                report_id=row["refund_report_id"],
                refunded_at=row["refunded_at"],
            )

        billing_data = None
        if row["invoice_id"] is not None:
            billing_data = BillingData(invoice_id=row["invoice_id"])

        ocpi_data = None
        if row["ocpi_data"]:
            raw = json.loads(row["ocpi_data"])
            ocpi_data = OcpiData(session_id=raw.get("session_id"), cdr=raw.get("cdr"))

        return Transaction(
            id=row["id"],
            tenant_id=row["tenant_id"],
            charge_box_id=row["charge_box_id"],
            connector_id=row["connector_id"],
            user_id=row["user_id"],
            tag_id=row["tag_id"],
            site_id=row["site_id"],
            site_area_id=row["site_area_id"],
            issuer=bool(row["issuer"]),
            timestamp=row["timestamp"],
            meter_start=row["meter_start"],
            stop=stop,
            refund_data=refund_data,
            billing_data=billing_data,
            ocpi_data=ocpi_data,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
