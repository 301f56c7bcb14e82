"""Derivation of consumption intervals from raw energy readings."""

import logging

import aiosqlite

from ..models import Consumption, InactivityStatus, MeterValue, Transaction
from ..repositories import ConsumptionRepository, MeterValueRepository

logger = logging.getLogger(__name__)

INACTIVITY_INFO_MAX_PERCENT = 25
INACTIVITY_WARNING_MAX_PERCENT = 50


def build_consumptions(
    transaction: Transaction, meter_values: list[MeterValue]
) -> list[Consumption]:
    """
    Turn consecutive energy register readings into consumption intervals.

    The first interval starts at the transaction start with ``meter_start``.
    For a completed transaction the stop reading closes the last interval
    when it is later than the last sampled reading. Readings that do not move
    forward in time are ignored.
    """
    readings = [(mv.timestamp, mv.value) for mv in meter_values]
    stop = transaction.stop
    if stop is not None and (not readings or stop.timestamp > readings[-1][0]):
        readings.append((stop.timestamp, stop.meter_stop))

    consumptions = []
    previous_at, previous_value = transaction.timestamp, transaction.meter_start
    cumulated_wh = 0.0
    for read_at, value in readings:
        secs = (read_at - previous_at).total_seconds()
        if secs <= 0:
            continue
        consumption_wh = value - previous_value
        cumulated_wh += consumption_wh
        consumptions.append(
            Consumption(
                tenant_id=transaction.tenant_id,
                tx_id=transaction.id,
                charge_box_id=transaction.charge_box_id,
                connector_id=transaction.connector_id,
                started_at=previous_at,
                ended_at=read_at,
                consumption_wh=consumption_wh,
                cumulated_consumption_wh=cumulated_wh,
                instant_watts=round(consumption_wh * 3600 / secs, 2),
            )
        )
        previous_at, previous_value = read_at, value
    return consumptions


def optimize_consumptions(consumptions: list[Consumption]) -> list[Consumption]:
    """Merge consecutive intervals drawing the same power."""
    optimized: list[Consumption] = []
    for consumption in consumptions:
        last = optimized[-1] if optimized else None
        if last is not None and last.instant_watts == consumption.instant_watts:
            last.ended_at = consumption.ended_at
            last.consumption_wh += consumption.consumption_wh
            last.cumulated_consumption_wh = consumption.cumulated_consumption_wh
            continue
        optimized.append(
            Consumption(
                id=consumption.id,
                tenant_id=consumption.tenant_id,
                tx_id=consumption.tx_id,
                charge_box_id=consumption.charge_box_id,
                connector_id=consumption.connector_id,
                started_at=consumption.started_at,
                ended_at=consumption.ended_at,
                consumption_wh=consumption.consumption_wh,
                cumulated_consumption_wh=consumption.cumulated_consumption_wh,
                instant_watts=consumption.instant_watts,
            )
        )
    return optimized


def compute_inactivity_secs(consumptions: list[Consumption]) -> int:
    """Sum the length of the intervals during which no energy was drawn."""
    return int(
        sum(
            (c.ended_at - c.started_at).total_seconds()
            for c in consumptions
            if c.consumption_wh <= 0
        )
    )


def get_inactivity_status(total_duration_secs: int, total_inactivity_secs: int) -> str:
    if total_duration_secs <= 0:
        return InactivityStatus.INFO.value
    percent = total_inactivity_secs * 100 / total_duration_secs
    if percent <= INACTIVITY_INFO_MAX_PERCENT:
        return InactivityStatus.INFO.value
    if percent <= INACTIVITY_WARNING_MAX_PERCENT:
        return InactivityStatus.WARNING.value
    return InactivityStatus.ERROR.value


class ConsumptionService:
    """Rebuilds and reads the derived consumptions of a transaction."""

    def __init__(self, connection: aiosqlite.Connection):
        self.meter_repo = MeterValueRepository(connection)
        self.consumption_repo = ConsumptionRepository(connection)

    async def rebuild_transaction_consumptions(self, transaction: Transaction) -> int:
        """
        Replace the consumptions of a transaction with ones recomputed from
        its energy readings. Running it twice yields the same intervals.

        Returns:
            Number of consumption intervals stored.
        """
        meter_values = await self.meter_repo.get_energy_for_transaction(
            transaction.tenant_id, transaction.id
        )
        consumptions = build_consumptions(transaction, meter_values)
        count = await self.consumption_repo.replace_for_transaction(
            transaction.tenant_id, transaction.id, consumptions
        )
        logger.debug(
            f"Rebuilt {count} consumption(s) of transaction '{transaction.id}' "
            f"from {len(meter_values)} meter value(s)"
        )
        return count

    async def get_consumptions(
        self,
        transaction: Transaction,
        load_all: bool = False,
        start_date_time=None,
        end_date_time=None,
        limit: int | None = None,
    ) -> list[Consumption]:
        consumptions = await self.consumption_repo.get_for_transaction(
            transaction.tenant_id,
            transaction.id,
            start_date_time=start_date_time,
            end_date_time=end_date_time,
            limit=limit,
        )
        if load_all:
            return consumptions
        return optimize_consumptions(consumptions)
