"""Roaming integrations."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import aiosqlite

from ..models import ChargingStation, Tenant, Transaction


class RoamingIntegration(ABC):
    """
    Base class for roaming (OCPI) integrations.

    ``push_cdr`` builds the Charge Detail Record of a completed issuer
    transaction, sends it to the clearing party and stores the sent record
    in ``transaction.ocpi_data.cdr``. Persisting the transaction is left to
    the caller.
    """

    def __init__(self, tenant: Tenant, settings: dict[str, Any], connection: aiosqlite.Connection):
        self.tenant = tenant
        self.settings = settings
        self.connection = connection
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def push_cdr(
        self, tenant_id: str, transaction: Transaction, station: ChargingStation
    ) -> dict[str, Any]:
        """Send the CDR of the transaction and return it."""
