"""Tests for the refund synchronization task."""

import pytest

from chargeledger.integrations import IntegrationFactory, ManualRefundIntegration
from chargeledger.integrations import factory as integration_factory
from chargeledger.models import RefundData, Tenant
from chargeledger.repositories import TenantRepository, TransactionRepository
from chargeledger.tasks import SynchronizeRefundTransactionsTask
from conftest import TENANT_ID, make_transaction


class ExplodingRefundIntegration(ManualRefundIntegration):
    async def synchronize(self, tenant_id):
        raise RuntimeError("expense system down")


async def submit_refund(db_connection, tenant_id: str, tx_id: int, report_id: str | None):
    await TransactionRepository(db_connection).save(
        make_transaction(
            tx_id,
            tenant_id=tenant_id,
            refund_data=RefundData(refund_id=f"R{tx_id}", status="submitted", report_id=report_id),
        )
    )


@pytest.mark.unit
class TestSynchronizeRefundTransactionsTask:
    """Test scheduled refund reconciliation."""

    async def test_process_tenant(self, db_connection, tenant):
        await submit_refund(db_connection, TENANT_ID, 1, "REP1")
        await submit_refund(db_connection, TENANT_ID, 2, None)
        task = SynchronizeRefundTransactionsTask(db_connection)

        result = await task.process_tenant(tenant)

        assert result.to_dict() == {"inSuccess": 1, "inError": 0}

    async def test_process_tenant_refund_inactive(self, db_connection):
        tenant = await TenantRepository(db_connection).save(Tenant(id="bare"))
        task = SynchronizeRefundTransactionsTask(db_connection)

        assert await task.process_tenant(tenant) is None

    async def test_process_tenant_without_implementation(self, db_connection):
        """Test that an active component with an unknown type is skipped."""
        tenant = await TenantRepository(db_connection).save(
            Tenant(id="odd", components={"refund": {"active": True, "type": "unknown"}})
        )
        task = SynchronizeRefundTransactionsTask(db_connection)

        assert await task.process_tenant(tenant) is None

    async def test_run_all_tenants(self, db_connection, tenant):
        tenant_repo = TenantRepository(db_connection)
        await tenant_repo.save(
            Tenant(id="t2", components={"refund": {"active": True, "type": "manual"}})
        )
        await tenant_repo.save(Tenant(id="t3"))
        await submit_refund(db_connection, TENANT_ID, 1, "REP1")
        await submit_refund(db_connection, "t2", 1, "REP2")
        await submit_refund(db_connection, "t2", 2, "REP2")

        results = await SynchronizeRefundTransactionsTask(db_connection).run()

        assert set(results) == {TENANT_ID, "t2"}
        assert results[TENANT_ID].in_success == 1
        assert results["t2"].in_success == 2

    async def test_run_selected_tenants(self, db_connection, tenant):
        await TenantRepository(db_connection).save(
            Tenant(id="t2", components={"refund": {"active": True, "type": "manual"}})
        )
        await submit_refund(db_connection, "t2", 1, "REP2")

        results = await SynchronizeRefundTransactionsTask(db_connection).run(["t2"])

        assert list(results) == ["t2"]

    async def test_failing_tenant_does_not_stop_others(self, db_connection, tenant, monkeypatch):
        """Test that one tenant's failure is logged and the others are still processed."""
        monkeypatch.setitem(
            integration_factory.REFUND_INTEGRATIONS, "exploding", ExplodingRefundIntegration
        )
        await TenantRepository(db_connection).save(
            Tenant(id="t0", components={"refund": {"active": True, "type": "exploding"}})
        )
        await submit_refund(db_connection, TENANT_ID, 1, "REP1")

        results = await SynchronizeRefundTransactionsTask(db_connection).run()

        assert list(results) == [TENANT_ID]
        assert results[TENANT_ID].in_success == 1

    async def test_shares_integration_factory(self, db_connection, tenant):
        factory = IntegrationFactory(db_connection)
        task = SynchronizeRefundTransactionsTask(db_connection, integration_factory=factory)

        await task.process_tenant(tenant)

        assert (TENANT_ID, "refund") in factory._cache
