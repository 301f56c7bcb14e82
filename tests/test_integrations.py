"""Tests for refund, billing and roaming integrations."""

import pytest

from chargeledger.integrations import (
    IntegrationFactory,
    ManualBillingIntegration,
    ManualRefundIntegration,
    RefundIntegration,
)
from chargeledger.integrations import factory as integration_factory
from chargeledger.models import BillingData, RefundData, Tenant
from chargeledger.repositories import TenantRepository
from conftest import TENANT_ID, make_transaction


class FlakyRefundIntegration(ManualRefundIntegration):
    """Refund integration whose external system fails for one refund."""

    async def fetch_refund_status(self, tenant_id, refund_data):
        if refund_data.refund_id == "BROKEN":
            raise ConnectionError("expense system unreachable")
        return await super().fetch_refund_status(tenant_id, refund_data)


@pytest.mark.unit
class TestIntegrationFactory:
    """Test per-tenant integration resolution."""

    async def test_resolves_manual_integrations(self, db_connection, tenant):
        factory = IntegrationFactory(db_connection)

        refund_impl = await factory.get_refund_impl(TENANT_ID)
        billing_impl = await factory.get_billing_impl(TENANT_ID)

        assert isinstance(refund_impl, ManualRefundIntegration)
        assert isinstance(billing_impl, ManualBillingIntegration)
        assert refund_impl.settings == {"active": True, "type": "manual"}

    async def test_unregistered_roaming_type(self, db_connection, tenant):
        factory = IntegrationFactory(db_connection)

        assert await factory.get_roaming_impl(TENANT_ID) is None

    async def test_inactive_component(self, db_connection):
        await TenantRepository(db_connection).save(
            Tenant(id="bare", components={"refund": {"active": False, "type": "manual"}})
        )
        factory = IntegrationFactory(db_connection)

        assert await factory.get_refund_impl("bare") is None
        assert await factory.get_billing_impl("bare") is None

    async def test_unknown_tenant(self, db_connection):
        factory = IntegrationFactory(db_connection)

        assert await factory.get_refund_impl("ghost") is None

    async def test_instances_are_cached(self, db_connection, tenant):
        """Test that a tenant gets the same instance until the cache is cleared."""
        factory = IntegrationFactory(db_connection)

        first = await factory.get_refund_impl(TENANT_ID)
        second = await factory.get_refund_impl(TENANT_ID)
        factory.clear(TENANT_ID)
        third = await factory.get_refund_impl(TENANT_ID)

        assert first is second
        assert third is not first

    async def test_clear_picks_up_configuration_changes(self, db_connection, tenant):
        factory = IntegrationFactory(db_connection)
        assert await factory.get_refund_impl(TENANT_ID) is not None

        tenant.components["refund"] = {"active": False}
        await TenantRepository(db_connection).save(tenant)
        assert await factory.get_refund_impl(TENANT_ID) is not None

        factory.clear()
        assert await factory.get_refund_impl(TENANT_ID) is None

    async def test_register_refund(self, db_connection, tenant, monkeypatch):
        monkeypatch.setitem(integration_factory.REFUND_INTEGRATIONS, "flaky", FlakyRefundIntegration)
        tenant.components["refund"] = {"active": True, "type": "flaky"}
        await TenantRepository(db_connection).save(tenant)

        refund_impl = await IntegrationFactory(db_connection).get_refund_impl(TENANT_ID)

        assert isinstance(refund_impl, FlakyRefundIntegration)


@pytest.mark.unit
class TestManualRefundIntegration:
    """Test the locally handled refund integration."""

    async def test_refund_stores_reference(self, db_connection, tenant, tx_repo):
        impl = ManualRefundIntegration(tenant, tenant.components["refund"], db_connection)
        transactions = [make_transaction(1), make_transaction(2)]
        for tx in transactions:
            await tx_repo.save(tx)

        refunded = await impl.refund(TENANT_ID, "basic1", transactions)

        assert [t.id for t in refunded] == [1, 2]
        stored = await tx_repo.get_by_id(TENANT_ID, 1)
        assert stored.refund_data.status == "submitted"
        assert stored.refund_data.refund_id == transactions[0].refund_data.refund_id
        assert transactions[0].refund_data.refund_id != transactions[1].refund_data.refund_id

    async def test_can_be_deleted(self, db_connection, tenant):
        impl = ManualRefundIntegration(tenant, {}, db_connection)

        assert impl.can_be_deleted(make_transaction(1))
        assert impl.can_be_deleted(make_transaction(2, refund_data=RefundData()))
        assert impl.can_be_deleted(
            make_transaction(3, refund_data=RefundData(refund_id="R3", status="cancelled"))
        )
        assert not impl.can_be_deleted(
            make_transaction(4, refund_data=RefundData(refund_id="R4", status="submitted"))
        )
        assert not impl.can_be_deleted(
            make_transaction(5, refund_data=RefundData(refund_id="R5", status="approved"))
        )

    async def test_synchronize(self, db_connection, tenant, tx_repo):
        """Test that refunds attached to a report become approved."""
        impl = ManualRefundIntegration(tenant, {}, db_connection)
        await tx_repo.save(
            make_transaction(
                1, refund_data=RefundData(refund_id="R1", status="submitted", report_id="REP")
            )
        )
        await tx_repo.save(
            make_transaction(2, refund_data=RefundData(refund_id="R2", status="submitted"))
        )

        result = await impl.synchronize(TENANT_ID)

        assert result.to_dict() == {"inSuccess": 1, "inError": 0}
        assert (await tx_repo.get_by_id(TENANT_ID, 1)).refund_data.status == "approved"
        assert (await tx_repo.get_by_id(TENANT_ID, 2)).refund_data.status == "submitted"

        # Approved refunds are no longer pending
        again = await impl.synchronize(TENANT_ID)
        assert again.to_dict() == {"inSuccess": 0, "inError": 0}

    async def test_synchronize_counts_failures(self, db_connection, tenant, tx_repo):
        impl = FlakyRefundIntegration(tenant, {}, db_connection)
        await tx_repo.save(
            make_transaction(1, refund_data=RefundData(refund_id="BROKEN", status="submitted"))
        )
        await tx_repo.save(
            make_transaction(
                2, refund_data=RefundData(refund_id="R2", status="submitted", report_id="REP")
            )
        )

        result = await impl.synchronize(TENANT_ID)

        assert result.in_success == 1
        assert result.in_error == 1
        assert (await tx_repo.get_by_id(TENANT_ID, 1)).refund_data.status == "submitted"

    def test_refund_integration_is_abstract(self):
        with pytest.raises(TypeError):
            RefundIntegration(Tenant(id="x"), {}, None)


@pytest.mark.unit
class TestManualBillingIntegration:
    """Test the locally numbered billing integration."""

    async def test_bill_transaction(self, db_connection, tenant, tx_repo):
        impl = ManualBillingIntegration(tenant, {"invoice_prefix": "ACME"}, db_connection)
        tx = await tx_repo.save(make_transaction(7))

        billing_data = await impl.bill_transaction(TENANT_ID, tx)
        again = await impl.bill_transaction(TENANT_ID, tx)

        assert billing_data.invoice_id == "ACME-7"
        assert again.invoice_id == "ACME-7"
        assert impl.is_transaction_billed(await tx_repo.get_by_id(TENANT_ID, 7))

    async def test_is_transaction_billed(self, db_connection, tenant):
        impl = ManualBillingIntegration(tenant, {}, db_connection)

        assert not impl.is_transaction_billed(make_transaction(1))
        assert not impl.is_transaction_billed(make_transaction(2, billing_data=BillingData()))
        assert impl.is_transaction_billed(
            make_transaction(3, billing_data=BillingData(invoice_id="INV-3"))
        )
