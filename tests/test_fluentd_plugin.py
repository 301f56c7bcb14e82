"""Tests for the Fluentd audit logging plugin."""

from unittest.mock import MagicMock, patch

import pytest

from chargeledger.errors import ConflictError
from chargeledger.models import OcpiData, RefundData
from chargeledger.plugins import FluentdAuditPlugin
from chargeledger.services import TransactionService
from chargeledger.tasks import SynchronizeRefundTransactionsTask
from conftest import TENANT_ID, make_transaction


async def create_audited_service(db_connection, plugin):
    """Helper to create a transaction service with an initialized plugin."""
    service = TransactionService(db_connection, plugins=[plugin])
    await service.initialize_plugins()
    return service


class TestFluentdAuditPlugin:
    """Test the Fluentd audit logging plugin."""

    @pytest.mark.asyncio
    async def test_plugin_initialization(self):
        """Test that Fluentd sender is initialized."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin(
                tag_prefix="test_ledger",
                host="test-host",
                port=12345,
            )
            await plugin.initialize()

            # Verify sender was created with correct parameters
            mock_sender_class.assert_called_once_with(
                "test_ledger",
                host="test-host",
                port=12345,
                timeout=3.0,
                buffer_overflow_handler=None,
                nanosecond_precision=False,
            )

            assert plugin.sender is mock_sender

    @pytest.mark.asyncio
    async def test_delete_transactions_logging(
        self, db_connection, tenant, users, station, tx_repo, admin_token
    ):
        """Test that bulk deletions are audited with their outcome."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            service = await create_audited_service(db_connection, plugin)
            await tx_repo.save(make_transaction(501))
            await tx_repo.save(
                make_transaction(502, refund_data=RefundData(refund_id="R", status="submitted"))
            )

            await service.delete_transactions(admin_token, {"transactionsIDs": [501, 502]})

            mock_sender.emit.assert_called_once()
            tag, event_data = mock_sender.emit.call_args[0]

            assert tag == "transaction.delete"
            assert event_data["type"] == "audit"
            assert event_data["tenant"] == TENANT_ID
            assert event_data["user"] == "admin1"
            assert event_data["operation"] == "delete_transactions"
            assert event_data["request"] == {"transactionIds": [501, 502]}
            assert event_data["result"] == {"inSuccess": 1, "inError": 1, "status": "Success"}

    @pytest.mark.asyncio
    async def test_refund_logging(self, db_connection, tenant, users, station, tx_repo, basic_token):
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            service = await create_audited_service(db_connection, plugin)
            await tx_repo.save(make_transaction(1))

            await service.refund_transactions(basic_token, {"transactionIds": [1]})

            tag, event_data = mock_sender.emit.call_args[0]
            assert tag == "transaction.refund"
            assert event_data["user"] == "basic1"
            assert event_data["result"]["inSuccess"] == 1

    @pytest.mark.asyncio
    async def test_rejected_operation_is_not_logged(
        self, db_connection, tenant, users, station, tx_repo, admin_token
    ):
        """Test that an operation failing its checks emits no audit record."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            service = await create_audited_service(db_connection, plugin)
            await tx_repo.save(
                make_transaction(1, ocpi_data=OcpiData(session_id="S1", cdr={"id": "C1"}))
            )

            with pytest.raises(ConflictError):
                await service.push_transaction_cdr(admin_token, {"transactionId": 1})

            mock_sender.emit.assert_not_called()

    @pytest.mark.asyncio
    async def test_synchronization_logging(self, db_connection, tenant, tx_repo):
        """Test that scheduled synchronizations are audited without a user."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin(tag_prefix="ledger")
            task = SynchronizeRefundTransactionsTask(db_connection, plugins=[plugin])
            await task.initialize_plugins()
            await tx_repo.save(
                make_transaction(
                    1, refund_data=RefundData(refund_id="R1", status="submitted", report_id="REP")
                )
            )

            await task.run()

            tag, event_data = mock_sender.emit.call_args[0]
            assert tag == "refund.sync"
            assert event_data["operation"] == "synchronize_refunds"
            assert event_data["request"] == {}
            assert event_data["result"] == {"inSuccess": 1, "inError": 0}
            assert "user" not in event_data

    @pytest.mark.asyncio
    async def test_cleanup_closes_sender(self):
        """Test that cleanup closes the Fluentd sender."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            await plugin.initialize()

            await plugin.cleanup()

            mock_sender.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_handles_sender_initialization_failure(
        self, db_connection, tenant, users, station, tx_repo, admin_token
    ):
        """Test graceful handling when Fluentd sender fails to initialize."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            # Simulate connection failure
            mock_sender_class.side_effect = ConnectionError("Cannot connect to Fluentd")

            plugin = FluentdAuditPlugin()
            service = await create_audited_service(db_connection, plugin)

            # Plugin should still work, just not send events
            assert plugin.sender is None

            await tx_repo.save(make_transaction(1))
            result = await service.delete_transactions(admin_token, {"transactionsIDs": [1]})
            assert result["inSuccess"] == 1

    @pytest.mark.asyncio
    async def test_emit_failure_does_not_break_operation(
        self, db_connection, tenant, users, station, tx_repo, admin_token
    ):
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender.emit.side_effect = OSError("broken pipe")
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            service = await create_audited_service(db_connection, plugin)
            await tx_repo.save(make_transaction(1))

            result = await service.delete_transactions(admin_token, {"transactionsIDs": [1]})

            assert result["inSuccess"] == 1
            mock_sender.emit.assert_called_once()
