"""Transaction lifecycle and deletion-consistency engine."""

import logging
from datetime import UTC, datetime
from typing import Any

import aiosqlite
from ocpp.v16.enums import AuthorizationStatus, ChargePointStatus, Reason

from .. import config
from ..authorizations import Authorizations
from ..errors import (
    AuthorizationError,
    ConflictError,
    ErrorCode,
    IntegrationUnavailableError,
    NotFoundError,
    ValidationError,
)
from ..integrations import IntegrationFactory
from ..logging_utils import log_action, log_actions_response, log_error
from ..models import (
    Action,
    ActionsResponse,
    ChargingStation,
    DbParams,
    Entity,
    ServerAction,
    TenantComponent,
    Transaction,
    TransactionFilter,
    TransactionInError,
    TransactionInErrorType,
    TransactionStop,
    User,
    UserToken,
)
from ..plugins.base import PluginHost, ServiceHook, ServicePlugin
from ..repositories import (
    ChargingStationRepository,
    MeterValueRepository,
    TenantRepository,
    TransactionRepository,
    UserRepository,
)
from ..tasks import SynchronizeRefundTransactionsTask
from . import security
from .consumption import ConsumptionService, compute_inactivity_secs, get_inactivity_status
from .export import convert_to_csv

MODULE_NAME = "TransactionService"

REST_RESPONSE_SUCCESS = {"status": "Success"}

DEFAULT_IN_ERROR_TYPES = [
    TransactionInErrorType.LONG_INACTIVITY.value,
    TransactionInErrorType.NEGATIVE_ACTIVITY.value,
    TransactionInErrorType.NEGATIVE_DURATION.value,
    TransactionInErrorType.OVER_CONSUMPTION.value,
    TransactionInErrorType.INVALID_START_DATE.value,
    TransactionInErrorType.NO_CONSUMPTION.value,
    TransactionInErrorType.MISSING_USER.value,
]

logger = logging.getLogger(__name__)


class TransactionService(PluginHost):
    """
    Orchestrates every operation on charging transactions.

    The service holds no state of its own. Each call loads what it needs from
    the stores, checks the caller's capabilities, consults the tenant's
    refund, billing and roaming integrations and writes the outcome back.
    Batch operations never abort on a single bad item: they report how many
    items succeeded and failed.
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        integration_factory: IntegrationFactory | None = None,
        authorizations: Authorizations | None = None,
        plugins: list[ServicePlugin] | None = None,
    ):
        self.db = connection
        self.tx_repo = TransactionRepository(connection)
        self.station_repo = ChargingStationRepository(connection)
        self.user_repo = UserRepository(connection)
        self.tenant_repo = TenantRepository(connection)
        self.meter_repo = MeterValueRepository(connection)
        self.consumption_service = ConsumptionService(connection)
        self.integrations = integration_factory or IntegrationFactory(connection)
        self.authorizations = authorizations or Authorizations()
        self._register_plugins(plugins)

    # Assertions

    def _assert_id_provided(self, value: Any, name: str, method: str):
        if value is None or value == "":
            raise ValidationError(
                f"The {name} must be provided", module=MODULE_NAME, method=method
            )

    def _assert_object_exists(self, obj: Any, message: str, method: str):
        if obj is None:
            raise NotFoundError(message, module=MODULE_NAME, method=method)

    # Refund

    async def refund_transactions(self, user_token: UserToken, request: dict) -> dict:
        """
        Submit transactions to the tenant's refund integration.

        Missing and already refunded transactions are logged and skipped. A
        transaction the caller may not refund fails the whole request.
        """
        method = "refund_transactions"
        tenant_id = user_token.tenant_id
        tx_ids = security.parse_int_list(request, "transactionIds")
        if tx_ids is None:
            raise ValidationError(
                "Transaction IDs must be provided", module=MODULE_NAME, method=method
            )

        transactions_to_refund: list[Transaction] = []
        for tx_id in tx_ids:
            transaction = await self.tx_repo.get_by_id(tenant_id, tx_id)
            if transaction is None:
                log_action(
                    logger,
                    logging.ERROR,
                    tenant_id,
                    ServerAction.TRANSACTIONS_REFUND,
                    f"Transaction '{tx_id}' does not exist",
                    module=MODULE_NAME,
                    method=method,
                    user=user_token.id,
                    detailed_messages={"transactionId": tx_id},
                )
                continue
            if transaction.refund_data and transaction.refund_data.is_refunded:
                log_action(
                    logger,
                    logging.ERROR,
                    tenant_id,
                    ServerAction.TRANSACTIONS_REFUND,
                    f"Transaction '{transaction.id}' is already refunded",
                    module=MODULE_NAME,
                    method=method,
                    user=user_token.id,
                    action_on_user=transaction.user_id,
                    detailed_messages={"refundId": transaction.refund_data.refund_id},
                )
                continue
            self.authorizations.assert_can(
                user_token,
                Action.REFUND_TRANSACTION,
                Entity.TRANSACTION,
                transaction,
                value=str(transaction.id),
                module=MODULE_NAME,
                method=method,
            )
            transactions_to_refund.append(transaction)

        user = await self.user_repo.get_by_id(tenant_id, user_token.id)
        self._assert_object_exists(user, f"User with ID '{user_token.id}' does not exist", method)

        refund_impl = await self.integrations.get_refund_impl(tenant_id)
        if refund_impl is None:
            raise IntegrationUnavailableError(
                "No refund implementation found", module=MODULE_NAME, method=method
            )

        request_data = {
            "operation": "refund_transactions",
            "transactionIds": [t.id for t in transactions_to_refund],
        }
        await self._execute_plugin_hooks(
            ServiceHook.BEFORE_REFUND_TRANSACTIONS, tenant_id, user_token, request_data
        )

        refunded = await refund_impl.refund(tenant_id, user.id, transactions_to_refund)
        response = {**REST_RESPONSE_SUCCESS, "inSuccess": len(refunded)}
        not_refunded = len(transactions_to_refund) - len(refunded)
        if not_refunded > 0:
            response["inError"] = not_refunded

        log_action(
            logger,
            logging.WARNING if not_refunded > 0 else logging.INFO,
            tenant_id,
            ServerAction.TRANSACTIONS_REFUND,
            f"{len(refunded)} transaction(s) have been submitted for refund",
            module=MODULE_NAME,
            method=method,
            user=user_token.id,
            detailed_messages=response,
        )
        await self._execute_plugin_hooks(
            ServiceHook.AFTER_REFUND_TRANSACTIONS, tenant_id, user_token, request_data, response
        )
        return response

    # Roaming

    async def push_transaction_cdr(self, user_token: UserToken, request: dict) -> dict:
        """Send the Charge Detail Record of a completed issuer transaction to the roaming partner."""
        method = "push_transaction_cdr"
        tenant_id = user_token.tenant_id
        tx_id = security.parse_int(request, "transactionId")
        self._assert_id_provided(tx_id, "Transaction ID", method)
        self.authorizations.assert_can(
            user_token,
            Action.UPDATE,
            Entity.TRANSACTION,
            value=str(tx_id),
            module=MODULE_NAME,
            method=method,
        )

        transaction = await self.tx_repo.get_by_id(tenant_id, tx_id)
        self._assert_object_exists(
            transaction, f"Transaction ID '{tx_id}' does not exist", method
        )
        station = await self.station_repo.get_by_id(tenant_id, transaction.charge_box_id)
        self._assert_object_exists(
            station, f"Charging Station ID '{transaction.charge_box_id}' does not exist", method
        )

        if not transaction.issuer:
            raise ConflictError(
                f"The transaction ID '{transaction.id}' belongs to an external organization",
                error_code=ErrorCode.TRANSACTION_NOT_FROM_TENANT,
                module=MODULE_NAME,
                method=method,
            )
        if transaction.ocpi_data is None:
            raise ConflictError(
                f"The transaction ID '{transaction.id}' has no OCPI data",
                error_code=ErrorCode.TRANSACTION_WITH_NO_OCPI_DATA,
                module=MODULE_NAME,
                method=method,
            )
        if transaction.ocpi_data.cdr_id:
            raise ConflictError(
                f"The CDR of the transaction ID '{transaction.id}' has already been pushed",
                error_code=ErrorCode.TRANSACTION_CDR_ALREADY_PUSHED,
                module=MODULE_NAME,
                method=method,
            )

        roaming_impl = await self.integrations.get_roaming_impl(tenant_id)
        if roaming_impl is None:
            raise IntegrationUnavailableError(
                "No roaming implementation found", module=MODULE_NAME, method=method
            )

        request_data = {"operation": "push_cdr", "transactionId": transaction.id}
        await self._execute_plugin_hooks(
            ServiceHook.BEFORE_PUSH_CDR, tenant_id, user_token, request_data
        )

        cdr = await roaming_impl.push_cdr(tenant_id, transaction, station)
        if cdr is not None:
            transaction.ocpi_data.cdr = cdr
        await self.tx_repo.save(transaction)

        log_action(
            logger,
            logging.INFO,
            tenant_id,
            ServerAction.TRANSACTION_PUSH_CDR,
            f"CDR of Transaction ID '{transaction.id}' has been pushed successfully",
            module=MODULE_NAME,
            method=method,
            user=user_token.id,
            action_on_user=transaction.user_id,
            detailed_messages={"cdr": transaction.ocpi_data.cdr},
        )
        await self._execute_plugin_hooks(
            ServiceHook.AFTER_PUSH_CDR, tenant_id, user_token, request_data, REST_RESPONSE_SUCCESS
        )
        return dict(REST_RESPONSE_SUCCESS)

    # Deletion

    async def delete_transaction(self, user_token: UserToken, request: dict) -> dict:
        method = "delete_transaction"
        tx_id = security.parse_int(request, "ID")
        self._assert_id_provided(tx_id, "Transaction ID", method)
        self.authorizations.assert_can(
            user_token,
            Action.DELETE,
            Entity.TRANSACTION,
            value=str(tx_id),
            module=MODULE_NAME,
            method=method,
        )
        transaction = await self.tx_repo.get_by_id(user_token.tenant_id, tx_id)
        self._assert_object_exists(
            transaction, f"Transaction with ID '{tx_id}' does not exist", method
        )

        result = await self._delete_transactions(
            user_token, [tx_id], ServerAction.TRANSACTION_DELETE
        )
        return {**result.to_dict(), **REST_RESPONSE_SUCCESS}

    async def delete_transactions(self, user_token: UserToken, request: dict) -> dict:
        method = "delete_transactions"
        tx_ids = security.parse_int_list(request, "transactionsIDs")
        if tx_ids is None:
            raise ValidationError(
                "Transaction IDs must be provided", module=MODULE_NAME, method=method
            )
        self.authorizations.assert_can(
            user_token,
            Action.DELETE,
            Entity.TRANSACTION,
            value=",".join(str(i) for i in tx_ids),
            module=MODULE_NAME,
            method=method,
        )

        result = await self._delete_transactions(
            user_token, tx_ids, ServerAction.TRANSACTIONS_DELETE
        )
        return {**result.to_dict(), **REST_RESPONSE_SUCCESS}

    async def _delete_transactions(
        self, user_token: UserToken, tx_ids: list[int], action: ServerAction
    ) -> ActionsResponse:
        """
        Delete transactions one eligibility decision at a time.

        Per ID, in input order:
        - missing, refunded or billed transactions count as errors
        - an active transaction first releases its connector when it is
          still the connector's current transaction
        - everything else is marked and removed by a single bulk delete
        """
        method = "delete_transactions"
        tenant_id = user_token.tenant_id
        result = ActionsResponse()
        tx_ids_to_delete: list[int] = []

        refund_impl = await self.integrations.get_refund_impl(tenant_id)
        billing_impl = await self.integrations.get_billing_impl(tenant_id)

        request_data = {"operation": "delete_transactions", "transactionIds": list(tx_ids)}
        await self._execute_plugin_hooks(
            ServiceHook.BEFORE_DELETE_TRANSACTIONS, tenant_id, user_token, request_data
        )

        for tx_id in tx_ids:
            try:
                transaction = await self.tx_repo.get_by_id(tenant_id, tx_id)
                if transaction is None:
                    result.in_error += 1
                    self._log_delete_rejected(
                        user_token, action, f"Transaction ID '{tx_id}' does not exist"
                    )
                elif refund_impl is not None and not refund_impl.can_be_deleted(transaction):
                    result.in_error += 1
                    self._log_delete_rejected(
                        user_token,
                        action,
                        f"Transaction ID '{tx_id}' has been refunded and cannot be deleted",
                    )
                elif billing_impl is not None and billing_impl.is_transaction_billed(transaction):
                    result.in_error += 1
                    self._log_delete_rejected(
                        user_token,
                        action,
                        f"Transaction ID '{tx_id}' has been billed and cannot be deleted",
                    )
                elif transaction.is_active:
                    station = await self.station_repo.get_by_id(
                        tenant_id, transaction.charge_box_id
                    )
                    if station is not None and self._free_connector(station, transaction):
                        await self.station_repo.save(station)
                    tx_ids_to_delete.append(tx_id)
                else:
                    tx_ids_to_delete.append(tx_id)
            except Exception as e:
                result.in_error += 1
                log_error(
                    logger,
                    "transaction_delete_error",
                    f"Transaction ID '{tx_id}' could not be deleted: {e}",
                    tenant_id=tenant_id,
                    exc_info=e,
                    transaction_id=tx_id,
                    user=user_token.id,
                )

        result.in_success = await self.tx_repo.delete_transactions(tenant_id, tx_ids_to_delete)

        log_actions_response(
            logger,
            tenant_id,
            action,
            MODULE_NAME,
            method,
            result,
            "{in_success} transaction(s) were successfully deleted",
            "{in_error} transaction(s) failed to be deleted",
            "{in_success} transaction(s) were successfully deleted and {in_error} failed to be deleted",
            "No transactions have been deleted",
        )
        await self._execute_plugin_hooks(
            ServiceHook.AFTER_DELETE_TRANSACTIONS,
            tenant_id,
            user_token,
            request_data,
            {**result.to_dict(), **REST_RESPONSE_SUCCESS},
        )
        return result

    def _log_delete_rejected(self, user_token: UserToken, action: ServerAction, message: str):
        log_action(
            logger,
            logging.ERROR,
            user_token.tenant_id,
            action,
            message,
            module=MODULE_NAME,
            method="delete_transactions",
            user=user_token.id,
        )

    def _free_connector(self, station: ChargingStation, transaction: Transaction) -> bool:
        """Release the connector if the transaction still occupies it."""
        connector = station.get_connector(transaction.connector_id)
        if connector is None or connector.current_transaction_id != transaction.id:
            return False
        connector.current_transaction_id = None
        connector.current_tag_id = None
        connector.current_total_consumption_wh = 0.0
        connector.current_total_inactivity_secs = 0
        connector.current_instant_watts = 0.0
        connector.status = ChargePointStatus.available.value
        return True

    # Soft stop

    async def soft_stop_transaction(self, user_token: UserToken, request: dict) -> dict:
        """
        Stop an active transaction on behalf of the station.

        The stop reading is the last energy meter value received, or the
        start reading when none was received.
        """
        method = "soft_stop_transaction"
        tenant_id = user_token.tenant_id
        tx_id = security.parse_int(request, "transactionId")
        self._assert_id_provided(tx_id, "Transaction ID", method)
        self.authorizations.assert_can(
            user_token,
            Action.UPDATE,
            Entity.TRANSACTION,
            value=str(tx_id),
            module=MODULE_NAME,
            method=method,
        )

        transaction = await self.tx_repo.get_by_id(tenant_id, tx_id)
        self._assert_object_exists(
            transaction, f"Transaction with ID '{tx_id}' does not exist", method
        )
        station = await self.station_repo.get_by_id(tenant_id, transaction.charge_box_id)
        self._assert_object_exists(
            station, f"Charging Station with ID '{transaction.charge_box_id}' does not exist", method
        )
        if transaction.user_id:
            user = await self.user_repo.get_by_id(tenant_id, transaction.user_id)
            self._assert_object_exists(
                user, f"User with ID '{transaction.user_id}' does not exist", method
            )
        if not transaction.is_active:
            raise ConflictError(
                f"Transaction ID '{transaction.id}' is already stopped",
                error_code=ErrorCode.TRANSACTION_ALREADY_STOPPED,
                module=MODULE_NAME,
                method=method,
            )

        request_data = {"operation": "soft_stop", "transactionId": transaction.id}
        await self._execute_plugin_hooks(
            ServiceHook.BEFORE_SOFT_STOP, tenant_id, user_token, request_data
        )

        last_meter_value = await self.meter_repo.get_last_for_transaction(tenant_id, transaction.id)
        if last_meter_value is not None:
            stopped_at = last_meter_value.timestamp
            meter_stop = int(last_meter_value.value)
        else:
            stopped_at = transaction.timestamp
            meter_stop = transaction.meter_start

        transaction.stop = TransactionStop(
            timestamp=stopped_at,
            meter_stop=meter_stop,
            user_id=user_token.id,
            tag_id=user_token.tag_ids[0] if user_token.tag_ids else transaction.tag_id,
            reason=Reason.other.value,
        )
        await self.consumption_service.rebuild_transaction_consumptions(transaction)
        consumptions = await self.consumption_service.get_consumptions(transaction, load_all=True)

        stop = transaction.stop
        stop.total_consumption_wh = float(meter_stop - transaction.meter_start)
        stop.total_duration_secs = int((stopped_at - transaction.timestamp).total_seconds())
        stop.total_inactivity_secs = compute_inactivity_secs(consumptions)
        stop.inactivity_status = get_inactivity_status(
            stop.total_duration_secs, stop.total_inactivity_secs
        )
        await self.tx_repo.save(transaction)

        if self._free_connector(station, transaction):
            await self.station_repo.save(station)

        result = {"idTagInfo": {"status": AuthorizationStatus.accepted.value}}
        log_action(
            logger,
            logging.INFO,
            tenant_id,
            ServerAction.TRANSACTION_SOFT_STOP,
            f"Connector '{transaction.connector_id}' > Transaction ID '{transaction.id}' "
            "has been stopped successfully",
            module=MODULE_NAME,
            method=method,
            user=user_token.id,
            action_on_user=transaction.user_id,
            source=station.id,
            detailed_messages={"result": result},
        )
        await self._execute_plugin_hooks(
            ServiceHook.AFTER_SOFT_STOP, tenant_id, user_token, request_data, result
        )
        return result

    # Reassignment

    async def get_unassigned_transactions_count(self, user_token: UserToken, request: dict) -> int:
        method = "get_unassigned_transactions_count"
        self.authorizations.assert_can(
            user_token, Action.UPDATE, Entity.TRANSACTION, module=MODULE_NAME, method=method
        )
        user = await self._get_user_from_request(user_token, request, method)
        return await self.tx_repo.get_unassigned_transactions_count(user_token.tenant_id, user)

    async def assign_transactions_to_user(self, user_token: UserToken, request: dict) -> dict:
        """Give a badge holder ownership of the unassigned sessions started with their badges."""
        method = "assign_transactions_to_user"
        self.authorizations.assert_can(
            user_token, Action.UPDATE, Entity.TRANSACTION, module=MODULE_NAME, method=method
        )
        user = await self._get_user_from_request(user_token, request, method)
        if not user.issuer:
            raise ConflictError(
                "User not issued by the organization",
                error_code=ErrorCode.USER_NOT_ISSUED,
                module=MODULE_NAME,
                method=method,
            )

        count = await self.tx_repo.assign_transactions_to_user(user_token.tenant_id, user)
        log_action(
            logger,
            logging.INFO,
            user_token.tenant_id,
            ServerAction.ASSIGN_TRANSACTIONS_TO_USER,
            f"{count} transaction(s) have been assigned to the user",
            module=MODULE_NAME,
            method=method,
            user=user_token.id,
            action_on_user=user.id,
        )
        return dict(REST_RESPONSE_SUCCESS)

    async def _get_user_from_request(
        self, user_token: UserToken, request: dict, method: str
    ) -> User:
        user_id = security.parse_str(request, "UserID")
        if user_id is None:
            raise ValidationError("User ID must be provided", module=MODULE_NAME, method=method)
        user = await self.user_repo.get_by_id(user_token.tenant_id, user_id, with_tags=True)
        self._assert_object_exists(user, f"User with ID '{user_id}' does not exist", method)
        return user

    # Consumptions

    async def rebuild_transaction_consumptions(self, user_token: UserToken, request: dict) -> dict:
        method = "rebuild_transaction_consumptions"
        tenant_id = user_token.tenant_id
        self.authorizations.assert_can(
            user_token, Action.UPDATE, Entity.TRANSACTION, module=MODULE_NAME, method=method
        )
        tx_id = security.parse_int(request, "ID")
        self._assert_id_provided(tx_id, "Transaction ID", method)
        transaction = await self.tx_repo.get_by_id(tenant_id, tx_id)
        self._assert_object_exists(
            transaction, f"Transaction with ID '{tx_id}' does not exist", method
        )

        request_data = {"operation": "rebuild_consumptions", "transactionId": tx_id}
        await self._execute_plugin_hooks(
            ServiceHook.BEFORE_REBUILD_CONSUMPTIONS, tenant_id, user_token, request_data
        )
        nbr_of_consumptions = await self.consumption_service.rebuild_transaction_consumptions(
            transaction
        )
        response = {"nbrOfConsumptions": nbr_of_consumptions, **REST_RESPONSE_SUCCESS}
        log_action(
            logger,
            logging.INFO,
            tenant_id,
            ServerAction.REBUILD_TRANSACTION_CONSUMPTIONS,
            f"{nbr_of_consumptions} consumption(s) of Transaction ID '{tx_id}' have been rebuilt",
            module=MODULE_NAME,
            method=method,
            user=user_token.id,
        )
        await self._execute_plugin_hooks(
            ServiceHook.AFTER_REBUILD_CONSUMPTIONS, tenant_id, user_token, request_data, response
        )
        return response

    async def get_transaction_consumption(self, user_token: UserToken, request: dict) -> dict:
        method = "get_transaction_consumption"
        tx_id = security.parse_int(request, "TransactionId")
        self._assert_id_provided(tx_id, "Transaction ID", method)
        transaction = await self.tx_repo.get_by_id(user_token.tenant_id, tx_id)
        self._assert_object_exists(
            transaction, f"Transaction with ID '{tx_id}' does not exist", method
        )
        self.authorizations.assert_can(
            user_token,
            Action.READ,
            Entity.TRANSACTION,
            transaction,
            value=str(tx_id),
            module=MODULE_NAME,
            method=method,
        )

        start_date_time = security.parse_datetime(request, "StartDateTime")
        end_date_time = security.parse_datetime(request, "EndDateTime")
        if start_date_time and end_date_time and start_date_time > end_date_time:
            raise ValidationError(
                f"The requested start date '{start_date_time.isoformat()}' is after "
                f"the requested end date '{end_date_time.isoformat()}'",
                error_code=ErrorCode.INVALID_PARAMETER,
                module=MODULE_NAME,
                method=method,
            )

        load_all = bool(security.parse_bool(request, "LoadAllConsumptions"))
        consumptions = await self.consumption_service.get_consumptions(
            transaction,
            load_all=load_all,
            start_date_time=start_date_time,
            end_date_time=end_date_time,
            limit=config.DB_RECORD_COUNT_MAX if load_all else None,
        )
        return security.filter_consumptions_response(transaction, consumptions, user_token)

    # Reads

    async def get_transaction(self, user_token: UserToken, request: dict) -> dict:
        method = "get_transaction"
        tx_id = security.parse_int(request, "ID")
        self._assert_id_provided(tx_id, "Transaction ID", method)
        transaction = await self.tx_repo.get_by_id(user_token.tenant_id, tx_id)
        self._assert_object_exists(
            transaction, f"Transaction with ID '{tx_id}' does not exist", method
        )
        self.authorizations.assert_can(
            user_token,
            Action.READ,
            Entity.TRANSACTION,
            transaction,
            value=str(tx_id),
            module=MODULE_NAME,
            method=method,
        )
        user = None
        if transaction.user_id:
            user = await self.user_repo.get_by_id(user_token.tenant_id, transaction.user_id)
        return security.filter_transaction_response(transaction, user_token, user)

    async def get_transactions_active(self, user_token: UserToken, request: dict) -> dict:
        return await self._get_transactions(user_token, request, completed=False)

    async def get_transactions_completed(self, user_token: UserToken, request: dict) -> dict:
        return await self._get_transactions(user_token, request, completed=True)

    async def get_transactions_to_refund(self, user_token: UserToken, request: dict) -> dict:
        # Only transactions of the local organization can be refunded
        return await self._get_transactions(
            user_token, {**request, "Issuer": "true"}, completed=True
        )

    async def get_charging_station_transactions(self, user_token: UserToken, request: dict) -> dict:
        method = "get_charging_station_transactions"
        tenant_id = user_token.tenant_id
        self.authorizations.assert_can(
            user_token, Action.LIST, Entity.TRANSACTIONS, module=MODULE_NAME, method=method
        )
        charge_box_id = security.parse_str(request, "ChargeBoxID")
        self._assert_id_provided(charge_box_id, "Charging Station ID", method)
        connector_id = security.parse_int(request, "ConnectorId")
        self._assert_id_provided(connector_id, "Connector ID", method)

        station = await self.station_repo.get_by_id(tenant_id, charge_box_id)
        self._assert_object_exists(
            station, f"Charging Station with ID '{charge_box_id}' does not exist", method
        )
        tx_filter = TransactionFilter(
            charge_box_ids=[station.id],
            connector_id=connector_id,
            start_date_time=security.parse_datetime(request, "StartDateTime"),
            end_date_time=security.parse_datetime(request, "EndDateTime"),
        )
        transactions = await self.tx_repo.get_transactions(
            tenant_id, tx_filter, security.parse_db_params(request)
        )
        users = await self._load_users(tenant_id, transactions.result)
        return security.filter_transactions_response(transactions, user_token, users)

    async def get_transactions_in_error(self, user_token: UserToken, request: dict) -> dict:
        """List completed transactions exhibiting accounting anomalies, at most 100 of them."""
        method = "get_transactions_in_error"
        tenant_id = user_token.tenant_id
        self.authorizations.assert_can(
            user_token,
            Action.LIST,
            Entity.TRANSACTIONS_IN_ERROR,
            module=MODULE_NAME,
            method=method,
        )

        tx_filter = TransactionFilter(
            issuer=True,
            charge_box_ids=security.split_values(request, "ChargeBoxID"),
            user_ids=security.split_values(request, "UserID"),
            start_date_time=security.parse_datetime(request, "StartDateTime"),
            end_date_time=security.parse_datetime(request, "EndDateTime"),
            search=security.parse_str(request, "Search"),
        )
        if user_token.is_component_active(TenantComponent.ORGANIZATION):
            tx_filter.site_area_ids = security.split_values(request, "SiteAreaID")
            tx_filter.site_ids = self.authorizations.get_authorized_site_admin_ids(
                user_token, security.split_values(request, "SiteID")
            )

        error_types = security.split_values(request, "ErrorType")
        if not error_types:
            error_types = list(DEFAULT_IN_ERROR_TYPES)
            if user_token.is_component_active(TenantComponent.PRICING):
                error_types.append(TransactionInErrorType.MISSING_PRICE.value)
            if user_token.is_component_active(TenantComponent.BILLING):
                error_types.append(TransactionInErrorType.NO_BILLING_DATA.value)
        tx_filter.error_types = error_types

        transactions = await self.tx_repo.get_transactions_in_error(
            tenant_id, tx_filter, security.parse_db_params(request)
        )
        del transactions.result[config.TRANSACTIONS_IN_ERROR_MAX_RESULTS:]
        users = await self._load_users(tenant_id, transactions.result)
        return security.filter_transactions_response(transactions, user_token, users)

    async def get_transaction_years(self, user_token: UserToken) -> list[int]:
        years = await self.tx_repo.get_transaction_years(user_token.tenant_id)
        return years or [datetime.now(UTC).year]

    async def get_refund_reports(self, user_token: UserToken, request: dict) -> dict:
        method = "get_refund_reports"
        self.authorizations.assert_can(
            user_token, Action.LIST, Entity.TRANSACTIONS, module=MODULE_NAME, method=method
        )
        tx_filter = TransactionFilter(completed=True)
        if self.authorizations.is_basic(user_token):
            tx_filter.owner_id = user_token.id
        if user_token.is_component_active(TenantComponent.ORGANIZATION):
            tx_filter.site_area_ids = security.split_values(request, "SiteAreaID")
            site_ids = security.split_values(request, "SiteID")
            if site_ids:
                tx_filter.site_ids = self.authorizations.get_authorized_site_admin_ids(
                    user_token, site_ids
                )
            tx_filter.site_admin_ids = self.authorizations.get_authorized_site_admin_ids(
                user_token
            )
        reports = await self.tx_repo.get_refund_reports(
            user_token.tenant_id, tx_filter, security.parse_db_params(request)
        )
        return security.filter_refund_reports_response(reports, user_token)

    # Export

    async def export_transactions(self, user_token: UserToken, request: dict) -> str:
        return await self._export_transactions(user_token, request)

    async def export_transactions_to_refund(self, user_token: UserToken, request: dict) -> str:
        return await self._export_transactions(user_token, {**request, "Issuer": "true"})

    async def _export_transactions(self, user_token: UserToken, request: dict) -> str:
        """Render every completed transaction matching the request, one store page at a time."""
        method = "export_transactions"
        tenant_id = user_token.tenant_id
        self.authorizations.assert_can(
            user_token, Action.LIST, Entity.TRANSACTIONS, module=MODULE_NAME, method=method
        )
        tx_filter = self._build_transaction_filter(user_token, request, completed=True)
        tx_filter.statistics = None
        sort = security.parse_db_params(request).sort

        chunks = []
        skip = 0
        while True:
            page = await self.tx_repo.get_transactions(
                tenant_id,
                tx_filter,
                DbParams(limit=config.EXPORT_PAGE_SIZE, skip=skip, sort=sort),
            )
            users = await self._load_users(tenant_id, page.result)
            chunks.append(convert_to_csv(page.result, users, write_header=skip == 0))
            skip += len(page.result)
            if len(page.result) < config.EXPORT_PAGE_SIZE:
                break
        return "".join(chunks)

    # Refund synchronization

    async def synchronize_refunded_transactions(self, user_token: UserToken) -> dict:
        method = "synchronize_refunded_transactions"
        if not self.authorizations.is_admin(user_token):
            raise AuthorizationError(
                user_token.id,
                Action.UPDATE.value,
                Entity.TRANSACTION.value,
                module=MODULE_NAME,
                method=method,
            )
        tenant = await self.tenant_repo.get_by_id(user_token.tenant_id)
        self._assert_object_exists(
            tenant, f"Tenant with ID '{user_token.tenant_id}' does not exist", method
        )
        task = SynchronizeRefundTransactionsTask(
            self.db, integration_factory=self.integrations, plugins=self.plugins
        )
        result = await task.process_tenant(tenant) or ActionsResponse()
        return {**REST_RESPONSE_SUCCESS, **result.to_dict()}

    # Helpers

    async def _get_transactions(
        self, user_token: UserToken, request: dict, completed: bool
    ) -> dict:
        method = "get_transactions"
        self.authorizations.assert_can(
            user_token, Action.LIST, Entity.TRANSACTIONS, module=MODULE_NAME, method=method
        )
        tx_filter = self._build_transaction_filter(user_token, request, completed)
        transactions = await self.tx_repo.get_transactions(
            user_token.tenant_id, tx_filter, security.parse_db_params(request)
        )
        users = await self._load_users(user_token.tenant_id, transactions.result)
        return security.filter_transactions_response(transactions, user_token, users)

    def _build_transaction_filter(
        self, user_token: UserToken, request: dict, completed: bool
    ) -> TransactionFilter:
        """Translate request parameters into a filter scoped to what the caller may see."""
        site_ids = security.split_values(request, "SiteID")
        return TransactionFilter(
            completed=completed,
            issuer=security.parse_bool(request, "Issuer"),
            charge_box_ids=security.split_values(request, "ChargeBoxID"),
            connector_id=security.parse_int(request, "ConnectorId"),
            user_ids=security.split_values(request, "UserID"),
            tag_ids=security.split_values(request, "TagID"),
            owner_id=user_token.id if self.authorizations.is_basic(user_token) else None,
            site_area_ids=security.split_values(request, "SiteAreaID"),
            site_ids=(
                self.authorizations.get_authorized_site_admin_ids(user_token, site_ids)
                if site_ids
                else None
            ),
            site_admin_ids=self.authorizations.get_authorized_site_admin_ids(user_token),
            start_date_time=security.parse_datetime(request, "StartDateTime"),
            end_date_time=security.parse_datetime(request, "EndDateTime"),
            refund_status=security.split_values(request, "RefundStatus"),
            minimal_price=security.parse_float(request, "MinimalPrice"),
            statistics=security.parse_str(request, "Statistics"),
            search=security.parse_str(request, "Search"),
            report_ids=security.split_values(request, "ReportIDs"),
            inactivity_status=security.split_values(request, "InactivityStatus"),
        )

    async def _load_users(self, tenant_id: str, items: list) -> dict[str, User]:
        user_ids = []
        for item in items:
            transaction = item.transaction if isinstance(item, TransactionInError) else item
            if transaction.user_id:
                user_ids.append(transaction.user_id)
        return await self.user_repo.get_by_ids(tenant_id, user_ids)
