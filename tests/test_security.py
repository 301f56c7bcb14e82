"""Tests for request sanitization, response redaction and authorizations."""

from datetime import UTC, datetime

import pytest

from chargeledger.authorizations import Authorizations
from chargeledger.errors import AuthorizationError, ErrorCode, ValidationError
from chargeledger.models import (
    Action,
    DataResult,
    Entity,
    RefundReport,
    TransactionInError,
    User,
    UserToken,
)
from chargeledger.services import security
from conftest import ALL_COMPONENTS, TENANT_ID, make_transaction


@pytest.mark.unit
class TestRequestParsing:
    """Test parsing of raw request values."""

    def test_parse_int(self):
        assert security.parse_int({"id": "12"}, "id") == 12
        assert security.parse_int({"id": 7}, "id") == 7
        assert security.parse_int({}, "id") is None
        assert security.parse_int({"id": ""}, "id") is None

    @pytest.mark.parametrize("value", ["abc", True, [1]])
    def test_parse_int_rejects(self, value):
        with pytest.raises(ValidationError) as exc_info:
            security.parse_int({"id": value}, "id")

        assert exc_info.value.error_code == ErrorCode.INVALID_PARAMETER
        assert exc_info.value.detailed_messages["parameter"] == "id"

    def test_parse_int_list(self):
        assert security.parse_int_list({"ids": [1, "2"]}, "ids") == [1, 2]
        assert security.parse_int_list({"ids": "1|999|"}, "ids") == [1, 999]
        assert security.parse_int_list({"ids": []}, "ids") == []
        assert security.parse_int_list({}, "ids") is None

    @pytest.mark.parametrize("value", [[1, "x"], [False], 12, {"a": 1}])
    def test_parse_int_list_rejects(self, value):
        with pytest.raises(ValidationError):
            security.parse_int_list({"ids": value}, "ids")

    def test_split_values(self):
        assert security.split_values({"s": " a|b||c "}, "s") == ["a", "b", "c"]
        assert security.split_values({"s": "  "}, "s") is None

    @pytest.mark.parametrize(
        "value,expected",
        [(True, True), ("true", True), ("1", True), ("No", False), ("false", False), ("", None)],
    )
    def test_parse_bool(self, value, expected):
        assert security.parse_bool({"b": value}, "b") is expected

    def test_parse_bool_rejects(self):
        with pytest.raises(ValidationError):
            security.parse_bool({"b": "maybe"}, "b")

    def test_parse_datetime(self):
        expected = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)

        assert security.parse_datetime({"d": "2024-05-01T08:00:00Z"}, "d") == expected
        assert security.parse_datetime({"d": "2024-05-01T08:00:00"}, "d") == expected
        assert security.parse_datetime({"d": expected}, "d") == expected
        assert security.parse_datetime({}, "d") is None

    def test_parse_datetime_rejects(self):
        with pytest.raises(ValidationError):
            security.parse_datetime({"d": "yesterday"}, "d")

    def test_parse_db_params_defaults(self):
        params = security.parse_db_params({})

        assert params.limit == 100
        assert params.skip == 0
        assert params.sort is None
        assert params.only_record_count is False

    def test_parse_db_params(self):
        params = security.parse_db_params(
            {"Limit": "5000", "Skip": "20", "Sort": "-timestamp,id", "OnlyRecordCount": "true"}
        )

        assert params.limit == 1000
        assert params.skip == 20
        assert params.sort == "-timestamp,id"
        assert params.only_record_count is True

    @pytest.mark.parametrize("request_data", [{"Skip": "-1"}, {"Sort": "password"}])
    def test_parse_db_params_rejects(self, request_data):
        with pytest.raises(ValidationError):
            security.parse_db_params(request_data)


def token(user_id: str, role: str, site_admin_ids=None, components=None) -> UserToken:
    return UserToken(
        id=user_id,
        tenant_id=TENANT_ID,
        role=role,
        site_admin_ids=site_admin_ids or [],
        active_components=set(ALL_COMPONENTS if components is None else components),
    )


@pytest.mark.unit
class TestResponseFiltering:
    """Test redaction of owner identity."""

    def test_owner_sees_identity(self):
        owner = User(id="basic1", name="Doe", first_name="John")

        data = security.filter_transaction_response(
            make_transaction(1), token("basic1", "B"), owner
        )

        assert data["userID"] == "basic1"
        assert data["tagID"] == "TAG1"
        assert data["user"] == {"id": "basic1", "name": "Doe", "firstName": "John"}
        assert data["stop"]["tagID"] == "TAG1"
        assert data["stop"]["totalConsumptionWh"] == 11000
        assert data["timestamp"] == "2024-05-01T08:00:00+00:00"

    def test_demo_never_sees_identity(self):
        data = security.filter_transaction_response(make_transaction(1), token("demo1", "D"))

        assert "userID" not in data
        assert "tagID" not in data
        assert "userID" not in data["stop"]
        assert data["stop"]["price"] == 4.5

    def test_site_admin_sees_identity(self):
        data = security.filter_transaction_response(
            make_transaction(1), token("basic2", "B", site_admin_ids=["site1"])
        )

        assert data["userID"] == "basic1"

    def test_in_error_entries_carry_error_code(self):
        result = DataResult(
            count=1,
            result=[TransactionInError(transaction=make_transaction(1), error_code="missing_user")],
        )

        response = security.filter_transactions_response(result, token("admin1", "A"))

        assert response["count"] == 1
        assert response["result"][0]["errorCode"] == "missing_user"
        assert "stats" not in response

    def test_refund_reports_hide_user_from_demo(self):
        reports = DataResult(
            count=1,
            result=[RefundReport(id="REP1", user_id="basic1", transaction_count=2)],
        )

        assert "userID" not in security.filter_refund_reports_response(
            reports, token("demo1", "D")
        )["result"][0]
        assert (
            security.filter_refund_reports_response(reports, token("admin1", "A"))["result"][0][
                "userID"
            ]
            == "basic1"
        )


@pytest.mark.unit
class TestAuthorizations:
    """Test role based capability checks."""

    def test_admin_can_delete_any_transaction(self):
        auth = Authorizations()

        assert auth.can(token("admin1", "A"), Action.DELETE, Entity.TRANSACTION, make_transaction(1))

    def test_basic_user_reads_own_transactions_only(self):
        auth = Authorizations()
        user = token("basic1", "B")

        assert auth.can(user, Action.READ, Entity.TRANSACTION, make_transaction(1))
        assert not auth.can(
            user, Action.READ, Entity.TRANSACTION, make_transaction(2, user_id="basic2")
        )
        assert not auth.can(user, Action.DELETE, Entity.TRANSACTION, make_transaction(1))

    def test_site_admin_acts_on_site_transactions(self):
        auth = Authorizations()
        site_admin = token("basic2", "B", site_admin_ids=["site1"])

        assert auth.can(site_admin, Action.REFUND_TRANSACTION, Entity.TRANSACTION, make_transaction(1))
        assert auth.can(site_admin, Action.LIST, Entity.TRANSACTIONS_IN_ERROR)
        assert not auth.can(
            site_admin,
            Action.READ,
            Entity.TRANSACTION,
            make_transaction(2, site_id="site9", user_id="basic1"),
        )

    def test_demo_user_reads_any_transaction(self):
        auth = Authorizations()
        demo = token("demo1", "D")
        foreign = make_transaction(1, user_id="basic2", site_id="site9")

        assert auth.can(demo, Action.READ, Entity.TRANSACTION, foreign)
        assert not auth.can(demo, Action.REFUND_TRANSACTION, Entity.TRANSACTION, foreign)
        assert not auth.can(demo, Action.DELETE, Entity.TRANSACTION, foreign)

    def test_basic_user_cannot_list_in_error(self):
        assert not Authorizations().can(
            token("basic1", "B"), Action.LIST, Entity.TRANSACTIONS_IN_ERROR
        )

    def test_assert_can_raises(self):
        with pytest.raises(AuthorizationError) as exc_info:
            Authorizations().assert_can(
                token("demo1", "D"), Action.DELETE, Entity.TRANSACTION, value="1"
            )

        assert exc_info.value.error_code == ErrorCode.AUTHORIZATION_DENIED

    def test_authorized_site_admin_ids(self):
        auth = Authorizations()
        site_admin = token("basic2", "B", site_admin_ids=["site1", "site2"])

        assert auth.get_authorized_site_admin_ids(token("admin1", "A")) is None
        assert auth.get_authorized_site_admin_ids(token("admin1", "A"), ["site9"]) == ["site9"]
        assert auth.get_authorized_site_admin_ids(site_admin) == ["site1", "site2"]
        assert auth.get_authorized_site_admin_ids(site_admin, ["site2", "site9"]) == ["site2"]
        assert auth.get_authorized_site_admin_ids(token("basic1", "B")) is None

    def test_organization_inactive_lifts_site_scope(self):
        site_admin = token("basic2", "B", site_admin_ids=["site1"], components={"refund"})

        assert Authorizations().get_authorized_site_admin_ids(site_admin, ["site1"]) is None
