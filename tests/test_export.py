"""Tests for the CSV export of charging sessions."""

import hashlib

import pytest

from chargeledger.models import User
from chargeledger.services.export import (
    CSV_HEADER,
    convert_to_csv,
    format_number,
    hash_user_id,
    round_half_up,
)
from conftest import TENANT_ID, make_transaction

OWNER = User(id="basic1", tenant_id=TENANT_ID, name="Doe", first_name="John")


@pytest.mark.unit
class TestNumberFormatting:
    """Test rounding and number rendering used by the export."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.4) == 2
        assert round_half_up(0.125, 2) == 0.13

    def test_round_half_up_returns_int_without_digits(self):
        assert isinstance(round_half_up(10.0), int)

    def test_format_number(self):
        assert format_number(3.0) == "3"
        assert format_number(11) == "11"
        assert format_number(4.25) == "4.25"


@pytest.mark.unit
class TestConvertToCsv:
    """Test CSV rendering."""

    def test_header_and_row(self):
        csv = convert_to_csv([make_transaction(1)], {"basic1": OWNER})

        header, row, trailing = csv.split("\r\n")
        assert header == ",".join(CSV_HEADER)
        assert trailing == ""
        assert row == ",".join(
            [
                "1",
                "CS1",
                "1",
                hashlib.sha256(b"basic1").hexdigest(),
                "John Doe",
                "2024-05-01",
                "08:00:00",
                "2024-05-01",
                "09:00:00",
                "11",
                "60",
                "10",
                "4.5",
                "EUR",
            ]
        )

    def test_without_header(self):
        csv = convert_to_csv([make_transaction(1), make_transaction(2)], write_header=False)

        lines = csv.split("\r\n")[:-1]
        assert len(lines) == 2
        assert lines[0].startswith("1,CS1,1,,,")
        assert lines[1].startswith("2,CS1,1,,,")

    def test_active_transaction_leaves_stop_cells_empty(self):
        csv = convert_to_csv([make_transaction(3, completed=False)], write_header=False)

        assert csv == "3,CS1,1,,,2024-05-01,08:00:00,,,,,,,\r\n"

    def test_missing_price(self):
        tx = make_transaction(4)
        tx.stop.price = None
        tx.stop.price_unit = None

        csv = convert_to_csv([tx], write_header=False)

        assert csv.endswith(",11,60,10,,\r\n")

    def test_price_rounding(self):
        tx = make_transaction(5)
        tx.stop.price = 0.125

        csv = convert_to_csv([tx], write_header=False)

        assert csv.endswith(",0.13,EUR\r\n")

    def test_unknown_owner_is_blank(self):
        csv = convert_to_csv([make_transaction(6, user_id="gone")], {"basic1": OWNER}, False)

        assert csv.startswith("6,CS1,1,,,")

    def test_empty_export(self):
        assert convert_to_csv([], write_header=False) == ""

    def test_hash_user_id_is_stable(self):
        assert hash_user_id("basic1") == hash_user_id("basic1")
        assert hash_user_id("basic1") != hash_user_id("basic2")
        assert len(hash_user_id("basic1")) == 64
