"""
Tests for the record data model and the confirmation-status state machine.
"""

from datetime import date, datetime

import pytest

from memory_proxy.core.errors import ValidationError
from memory_proxy.core.schema import (
    COLUMNS,
    ConfirmationStatus,
    Draft,
    Record,
    can_transition,
    parse_date,
    parse_record_id,
    parse_status,
)


class TestConfirmationStatus:
    """Test status parsing and automatic transitions."""

    def test_parse_known_values(self):
        assert parse_status("pending") == ConfirmationStatus.PENDING
        assert parse_status("Confirmed ") == ConfirmationStatus.CONFIRMED
        assert parse_status("auto-deleted") == ConfirmationStatus.AUTO_DELETED

    def test_parse_unknown_value(self):
        with pytest.raises(ValidationError, match="Invalid confirmation status"):
            parse_status("archived")

    def test_pending_moves_forward(self):
        assert can_transition("pending", "confirmed")
        assert can_transition("pending", "auto-deleted")

    def test_terminal_states_have_no_automatic_exits(self):
        for target in ConfirmationStatus:
            assert not can_transition(ConfirmationStatus.CONFIRMED, target)
            assert not can_transition(ConfirmationStatus.AUTO_DELETED, target)

    def test_unknown_states_never_transition(self):
        assert not can_transition("", "confirmed")
        assert not can_transition("pending", "archived")


class TestParsing:
    """Test cell parsing helpers."""

    def test_parse_iso_date(self):
        assert parse_date("2025-03-01") == date(2025, 3, 1)

    def test_parse_iso_timestamp_keeps_day(self):
        assert parse_date("2025-03-01T23:59:00.000Z") == date(2025, 3, 1)

    def test_parse_us_style_date(self):
        assert parse_date("3/1/2025") == date(2025, 3, 1)

    def test_parse_datetime_object(self):
        assert parse_date(datetime(2025, 3, 1, 12, 0)) == date(2025, 3, 1)

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", "2025-13-45"])
    def test_unparseable_dates(self, value):
        assert parse_date(value) is None

    @pytest.mark.parametrize("value,expected", [("7", 7), (" 12 ", 12), (3, 3), ("0", None), ("-4", None), ("abc", None), ("", None)])
    def test_parse_record_id(self, value, expected):
        assert parse_record_id(value) == expected


class TestRecordMapping:
    """Test mapping between store rows and records."""

    def test_from_row(self):
        row = ["4", "Billing", "invoice, tax", "Net 30 terms", "2025-03-01", "pending"]
        record = Record.from_row(row)

        assert record.id == 4
        assert record.topics == "Billing"
        assert record.tags == "invoice, tax"
        assert record.key_facts == "Net 30 terms"
        assert record.last_updated == date(2025, 3, 1)
        assert record.status == ConfirmationStatus.PENDING

    def test_from_short_row_fills_blanks(self):
        record = Record.from_row(["9", "Topic"])

        assert record.id == 9
        assert record.tags == ""
        assert record.last_updated is None
        assert record.confirmation_status == ""
        assert record.status is None

    def test_from_row_normalizes_status_case(self):
        record = Record.from_row(["1", "T", "t", "k", "2025-03-01", " Pending "])

        assert record.confirmation_status == "pending"

    def test_from_row_without_usable_id(self):
        assert Record.from_row(["", "Topic", "t", "facts", "2025-03-01", "pending"]) is None
        assert Record.from_row([]) is None

    def test_to_row_follows_column_order(self):
        record = Record(
            id=2,
            topics="Ops",
            tags="deploy",
            key_facts="Friday freeze",
            last_updated=date(2025, 1, 2),
            confirmation_status="confirmed",
        )
        row = record.to_row()

        assert len(row) == len(COLUMNS)
        assert row == [2, "Ops", "deploy", "Friday freeze", "2025-01-02", "confirmed"]

    def test_to_dict(self):
        record = Record(2, "Ops", "deploy", "Friday freeze", date(2025, 1, 2))
        data = record.to_dict()

        assert data["last_updated"] == "2025-01-02"
        assert data["confirmation_status"] == "pending"


class TestDraft:

    def test_to_dict_reports_pending(self):
        draft = Draft(token="abc", topics="T", tags="x", key_facts="k", last_updated=date(2025, 1, 1))
        data = draft.to_dict()

        assert data["token"] == "abc"
        assert data["confirmation_status"] == "pending"
        assert data["last_updated"] == "2025-01-01"
