"""
Tests for record CRUD and filtering in RecordRepository.
"""

import threading
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from memory_proxy.core.errors import NotFound, StaleRowPosition, UpstreamUnavailable, ValidationError
from memory_proxy.core.repository import POSITION_RETRIES, RecordFilter, RecordRepository
from memory_proxy.core.schema import COLUMNS, Record
from conftest import TODAY, days_ago


def _seed(store, rows):
    for row in rows:
        store.append(row)


class TestRecordFilter:
    """Test filter semantics on single records."""

    def _record(self, **overrides):
        values = dict(id=1, topics="Billing", tags="invoice, Tax", key_facts="Net 30 terms",
                      last_updated=date(2025, 3, 10), confirmation_status="pending")
        values.update(overrides)
        return Record(**values)

    def test_empty_filter_matches(self):
        assert RecordFilter().matches(self._record())

    def test_topic_is_exact_case_insensitive(self):
        assert RecordFilter(topic="billing").matches(self._record())
        assert not RecordFilter(topic="bill").matches(self._record())

    def test_tag_is_substring(self):
        assert RecordFilter(tag="tax").matches(self._record())
        assert not RecordFilter(tag="refund").matches(self._record())

    def test_since_is_inclusive(self):
        assert RecordFilter(since=date(2025, 3, 10)).matches(self._record())
        assert not RecordFilter(since=date(2025, 3, 11)).matches(self._record())

    def test_since_excludes_unreadable_dates(self):
        assert not RecordFilter(since=date(2000, 1, 1)).matches(self._record(last_updated=None))

    def test_q_searches_every_field(self):
        assert RecordFilter(q="NET 30").matches(self._record())
        assert RecordFilter(q="pending").matches(self._record())
        assert not RecordFilter(q="quarterly").matches(self._record())

    def test_filters_combine_with_and(self):
        record = self._record()
        assert RecordFilter(topic="billing", tag="invoice", q="net").matches(record)
        assert not RecordFilter(topic="billing", tag="refund").matches(record)

    def test_from_params_parses_since(self):
        record_filter = RecordFilter.from_params(topic="", since="3/1/2025")
        assert record_filter.topic is None
        assert record_filter.since == date(2025, 3, 1)

    def test_from_params_rejects_bad_since(self):
        with pytest.raises(ValidationError, match="since"):
            RecordFilter.from_params(since="last week")


class TestList:
    """Test listing records from the store."""

    def test_empty_store(self, repository):
        assert repository.list() == []

    def test_preserves_store_order(self, repository, store):
        _seed(store, [
            ["3", "C", "t", "k", days_ago(1), "pending"],
            ["1", "A", "t", "k", days_ago(1), "pending"],
            ["2", "B", "t", "k", days_ago(1), "confirmed"],
        ])

        assert [r.id for r in repository.list()] == [3, 1, 2]

    def test_skips_rows_without_usable_id(self, repository, store):
        _seed(store, [
            ["1", "A", "t", "k", days_ago(1), "pending"],
            ["", "", "", "", "", ""],
            ["oops", "B", "t", "k", days_ago(1), "pending"],
            ["2", "C", "t", "k", days_ago(1), "pending"],
        ])

        assert [r.id for r in repository.list()] == [1, 2]

    def test_applies_filter(self, repository, store):
        _seed(store, [
            ["1", "Billing", "invoice", "Net 30", days_ago(10), "pending"],
            ["2", "Billing", "refund", "Within 14 days", days_ago(2), "confirmed"],
            ["3", "Ops", "deploy", "Friday freeze", days_ago(1), "pending"],
        ])

        results = repository.list(RecordFilter(topic="billing", since=date.fromisoformat(days_ago(5))))

        assert [r.id for r in results] == [2]

    def test_store_failure_propagates(self):
        store = MagicMock()
        store.read_all.side_effect = UpstreamUnavailable("down")

        with pytest.raises(UpstreamUnavailable):
            RecordRepository(store).list()


class TestCreate:
    """Test record creation."""

    def test_first_id_is_one(self, repository, store):
        record = repository.create("Ops", "deploy", "Friday freeze")

        assert record.id == 1
        assert record.last_updated == TODAY
        assert record.confirmation_status == "pending"
        assert store.read_all()[1] == ["1", "Ops", "deploy", "Friday freeze", TODAY.isoformat(), "pending"]

    def test_id_is_max_plus_one(self, repository, store):
        _seed(store, [
            ["4", "A", "t", "k", days_ago(1), "pending"],
            ["9", "B", "t", "k", days_ago(1), "pending"],
            ["2", "C", "t", "k", days_ago(1), "pending"],
        ])

        assert repository.create("D", "t", "k").id == 10

    def test_deleted_top_id_is_not_reused(self, repository):
        repository.create("A", "t", "k")
        second = repository.create("B", "t", "k")
        repository.delete(second.id)

        assert repository.create("C", "t", "k").id == second.id + 1

    def test_fresh_repository_starts_from_store_max(self, repository, store):
        repository.create("A", "t", "k")
        repository.create("B", "t", "k")

        assert RecordRepository(store).create("C", "t", "k").id == 3

    def test_explicit_status(self, repository):
        assert repository.create("A", "t", "k", confirmation_status="Confirmed").confirmation_status == "confirmed"

    def test_invalid_status(self, repository, store):
        with pytest.raises(ValidationError):
            repository.create("A", "t", "k", confirmation_status="archived")
        assert store.read_all() == [COLUMNS]

    @pytest.mark.parametrize("topics,tags,key_facts,missing", [
        ("", "t", "k", "topics"),
        ("A", None, "k", "tags"),
        ("A", "t", "   ", "key_facts"),
    ])
    def test_missing_fields(self, repository, store, topics, tags, key_facts, missing):
        with pytest.raises(ValidationError, match=missing):
            repository.create(topics, tags, key_facts)
        assert store.read_all() == [COLUMNS]

    def test_concurrent_creates_get_distinct_ids(self, repository):
        ids = []
        errors = []

        def worker(n):
            try:
                ids.append(repository.create(f"Topic {n}", "t", "k").id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert sorted(ids) == list(range(1, 9))

    def test_append_failure_propagates(self):
        store = MagicMock()
        store.read_all.return_value = [COLUMNS]
        store.append.side_effect = UpstreamUnavailable("timeout")

        with pytest.raises(UpstreamUnavailable):
            RecordRepository(store).create("A", "t", "k")


class TestUpdateStatus:
    """Test manual status overrides."""

    def test_updates_only_status_cell(self, repository, store):
        _seed(store, [
            ["1", "A", "t", "k", days_ago(3), "pending"],
            ["2", "B", "t", "k", days_ago(30), "pending"],
        ])

        record = repository.update_status(2, "confirmed")

        assert record.confirmation_status == "confirmed"
        assert store.read_all()[2] == ["2", "B", "t", "k", days_ago(30), "confirmed"]
        assert store.read_all()[1][5] == "pending"

    def test_manual_override_from_terminal_state(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "confirmed"]])

        assert repository.update_status(1, "pending").confirmation_status == "pending"

    def test_unknown_id(self, repository):
        with pytest.raises(NotFound):
            repository.update_status(5, "confirmed")

    def test_invalid_status_writes_nothing(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "pending"]])

        with pytest.raises(ValidationError):
            repository.update_status(1, "done")
        assert store.read_all()[1][5] == "pending"

    def test_targets_current_position_after_shift(self, repository, store):
        _seed(store, [
            ["1", "A", "t", "k", days_ago(3), "pending"],
            ["2", "B", "t", "k", days_ago(3), "pending"],
            ["3", "C", "t", "k", days_ago(3), "pending"],
        ])
        repository.delete(1)

        repository.update_status(3, "confirmed")

        statuses = {r.id: r.confirmation_status for r in repository.list()}
        assert statuses == {2: "pending", 3: "confirmed"}

    def test_re_resolves_when_row_shifts_before_write(self, repository, store):
        _seed(store, [
            ["1", "A", "t", "k", days_ago(3), "pending"],
            ["2", "B", "t", "k", days_ago(3), "pending"],
            ["3", "C", "t", "k", days_ago(3), "pending"],
        ])
        real_update_cell = store.update_cell
        positions = []

        def update_cell_racing(row_index, column, value, expected_id=None):
            if not positions:
                # Another client deletes record 1 after the position was resolved
                store.delete_rows(1, 2)
            positions.append(row_index)
            return real_update_cell(row_index, column, value, expected_id=expected_id)

        with patch.object(store, "update_cell", side_effect=update_cell_racing):
            repository.update_status(2, "confirmed")

        assert positions == [2, 1]
        statuses = {r.id: r.confirmation_status for r in repository.list()}
        assert statuses == {2: "confirmed", 3: "pending"}

    def test_gives_up_when_row_keeps_moving(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "pending"]])

        with patch.object(store, "update_cell", side_effect=StaleRowPosition("moved")) as update_cell:
            with pytest.raises(StaleRowPosition):
                repository.update_status(1, "confirmed")

        assert update_cell.call_count == POSITION_RETRIES


class TestDelete:
    """Test record deletion."""

    def test_delete_removes_row(self, repository, store):
        _seed(store, [
            ["1", "A", "t", "k", days_ago(3), "pending"],
            ["2", "B", "t", "k", days_ago(3), "pending"],
        ])

        assert repository.delete(1) is True
        assert [r.id for r in repository.list()] == [2]

    def test_delete_unknown(self, repository):
        with pytest.raises(NotFound):
            repository.delete(42)

    def test_second_delete_is_not_found(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "pending"]])
        repository.delete(1)

        with pytest.raises(NotFound):
            repository.delete(1)

    def test_only_if_false_keeps_row(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "confirmed"]])

        removed = repository.delete(1, only_if=lambda r: r.confirmation_status == "pending")

        assert removed is False
        assert [r.id for r in repository.list()] == [1]

    def test_only_if_sees_fresh_record(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "pending"]])
        seen = []

        repository.delete(1, only_if=lambda r: seen.append(r.confirmation_status) or True)

        assert seen == ["pending"]

    def test_only_if_never_applies_to_row_shifted_into_place(self, repository, store):
        _seed(store, [
            ["1", "A", "t", "k", days_ago(30), "pending"],
            ["2", "B", "t", "k", days_ago(30), "pending"],
            ["3", "C", "t", "k", days_ago(3), "confirmed"],
        ])
        real_delete_rows = store.delete_rows
        positions = []

        def delete_rows_racing(start, end, expected_id=None):
            if not positions:
                # Another client deletes record 1 after record 2 was located
                real_delete_rows(1, 2)
            positions.append(start)
            return real_delete_rows(start, end, expected_id=expected_id)

        with patch.object(store, "delete_rows", side_effect=delete_rows_racing):
            removed = repository.delete(2, only_if=lambda r: r.confirmation_status == "pending")

        assert removed is True
        assert positions == [2, 1]
        assert [(r.id, r.confirmation_status) for r in repository.list()] == [(3, "confirmed")]

    def test_delete_gives_up_when_row_keeps_moving(self, repository, store):
        _seed(store, [["1", "A", "t", "k", days_ago(3), "pending"]])

        with patch.object(store, "delete_rows", side_effect=StaleRowPosition("moved")) as delete_rows:
            with pytest.raises(StaleRowPosition):
                repository.delete(1)

        assert delete_rows.call_count == POSITION_RETRIES
        assert [r.id for r in repository.list()] == [1]

    def test_get(self, repository, store):
        _seed(store, [["7", "A", "t", "k", days_ago(3), "pending"]])

        assert repository.get(7).topics == "A"
        with pytest.raises(NotFound):
            repository.get(8)
