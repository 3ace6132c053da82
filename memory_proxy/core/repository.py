"""
Record CRUD and filtering over the durable store.

Every call re-reads the store. Row positions are recomputed from the fresh
snapshot immediately before each mutation because other deletions may have
shifted them since the last read.
"""

import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple

from .errors import NotFound, StaleRowPosition, ValidationError
from .schema import (
    HEADER_ROWS,
    STATUS_COLUMN,
    ConfirmationStatus,
    Record,
    parse_date,
    parse_record_id,
    parse_status,
)
from .store import StoreAdapter
from util.logging import logger

# Attempts to re-resolve a row position that shifted under a concurrent delete
POSITION_RETRIES = 3


@dataclass
class RecordFilter:
    """AND-combined record filter. Unset fields match everything."""
    topic: Optional[str] = None
    tag: Optional[str] = None
    since: Optional[date] = None
    q: Optional[str] = None

    @classmethod
    def from_params(cls, topic: str = None, tag: str = None, since: str = None, q: str = None) -> "RecordFilter":
        """Build a filter from raw query parameters, rejecting unparseable dates."""
        since_date = None
        if since:
            since_date = parse_date(since)
            if since_date is None:
                raise ValidationError(f"Invalid 'since' date: {since}")

        return cls(topic=topic or None, tag=tag or None, since=since_date, q=q or None)

    def matches(self, record: Record) -> bool:
        if self.topic and record.topics.lower() != self.topic.lower():
            return False

        if self.tag and self.tag.lower() not in record.tags.lower():
            return False

        if self.since:
            # Records without a readable date never satisfy a lower bound
            if record.last_updated is None or record.last_updated < self.since:
                return False

        if self.q:
            query = self.q.lower()
            if not any(query in value.lower() for value in record.field_values()):
                return False

        return True


class RecordRepository:
    """CRUD over records fetched through a StoreAdapter."""

    def __init__(self, store: StoreAdapter, today: Callable[[], date] = None):
        self.store = store
        self._today = today or date.today
        # Serializes read-max-append so concurrent creates never share an id
        self._create_lock = threading.Lock()
        # Highest id assigned by this process; deleting the top row must not free its id
        self._high_water = 0

    def _snapshot(self) -> List[Tuple[int, Record]]:
        """Read the store and return (row position, record) pairs."""
        rows = self.store.read_all()
        records = []

        for offset, row in enumerate(rows[HEADER_ROWS:]):
            record = Record.from_row(row)
            if record is None:
                if any(str(cell).strip() for cell in row):
                    logger.warning(f"Skipping row {offset + HEADER_ROWS} with unusable ID: {row[:1]}")
                continue
            records.append((offset + HEADER_ROWS, record))

        return records

    def _locate(self, record_id: int) -> Tuple[int, Record]:
        for position, record in self._snapshot():
            if record.id == record_id:
                return position, record
        raise NotFound(f"Record with ID {record_id} not found (it may have been deleted)")

    def _next_id(self) -> int:
        max_id = self._high_water
        for row in self.store.read_all()[HEADER_ROWS:]:
            record_id = parse_record_id(row[0] if row else None)
            if record_id is not None and record_id > max_id:
                max_id = record_id
        return max_id + 1

    def list(self, record_filter: RecordFilter = None) -> List[Record]:
        """Return all records matching the filter, in store order."""
        record_filter = record_filter or RecordFilter()
        return [record for _, record in self._snapshot() if record_filter.matches(record)]

    def get(self, record_id: int) -> Record:
        _, record = self._locate(record_id)
        return record

    def create(self, topics: str, tags: str, key_facts: str, confirmation_status=None) -> Record:
        """Validate, assign the next id and append one row."""
        missing = [
            name for name, value in (("topics", topics), ("tags", tags), ("key_facts", key_facts))
            if value is None or not str(value).strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        status = parse_status(confirmation_status) if confirmation_status else ConfirmationStatus.PENDING

        with self._create_lock:
            record = Record(
                id=self._next_id(),
                topics=str(topics),
                tags=str(tags),
                key_facts=str(key_facts),
                last_updated=self._today(),
                confirmation_status=status.value,
            )
            self.store.append(record.to_row())
            self._high_water = record.id

        logger.log_record_operation("create", record.id, details={
            "topics": record.topics,
            "confirmation_status": record.confirmation_status,
        })
        return record

    def update_status(self, record_id: int, status) -> Record:
        """Overwrite the status cell of one record.

        Manual override: any status may be set regardless of the current one.
        Only the status cell is written; last_updated keeps its value.
        """
        new_status = parse_status(status)

        for _ in range(POSITION_RETRIES):
            position, record = self._locate(record_id)
            try:
                self.store.update_cell(position, STATUS_COLUMN, new_status.value, expected_id=record_id)
                break
            except StaleRowPosition:
                logger.warning(f"Record {record_id} moved from row {position}; re-resolving")
        else:
            raise StaleRowPosition(f"Record {record_id} kept moving; gave up after {POSITION_RETRIES} attempts")

        previous = record.confirmation_status
        record.confirmation_status = new_status.value
        logger.log_record_operation("update_status", record_id, details={
            "from": previous,
            "to": new_status.value,
        })
        return record

    def delete(self, record_id: int, only_if: Callable[[Record], bool] = None) -> bool:
        """Hard-delete a record's row.

        When only_if is given it is evaluated against the freshly read record and
        the row is kept if it returns False. Returns True when the row was removed.
        The store refuses the delete if the row at the resolved position no
        longer holds record_id, in which case the position is resolved again.
        """
        for _ in range(POSITION_RETRIES):
            position, record = self._locate(record_id)

            if only_if is not None and not only_if(record):
                logger.log_record_operation("delete", record_id, status="skipped", details={
                    "reason": "precondition_not_met",
                    "confirmation_status": record.confirmation_status,
                })
                return False

            try:
                self.store.delete_rows(position, position + 1, expected_id=record_id)
            except StaleRowPosition:
                logger.warning(f"Record {record_id} moved from row {position}; re-resolving")
                continue

            logger.log_record_operation("delete", record_id)
            return True

        raise StaleRowPosition(f"Record {record_id} kept moving; gave up after {POSITION_RETRIES} attempts")
