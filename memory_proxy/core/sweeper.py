"""
Staleness sweeper - evicts records stuck in 'pending' beyond the TTL.

Eviction policy is hard delete: a stale pending record's row is removed from
the store. The same policy is used by the scheduled sweep, the manual cleanup
endpoint and the sweep CLI.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from .config import PENDING_TTL_DAYS
from .errors import NotFound
from .repository import RecordRepository
from .schema import ConfirmationStatus, Record, can_transition
from util.logging import logger, audit_event


@dataclass
class SweepReport:
    """Outcome of one sweep cycle."""
    started_at: datetime
    completed_at: Optional[datetime] = None
    ttl_days: int = PENDING_TTL_DAYS
    dry_run: bool = False
    scanned: int = 0
    evicted_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "started_at": self.started_at.isoformat(),
            "ttl_days": self.ttl_days,
            "dry_run": self.dry_run,
            "scanned": self.scanned,
            "evicted_ids": self.evicted_ids,
            "skipped_ids": self.skipped_ids,
            "errors": self.errors,
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


class StalenessSweeper:
    """Scans every record and evicts pending ones older than the TTL."""

    def __init__(self, repository: RecordRepository, ttl_days: int = None,
                 today: Callable[[], date] = None):
        if ttl_days is None:
            ttl_days = PENDING_TTL_DAYS
        if ttl_days < 1:
            raise ValueError(f"TTL must be >= 1 day: {ttl_days}")

        self.repository = repository
        self.ttl_days = ttl_days
        self._today = today or date.today

    def age_days(self, record: Record, today: date) -> Optional[int]:
        if record.last_updated is None:
            return None
        return (today - record.last_updated).days

    def is_stale(self, record: Record, today: date) -> bool:
        """A record is stale when it is still pending and at least ttl_days old."""
        if not can_transition(record.confirmation_status, ConfirmationStatus.AUTO_DELETED):
            return False
        age = self.age_days(record, today)
        return age is not None and age >= self.ttl_days

    def sweep(self, dry_run: bool = False) -> SweepReport:
        """Run one sweep cycle.

        A failure to read the store propagates, since nothing could be evaluated.
        Failures on individual records are logged, recorded in the report and
        skipped.
        """
        today = self._today()
        start = time.monotonic()
        report = SweepReport(started_at=datetime.now(), ttl_days=self.ttl_days, dry_run=dry_run)

        records = self.repository.list()
        report.scanned = len(records)

        for record in records:
            if (record.confirmation_status == ConfirmationStatus.PENDING.value
                    and record.last_updated is None):
                report.errors.append(f"Record {record.id} has unreadable last_updated; skipped")
                continue

            if not self.is_stale(record, today):
                continue

            age = self.age_days(record, today)

            if dry_run:
                report.evicted_ids.append(record.id)
                logger.log_sweep_eviction(record.id, record.last_updated, age, dry_run=True)
                continue

            try:
                removed = self.repository.delete(
                    record.id,
                    only_if=lambda fresh: self.is_stale(fresh, today)
                )
            except NotFound:
                # Already gone, nothing left to evict
                report.skipped_ids.append(record.id)
                continue
            except Exception as e:
                logger.log_sweep_failure(record.id, e)
                report.errors.append(f"Failed to evict record {record.id}: {e}")
                continue

            if removed:
                report.evicted_ids.append(record.id)
                logger.log_sweep_eviction(record.id, record.last_updated, age)
            else:
                report.skipped_ids.append(record.id)

        report.completed_at = datetime.now()
        logger.log_sweep_summary(
            scanned=report.scanned,
            evicted=len(report.evicted_ids),
            skipped=len(report.skipped_ids),
            errors=len(report.errors),
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )

        if report.evicted_ids and not dry_run:
            audit_event(
                event_type="sweep.completed",
                identifiers={"evicted": len(report.evicted_ids)},
                payload={"evicted_ids": report.evicted_ids, "ttl_days": self.ttl_days},
            )

        return report
