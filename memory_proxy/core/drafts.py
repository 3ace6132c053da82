"""
Pending draft queue - summary cards waiting for human confirmation.

Drafts live only in this process and are lost on restart. Each draft is
identified by the token returned from preview(); save() and discard() take
that token, so two drafts with identical content are never confused.
"""

import threading
import time
import uuid
from collections import OrderedDict
from datetime import date
from typing import Callable, Dict, List, Optional

from .config import (
    DRAFT_DEFAULT_TAGS,
    DRAFT_DEFAULT_TOPICS,
    DRAFT_PLACEHOLDER_FACTS,
    INACTIVITY_QUIET_SEC,
)
from .errors import NotFound
from .repository import RecordRepository
from .schema import ConfirmationStatus, Draft, Record
from util.logging import logger


class DraftQueue:
    """Ordered, lock-guarded queue of drafts plus its last-activity timestamp."""

    def __init__(self, repository: RecordRepository, clock: Callable[[], float] = None,
                 today: Callable[[], date] = None):
        self.repository = repository
        self._clock = clock or time.monotonic
        self._today = today or date.today
        self._lock = threading.Lock()
        self._drafts: "OrderedDict[str, Draft]" = OrderedDict()
        self._last_activity = self._clock()

    def _touch(self):
        # Caller holds the lock
        self._last_activity = self._clock()

    def preview(self, content: str = "", topics: str = None, tags: str = None) -> Draft:
        """Create a draft summary card and queue it."""
        draft = Draft(
            token=uuid.uuid4().hex,
            topics=topics or DRAFT_DEFAULT_TOPICS,
            tags=tags or DRAFT_DEFAULT_TAGS,
            key_facts=content if content and content.strip() else DRAFT_PLACEHOLDER_FACTS,
            last_updated=self._today(),
        )

        with self._lock:
            self._drafts[draft.token] = draft
            self._touch()
            pending = len(self._drafts)

        logger.log_draft_operation("preview", draft.token, details={"pending": pending})
        return draft

    def save(self, token: str) -> Record:
        """Persist a queued draft as a confirmed record and remove it from the queue.

        The lock is held across the store call so a concurrent save or discard
        of the same draft cannot interleave. If persistence fails the draft
        stays queued and the error propagates.
        """
        with self._lock:
            draft = self._drafts.get(token)
            if draft is None:
                raise NotFound(f"Draft {token} is not pending (already saved or discarded)")

            try:
                record = self.repository.create(
                    topics=draft.topics,
                    tags=draft.tags,
                    key_facts=draft.key_facts,
                    confirmation_status=ConfirmationStatus.CONFIRMED,
                )
            except Exception as e:
                logger.log_draft_operation("save", token, status="failed", details={"error": str(e)})
                raise

            del self._drafts[token]
            self._touch()

        logger.log_draft_operation("save", token, details={"record_id": record.id})
        return record

    def discard(self, token: str) -> None:
        """Drop a queued draft without persisting anything."""
        with self._lock:
            if token not in self._drafts:
                raise NotFound(f"Draft {token} is not pending (already saved or discarded)")
            del self._drafts[token]
            self._touch()

        logger.log_draft_operation("discard", token)

    def get(self, token: str) -> Draft:
        with self._lock:
            draft = self._drafts.get(token)
        if draft is None:
            raise NotFound(f"Draft {token} is not pending")
        return draft

    def list_pending(self) -> List[Draft]:
        """Snapshot of queued drafts in insertion order."""
        with self._lock:
            return list(self._drafts.values())

    def activity_snapshot(self):
        """Return (pending drafts, last activity timestamp) read atomically."""
        with self._lock:
            return list(self._drafts.values()), self._last_activity

    def __len__(self):
        with self._lock:
            return len(self._drafts)


class InactivityWatcher:
    """Emits a notification when drafts sit unconfirmed through a quiet period.

    Fires at most once per quiet period: after notifying it stays silent until
    a queue mutation moves the activity timestamp. It never mutates the queue.
    """

    def __init__(self, queue: DraftQueue, quiet_period_sec: float = None,
                 clock: Callable[[], float] = None):
        self.queue = queue
        self.quiet_period_sec = INACTIVITY_QUIET_SEC if quiet_period_sec is None else quiet_period_sec
        self._clock = clock or time.monotonic
        self._listeners: List[Callable[[List[Draft], float], None]] = []
        self._notified_for: Optional[float] = None
        self._lock = threading.Lock()

    def add_listener(self, listener: Callable[[List[Draft], float], None]):
        """Register a callable invoked with (pending drafts, idle seconds)."""
        if not callable(listener):
            raise ValueError(f"Listener must be callable: {listener}")
        self._listeners.append(listener)

    def check(self) -> bool:
        """Poll once. Returns True when a notification was emitted."""
        drafts, last_activity = self.queue.activity_snapshot()
        idle = self._clock() - last_activity

        with self._lock:
            if not drafts or idle < self.quiet_period_sec:
                return False
            if self._notified_for == last_activity:
                return False
            self._notified_for = last_activity

        logger.log_inactivity_alert(
            pending_count=len(drafts),
            idle_seconds=idle,
            drafts=[{"token": d.token, "topics": d.topics, "key_facts": d.key_facts} for d in drafts],
        )

        for listener in self._listeners:
            try:
                listener(drafts, idle)
            except Exception as e:
                logger.error(f"Inactivity listener {listener!r} failed: {e}")

        return True

    def status(self) -> Dict:
        drafts, last_activity = self.queue.activity_snapshot()
        return {
            "pending_count": len(drafts),
            "idle_seconds": round(self._clock() - last_activity, 1),
            "quiet_period_sec": self.quiet_period_sec,
            "notified": self._notified_for == last_activity,
        }
