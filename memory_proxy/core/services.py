"""
Composition root - builds the repository, draft queue, sweeper and heartbeat
and wires the periodic tasks.
"""

from dataclasses import dataclass
from typing import Optional

from .config import (
    INACTIVITY_POLL_SEC,
    INACTIVITY_QUIET_SEC,
    PENDING_TTL_DAYS,
    SWEEP_INTERVAL_SEC,
    SWEEP_ON_STARTUP,
    validate_heartbeat_config,
    validate_store_config,
)
from .drafts import DraftQueue, InactivityWatcher
from .heartbeat import Heartbeat
from .repository import RecordRepository
from .store import StoreAdapter, build_store
from .sweeper import StalenessSweeper
from util.logging import logger

SWEEP_TASK = "staleness_sweep"
INACTIVITY_TASK = "draft_inactivity"


@dataclass
class ProxyServices:
    store: StoreAdapter
    repository: RecordRepository
    drafts: DraftQueue
    watcher: InactivityWatcher
    sweeper: StalenessSweeper
    heartbeat: Heartbeat

    def start(self):
        if not self.heartbeat.running:
            self.heartbeat.start()

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop background tasks, then release the store once nothing can still use it."""
        if not self.heartbeat.stop(timeout):
            logger.warning("Store left open: a background task is still running")
            return False
        self.store.close()
        return True


def build_services(store: Optional[StoreAdapter] = None, ttl_days: int = None,
                   quiet_period_sec: float = None, sweep_on_startup: bool = None) -> ProxyServices:
    """Build the service graph. Tasks are registered but the heartbeat is not started."""
    if store is None:
        issues = validate_store_config()
        if issues:
            raise ValueError(f"Store configuration invalid: {issues}")
        store = build_store()

    issues = validate_heartbeat_config()
    if issues:
        raise ValueError(f"Heartbeat configuration invalid: {issues}")

    repository = RecordRepository(store)
    drafts = DraftQueue(repository)
    watcher = InactivityWatcher(
        drafts,
        quiet_period_sec=INACTIVITY_QUIET_SEC if quiet_period_sec is None else quiet_period_sec,
    )
    sweeper = StalenessSweeper(repository, ttl_days=PENDING_TTL_DAYS if ttl_days is None else ttl_days)

    heartbeat = Heartbeat()
    heartbeat.register_task(
        SWEEP_TASK,
        SWEEP_INTERVAL_SEC,
        sweeper.sweep,
        run_immediately=SWEEP_ON_STARTUP if sweep_on_startup is None else sweep_on_startup,
    )
    heartbeat.register_task(INACTIVITY_TASK, INACTIVITY_POLL_SEC, watcher.check, run_immediately=False)

    return ProxyServices(
        store=store,
        repository=repository,
        drafts=drafts,
        watcher=watcher,
        sweeper=sweeper,
        heartbeat=heartbeat,
    )
