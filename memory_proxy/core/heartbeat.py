"""
Heartbeat scheduler - runs periodic background tasks (staleness sweep,
draft inactivity watch) on a daemon thread with an explicit start/stop
lifecycle. run_pending() executes due tasks synchronously so tests can drive
a single cycle without waiting on wall-clock timers.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

from util.logging import logger


class Heartbeat:
    """Registry of periodic tasks plus the loop that runs them."""

    def __init__(self, tick_sec: float = 1.0, clock: Callable[[], float] = None):
        self.tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run, failures}
        self.tick_sec = tick_sec
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def register_task(self, name: str, interval_sec: float, func: Callable, run_immediately: bool = True):
        """
        Register a task to be executed periodically.

        Args:
            name: Unique task identifier; re-registering replaces the task
            interval_sec: How often to run this task in seconds
            func: Function to call
            run_immediately: Run on the first cycle instead of after one interval
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec <= 0:
            raise ValueError(f"Interval must be > 0 seconds: {interval_sec}")

        with self._lock:
            self.tasks[name] = {
                "func": func,
                "interval": interval_sec,
                "last_run": None if run_immediately else self._clock(),
                "failures": 0,
            }

        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")

    def unregister_task(self, name: str):
        """Remove a task from the registry."""
        with self._lock:
            removed = self.tasks.pop(name, None)
        if removed:
            logger.info(f"Unregistered heartbeat task '{name}'")

    def list_tasks(self) -> List[str]:
        """Return list of registered task names."""
        with self._lock:
            return list(self.tasks.keys())

    def should_run_task(self, name: str, task_info: Dict, now: float = None) -> bool:
        """Check if a task should run this cycle."""
        if task_info["last_run"] is None:
            return True  # Run immediately if never run

        now = self._clock() if now is None else now
        return now - task_info["last_run"] >= task_info["interval"]

    def run_task(self, name: str) -> bool:
        """Execute a task and record timing. Failures are logged, never raised.

        Returns True when the task completed without raising.
        """
        with self._lock:
            task_info = self.tasks.get(name)
        if task_info is None:
            raise KeyError(f"Unknown heartbeat task: {name}")

        start_time = self._clock()
        try:
            task_info["func"]()
            ok = True
        except Exception as e:
            # Error isolation - one failing task never stops the loop
            task_info["failures"] += 1
            logger.log_heartbeat_task(name, start_time, self._clock(), status="failed", details={
                "error_type": type(e).__name__,
                "error": str(e)[:200],
                "failures": task_info["failures"],
            })
            ok = False
        finally:
            task_info["last_run"] = self._clock()

        if ok:
            logger.log_heartbeat_task(name, start_time, task_info["last_run"])
        return ok

    def run_pending(self) -> List[str]:
        """Run every task that is due. Returns the names of tasks that ran."""
        now = self._clock()
        with self._lock:
            due = [name for name, info in self.tasks.items() if self.should_run_task(name, info, now)]

        for name in due:
            self.run_task(name)
        return due

    def reset_task(self, name: str):
        """Reset a task's last_run time to force immediate execution."""
        with self._lock:
            if name in self.tasks:
                self.tasks[name]["last_run"] = None

    def _loop(self):
        logger.info(f"Heartbeat loop started with tasks: {self.list_tasks()}")
        while not self._shutdown_event.is_set():
            self.run_pending()
            self._shutdown_event.wait(self.tick_sec)
        logger.info("Heartbeat loop stopped")

    def start(self):
        """Start the heartbeat loop on a daemon thread."""
        if self.running:
            raise RuntimeError("Heartbeat already running")

        self._shutdown_event.clear()
        self._started_at = self._clock()
        self._thread = threading.Thread(target=self._loop, name="memory-proxy-heartbeat", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> bool:
        """Stop the heartbeat loop and wait for the thread to exit.

        Returns False if a task was still running when the timeout expired; the
        thread is then left to finish and stays visible through `running`.
        """
        if not self.running:
            self._thread = None
            return True

        self._shutdown_event.set()
        self._thread.join(timeout)

        if self._thread.is_alive():
            logger.warning(f"Heartbeat thread still busy after {timeout}s; left to finish in the background")
            return False

        self._thread = None
        return True

    def get_status(self) -> Dict:
        """Return current heartbeat status for monitoring."""
        with self._lock:
            tasks = {
                name: {
                    "interval_sec": info["interval"],
                    "last_run": info["last_run"],
                    "next_run": info["last_run"] + info["interval"] if info["last_run"] is not None else None,
                    "failures": info["failures"],
                }
                for name, info in self.tasks.items()
            }

        return {
            "status": "running" if self.running else "stopped",
            "tasks": tasks,
            "uptime_sec": self._clock() - self._started_at if self.running and self._started_at else 0,
        }
