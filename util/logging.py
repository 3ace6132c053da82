"""
Structured logging for record, sweep, draft and heartbeat operations.
"""

import logging
from datetime import date
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for memory proxy operations."""

    def __init__(self, name: str = "memory_proxy"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_record_operation(self, operation: str, record_id: Any, status: str = "success", details: Dict[str, Any] = None):
        """Log a record-level operation (create, update_status, delete)."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(sanitize_payload(details))

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"record.{operation}", status, log_details, level)

    def log_upstream_failure(self, operation: str, error: Exception, details: Dict[str, Any] = None):
        """Log a failed call to the durable store or credential provider."""
        log_details = {"error_type": type(error).__name__, "error": str(error)[:200]}
        if details:
            log_details.update(details)

        self.log_operation(f"upstream.{operation}", "failed", log_details, logging.ERROR)

    def log_sweep_eviction(self, record_id: int, last_updated: date, age_days: int, dry_run: bool = False):
        """Log eviction of a stale pending record."""
        log_details = {
            "record_id": record_id,
            "last_updated": last_updated.isoformat() if last_updated else None,
            "age_days": age_days,
            "policy": "hard_delete",
        }
        status = "candidate" if dry_run else "evicted"
        self.log_operation("sweep.eviction", status, log_details)

    def log_sweep_failure(self, record_id: Any, error: Exception):
        """Log a per-record sweep failure. The sweep continues with the next record."""
        log_details = {"record_id": record_id, "error_type": type(error).__name__, "error": str(error)[:200]}
        self.log_operation("sweep.eviction", "failed", log_details, logging.ERROR)

    def log_sweep_summary(self, scanned: int, evicted: int, skipped: int, errors: int, duration_ms: float):
        """Log the outcome of a full sweep cycle."""
        log_details = {
            "scanned": scanned,
            "evicted": evicted,
            "skipped": skipped,
            "errors": errors,
            "duration_ms": duration_ms,
        }
        status = "completed_with_errors" if errors else "completed"
        self.log_operation("sweep.cycle", status, log_details)

    def log_draft_operation(self, operation: str, token: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a draft queue operation (preview, save, discard)."""
        log_details = {"token": token}
        if details:
            log_details.update(sanitize_payload(details))

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"draft.{operation}", status, log_details, level)

    def log_inactivity_alert(self, pending_count: int, idle_seconds: float, drafts: List[Dict[str, Any]] = None):
        """Log that drafts are waiting for confirmation after a quiet period."""
        log_details = {
            "pending_count": pending_count,
            "idle_seconds": round(idle_seconds, 1),
        }
        if drafts:
            log_details["drafts"] = sanitize_payload(drafts)

        self.log_operation("draft.inactivity", "alert", log_details, logging.WARNING)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation(f"heartbeat.{task_name}", status, log_details, level)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None):
    """General audit event logging with truncated payload values."""
    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, max_length: int = 100) -> Any:
    """Truncate long strings in payloads before they reach log lines."""
    if isinstance(payload, dict):
        return {k: sanitize_payload(v, max_length) for k, v in payload.items()}
    elif isinstance(payload, str):
        return payload[:max_length] + "..." if len(payload) > max_length else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, max_length) for item in payload]
    else:
        return payload
