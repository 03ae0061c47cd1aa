"""Background scheduler for recurring subscription renewals."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from applyforme.app.payments import PaymentService, RenewalSummary
from applyforme.app.services.payments import get_payment_service

logger = logging.getLogger(__name__)

_scheduler_lock = Lock()
_worker: Optional["_RenewalWorker"] = None

_RENEWAL_METRICS: Dict[str, object] = {
    "renewed": 0,
    "past_due": 0,
    "failures": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _RENEWAL_METRICS["last_run_at"] = started_at


def _record_run_success(completed_at: datetime, summary: RenewalSummary) -> None:
    with _metrics_lock:
        _RENEWAL_METRICS["renewed"] = int(_RENEWAL_METRICS.get("renewed", 0)) + summary.renewed
        _RENEWAL_METRICS["past_due"] = int(_RENEWAL_METRICS.get("past_due", 0)) + summary.past_due
        _RENEWAL_METRICS["failures"] = int(_RENEWAL_METRICS.get("failures", 0)) + summary.failures
        _RENEWAL_METRICS["last_success_at"] = completed_at
        _RENEWAL_METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _RENEWAL_METRICS["failures"] = int(_RENEWAL_METRICS.get("failures", 0)) + 1
        _RENEWAL_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_renewal_job(
    *,
    now: Optional[datetime] = None,
    service: Optional[PaymentService] = None,
) -> RenewalSummary:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        summary = (service or get_payment_service()).renew_due_subscriptions(now=current_time)
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Subscription renewal job failed")
        raise
    else:
        _record_run_success(current_time, summary)
        logger.info(
            "Subscription renewal job completed",
            extra={
                "renewed": summary.renewed,
                "past_due": summary.past_due,
                "failures": summary.failures,
            },
        )
        return summary


class _RenewalWorker(Thread):
    def __init__(self, *, interval: float, initial_delay: float = 0.0):
        super().__init__(daemon=True, name="payfast-renewals")
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                run_renewal_job()
            except Exception:
                # Logged and counted inside run_renewal_job; keep the schedule going.
                pass
            if self._stop_event.wait(self._interval):
                break


def start_renewal_scheduler(*, interval_seconds: float, initial_delay: float = 60.0) -> bool:
    """Start the renewal worker; returns ``False`` if it is already running."""

    global _worker
    with _scheduler_lock:
        if _worker is not None:
            return False
        _worker = _RenewalWorker(interval=interval_seconds, initial_delay=initial_delay)
        _worker.start()
        logger.info(
            "Subscription renewal scheduler started",
            extra={"interval_seconds": interval_seconds, "initial_delay_seconds": initial_delay},
        )
        return True


def shutdown_renewal_scheduler() -> None:
    global _worker
    with _scheduler_lock:
        worker, _worker = _worker, None
        if worker is None:
            return
        worker.stop()
        worker.join(timeout=1.0)
        logger.info("Subscription renewal scheduler stopped")


def get_renewal_metrics() -> Dict[str, object]:
    with _metrics_lock:
        snapshot = dict(_RENEWAL_METRICS)
    for key in ("last_run_at", "last_success_at"):
        value = snapshot.get(key)
        snapshot[key] = value.isoformat() if isinstance(value, datetime) else None
    return snapshot


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _RENEWAL_METRICS.update(
            {
                "renewed": 0,
                "past_due": 0,
                "failures": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_renewal_metrics",
    "run_renewal_job",
    "shutdown_renewal_scheduler",
    "start_renewal_scheduler",
]
