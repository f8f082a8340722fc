"""Background scheduler that expires lapsed memberships."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from .app.membership import SweepSummary
from .app.services.membership import get_membership_service

logger = logging.getLogger("membership.sweeper")

_scheduler_lock = Lock()
_worker: Optional["_SweepWorker"] = None

_SWEEP_METRICS: Dict[str, object] = {
    "runs": 0,
    "examined": 0,
    "expired": 0,
    "failures": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["runs"] = int(_SWEEP_METRICS.get("runs", 0)) + 1
        _SWEEP_METRICS["last_run_at"] = started_at


def _record_run_success(completed_at: datetime, summary: SweepSummary) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["examined"] = int(_SWEEP_METRICS.get("examined", 0)) + summary.examined
        _SWEEP_METRICS["expired"] = int(_SWEEP_METRICS.get("expired", 0)) + summary.expired
        _SWEEP_METRICS["failures"] = int(_SWEEP_METRICS.get("failures", 0)) + summary.failures
        _SWEEP_METRICS["last_success_at"] = completed_at
        _SWEEP_METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["failures"] = int(_SWEEP_METRICS.get("failures", 0)) + 1
        _SWEEP_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_sweep_job(*, now: Optional[datetime] = None) -> SweepSummary:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        summary = get_membership_service().expire_memberships(now=current_time)
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Membership expiry sweep failed")
        raise
    else:
        _record_run_success(current_time, summary)
        logger.info(
            "Membership expiry sweep completed",
            extra={
                "examined": summary.examined,
                "expired": summary.expired,
                "failures": summary.failures,
            },
        )
        return summary


class _SweepWorker(Thread):
    def __init__(self, *, initial_delay: float, interval: float):
        super().__init__(daemon=True, name="membership-expiry-sweeper")
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
                run_sweep_job()
            except Exception:
                # Errors are logged inside run_sweep_job; keep the schedule.
                pass
            if self._stop_event.wait(self._interval):
                break


def start_expiry_sweeper(*, interval_seconds: float, initial_delay: float = 0.0) -> None:
    global _worker
    with _scheduler_lock:
        if _worker is not None:
            return
        _worker = _SweepWorker(initial_delay=initial_delay, interval=interval_seconds)
        _worker.start()
        logger.info(
            "Membership expiry sweeper started",
            extra={"interval_seconds": interval_seconds, "initial_delay_seconds": initial_delay},
        )


def shutdown_expiry_sweeper() -> None:
    global _worker
    with _scheduler_lock:
        worker = _worker
        if worker is None:
            return
        worker.stop()
        worker.join(timeout=1.0)
        _worker = None
        logger.info("Membership expiry sweeper stopped")


def is_sweeper_running() -> bool:
    with _scheduler_lock:
        return _worker is not None and _worker.is_alive()


def get_sweeper_metrics() -> Dict[str, object]:
    with _metrics_lock:
        return {
            **_SWEEP_METRICS,
            "last_run_at": _SWEEP_METRICS["last_run_at"].isoformat() if _SWEEP_METRICS.get("last_run_at") else None,
            "last_success_at": (
                _SWEEP_METRICS["last_success_at"].isoformat() if _SWEEP_METRICS.get("last_success_at") else None
            ),
        }


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _SWEEP_METRICS.update(
            {
                "runs": 0,
                "examined": 0,
                "expired": 0,
                "failures": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_sweeper_metrics",
    "is_sweeper_running",
    "run_sweep_job",
    "shutdown_expiry_sweeper",
    "start_expiry_sweeper",
]
