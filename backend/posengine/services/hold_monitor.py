# Overview: Background tick that keeps the urgent-hold summary current.

from __future__ import annotations

import threading

from ..extensions import db
from .concurrency import _WRITE_LOCK
from .hold_service import UrgentHoldSummary, urgent_holds


class HoldMonitor:
    """
    Recomputes the urgent-hold summary once per interval.

    Reads only: it never voids, expires or touches stock. It still runs
    under the engine write lock because its session teardown shares the
    writers' connection. A failed cycle is logged and the loop carries on.
    """

    def __init__(self, app, interval: float | None = None):
        self.app = app
        self.interval = interval if interval is not None else app.config["HOLD_MONITOR_INTERVAL_SECONDS"]
        self.latest = UrgentHoldSummary()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_seen: tuple = ()

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def tick(self, now=None) -> UrgentHoldSummary:
        """Run one recomputation and return the new summary."""
        with _WRITE_LOCK, self.app.app_context():
            try:
                summary = urgent_holds(now=now)
            finally:
                db.session.remove()

        seen = tuple(item["hold_id"] for item in summary.display)
        if seen != self._last_seen or summary.overflow_count != self.latest.overflow_count:
            if summary.total:
                self.app.logger.info(
                    "Urgent holds: %s shown, %s more",
                    len(summary.display),
                    summary.overflow_count,
                )
            self._last_seen = seen
        self.latest = summary
        return summary

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception:
                self.app.logger.exception("Hold monitor cycle failed")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="hold-monitor", daemon=True)
        self._thread.start()
        self.app.logger.info("Hold monitor started (interval=%ss)", self.interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
        self._thread = None
