from __future__ import annotations

import logging
import math
import threading
import time
from enum import StrEnum
from typing import Protocol

logger = logging.getLogger(__name__)


class CycleRunner(Protocol):
    def run_cycle(self) -> object: ...


class SchedulerState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"


def next_tick(deadline: float, now: float, interval: float) -> tuple[float, int]:
    """Next grid tick strictly after ``now`` and how many ticks were skipped to get there."""
    if now < deadline:
        return deadline, 0
    missed = math.floor((now - deadline) / interval) + 1
    return deadline + missed * interval, missed


class QuoteScheduler:
    """Runs a cycle right away, then on every tick of a fixed interval.

    At most one cycle runs at a time. Ticks that fall while a cycle is still
    running are dropped. Stopping lets an in-flight cycle finish.
    """

    def __init__(
        self,
        processor: CycleRunner,
        *,
        interval_seconds: float,
        stop_event: threading.Event | None = None,
    ) -> None:
        if interval_seconds <= 0:
            msg = "interval_seconds must be positive"
            raise ValueError(msg)
        self.processor = processor
        self.interval = interval_seconds
        self._stop_event = stop_event or threading.Event()
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._state = SchedulerState.STOPPED

    @property
    def state(self) -> SchedulerState:
        return self._state

    def start(self) -> None:
        with self._state_lock:
            if self._state == SchedulerState.RUNNING:
                msg = "Scheduler is already running"
                raise RuntimeError(msg)
            if self._stop_event.is_set():
                msg = "Scheduler was cancelled before start"
                raise RuntimeError(msg)
            self._state = SchedulerState.RUNNING
            self._thread = threading.Thread(target=self._loop, name="quote-scheduler", daemon=True)
            self._thread.start()
        logger.info("Starting quote update scheduler every %.1fs", self.interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Scheduler did not stop within %.1fs, a cycle is still running", timeout or 0.0)

    def run_once(self) -> bool:
        """Run a cycle unless one is already in flight. Returns whether it ran."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Quote cycle already in progress, skipping trigger")
            return False
        try:
            self.processor.run_cycle()
        except Exception:  # noqa: BLE001 - a failed cycle must not kill the loop
            logger.exception("Quote cycle failed")
        finally:
            self._cycle_lock.release()
        return True

    def _loop(self) -> None:
        try:
            self.run_once()
            deadline = time.monotonic() + self.interval
            while not self._stop_event.wait(max(0.0, deadline - time.monotonic())):
                self.run_once()
                deadline, skipped = next_tick(deadline + self.interval, time.monotonic(), self.interval)
                if skipped:
                    logger.info("Skipped %d scheduler ticks while a cycle was running", skipped)
        finally:
            with self._state_lock:
                self._state = SchedulerState.STOPPED
            logger.info("Quote update scheduler stopped")


__all__ = ["CycleRunner", "QuoteScheduler", "SchedulerState", "next_tick"]
