import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Dict, List

from models import ScheduledTrigger

from .pipeline import AutomationEngine

logger = logging.getLogger(__name__)


class SchedulerRunner:
    """
    Drives SCHEDULED automations from a periodic tick. A rule fires when its
    temporal conditions go from unmet to met (or on every tick while met when
    `repeat` is set). Ticks never overlap: a tick that starts while another is
    still running returns immediately.
    """

    def __init__(self, engine: AutomationEngine) -> None:
        self._engine = engine
        self._tick_lock = threading.Lock()
        self._last_state: Dict[str, bool] = {}
        # Rules whose evaluation failed on the previous tick; the failure is recorded once.
        self._failing: set[str] = set()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self, now: datetime | None = None) -> List[Future]:
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Scheduler tick skipped: previous tick still running")
            return []
        try:
            return self._run_tick(now or self._engine.now())
        finally:
            self._tick_lock.release()

    def _run_tick(self, now: datetime) -> List[Future]:
        futures: List[Future] = []
        seen: set[str] = set()
        for automation in self._engine.automations.list_enabled():
            trigger = automation.trigger
            if not isinstance(trigger, ScheduledTrigger):
                continue
            seen.add(automation.id)
            try:
                context = self._engine.context_resolver.for_schedule(automation, now)
                met = self._engine.temporal.evaluate(automation.config.temporal_conditions, now, context, automation)
            except Exception as exc:
                if automation.id not in self._failing:
                    logger.exception("Temporal evaluation failed on scheduler tick", extra={"automation_id": automation.id})
                    futures.append(self._engine.submit_evaluation_failure(automation, {}, None, now, exc))
                self._failing.add(automation.id)
                continue
            self._failing.discard(automation.id)

            previous = self._last_state.get(automation.id, False)
            self._last_state[automation.id] = met
            if met and (trigger.repeat or not previous):
                futures.append(self._engine.submit_firing(automation, context, None, None, now))

        for automation_id in set(self._last_state) - seen:
            del self._last_state[automation_id]
        self._failing &= seen
        return futures

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="automation-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait_until_stopped(self, timeout: float | None = None) -> bool:
        return self._stop.wait(timeout)

    def _loop(self) -> None:
        interval = self._engine.settings.scheduler_interval_seconds
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            self._stop.wait(interval)
