"""
AutomationEngine: Normalizer -> Context Resolver -> Trigger Matcher ->
Temporal Evaluator run inline on the caller's thread; every resulting firing
is handed to a worker pool where the Action Executor and Audit Recorder run.

Events from the same (connector, device) are evaluated one at a time, in
arrival order. Firings have no ordering guarantee between each other. The
same event delivered twice is processed twice.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List

from channels.broadcast import Broadcaster
from config import Settings, get_settings
from db.repository import AutomationRepository
from db.site import SiteRepository
from models import Automation, EventContext, ExecutionStatus, StandardizedEvent
from registry.registry import Registry

from .audit import AuditRecorder
from .context import ContextResolver
from .executor import ActionExecutor
from .facts import build_facts
from .matcher import TriggerMatcher
from .normalizer import EventNormalizer
from .temporal import TemporalConditionEvaluator
from .timeutils import utc_now

logger = logging.getLogger(__name__)


class AutomationEngine:
    def __init__(
        self,
        automations: AutomationRepository,
        sites: SiteRepository,
        registry: Registry,
        recorder: AuditRecorder,
        settings: Settings | None = None,
        broadcaster: Broadcaster | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.automations = automations
        self.recorder = recorder
        self.broadcaster = broadcaster
        self._clock = clock

        self.normalizer = EventNormalizer(clock=clock)
        self.context_resolver = ContextResolver(sites)
        self.matcher = TriggerMatcher()
        self.temporal = TemporalConditionEvaluator(sites, self.settings)
        self.executor = ActionExecutor(registry, recorder, self.settings, sleep=sleep)

        self._firing_pool = ThreadPoolExecutor(
            max_workers=self.settings.max_concurrent_firings,
            thread_name_prefix="automation-firing",
        )
        # (connector, device) -> [lock, holders and waiters]; entries go away when idle.
        self._device_locks: Dict[tuple[str, str], list] = {}
        self._device_locks_guard = threading.Lock()

    @contextmanager
    def _device_lock(self, connector_id: str, device_id: str) -> Iterator[None]:
        key = (connector_id, device_id)
        with self._device_locks_guard:
            entry = self._device_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._device_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._device_locks[key]

    # -- event path --------------------------------------------------------

    def ingest(self, connector_id: str, connector_category: str, raw: Any) -> List[Future]:
        """Entry point for connector payloads. Returns one future per rule firing."""
        event = self.normalizer.normalize(connector_id, connector_category, raw)
        if event is None:
            return []
        return self.process_event(event)

    def process_event(self, event: StandardizedEvent) -> List[Future]:
        log_extra = {"event_id": event.event_id, "connector_id": event.connector_id, "device_id": event.device_id}
        futures: List[Future] = []
        with self._device_lock(event.connector_id, event.device_id):
            context = self.context_resolver.resolve(event)
            facts = build_facts(context)
            candidates = self.automations.list_enabled()
            matched = self.matcher.match(candidates, event, facts, context.location_id)
            logger.debug("Event matched %d of %d automations", len(matched), len(candidates), extra=log_extra)

            for automation in matched:
                now = self._clock()
                try:
                    temporal_met = self.temporal.evaluate(automation.config.temporal_conditions, now, context, automation)
                except Exception as exc:
                    logger.exception("Temporal evaluation failed", extra={**log_extra, "automation_id": automation.id})
                    futures.append(self.submit_evaluation_failure(automation, facts, event.event_id, now, exc))
                    continue
                if not temporal_met:
                    continue
                futures.append(self.submit_firing(automation, context, facts, event.event_id, now))
        return futures

    # -- firing ------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def submit_evaluation_failure(
        self,
        automation: Automation,
        facts: Dict[str, Any],
        trigger_event_id: str | None,
        trigger_time: datetime,
        error: BaseException,
    ) -> Future:
        return self._firing_pool.submit(self.record_evaluation_failure, automation, facts, trigger_event_id, trigger_time, error)

    def submit_firing(
        self,
        automation: Automation,
        context: EventContext,
        facts: Dict[str, Any] | None,
        trigger_event_id: str | None,
        trigger_time: datetime,
    ) -> Future:
        if facts is None:
            facts = build_facts(context, context.location.time_zone if context.location else None)
        return self._firing_pool.submit(self._fire, automation, facts, trigger_event_id, trigger_time)

    def _fire(self, automation: Automation, facts: Dict[str, Any], trigger_event_id: str | None, trigger_time: datetime) -> str:
        started = time.monotonic()
        execution_id = self.recorder.start_execution(
            automation_id=automation.id,
            trigger_context=facts,
            total_actions=len(automation.actions),
            trigger_event_id=trigger_event_id,
            trigger_timestamp=trigger_time,
            state_conditions_met=True,
            temporal_conditions_met=True,
        )
        log_extra = {"automation_id": automation.id, "execution_id": execution_id}
        try:
            summary = self.executor.run(automation, facts, execution_id)
            status, successful, failed = summary.status, summary.successful, summary.failed
        except Exception:
            logger.exception("Action execution aborted", extra=log_extra)
            status, successful, failed = ExecutionStatus.FAILURE, 0, len(automation.actions)
        duration_ms = int((time.monotonic() - started) * 1000)
        self.recorder.complete_execution(execution_id, status, successful, failed, duration_ms)
        logger.info("Automation %s finished: %s", automation.name, status.value, extra={**log_extra, "duration_ms": duration_ms})
        self._publish(automation, execution_id, status, successful, failed)
        return execution_id

    def record_evaluation_failure(
        self,
        automation: Automation,
        facts: Dict[str, Any],
        trigger_event_id: str | None,
        trigger_time: datetime,
        error: BaseException,
    ) -> str:
        """Conditions could not be evaluated: recorded as a failed firing with no actions run."""
        execution_id = self.recorder.start_execution(
            automation_id=automation.id,
            trigger_context={**facts, "error": f"{type(error).__name__}: {error}"},
            total_actions=len(automation.actions),
            trigger_event_id=trigger_event_id,
            trigger_timestamp=trigger_time,
            state_conditions_met=True if trigger_event_id else None,
            temporal_conditions_met=None,
        )
        self.recorder.complete_execution(execution_id, ExecutionStatus.FAILURE, 0, 0, 0)
        self._publish(automation, execution_id, ExecutionStatus.FAILURE, 0, 0)
        return execution_id

    def _publish(self, automation: Automation, execution_id: str, status: ExecutionStatus, successful: int, failed: int) -> None:
        if self.broadcaster is None:
            return
        self.broadcaster.publish(
            "execution.completed",
            {
                "automationId": automation.id,
                "executionId": execution_id,
                "status": status.value,
                "successfulActions": successful,
                "failedActions": failed,
            },
        )

    def shutdown(self, wait: bool = True) -> None:
        self._firing_pool.shutdown(wait=wait)
