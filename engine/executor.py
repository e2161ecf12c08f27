"""
Action Executor: runs one firing's actions strictly in order.

Each action is rendered, recorded as started, dispatched with a bounded
timeout (and retried with exponential backoff if its handler allows it),
then recorded as finished before the next one begins.
"""

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict

from config import Settings, get_settings
from models import ActionExecutionStatus, ActionResult, Automation, ExecutionStatus
from registry.registry import Registry

from .audit import AuditRecorder, determine_execution_status
from .tokens import TemplateResolver

logger = logging.getLogger(__name__)


@dataclass
class ExecutionSummary:
    total: int
    successful: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def status(self) -> ExecutionStatus:
        return determine_execution_status(self.successful, self.total)


class ActionExecutor:
    def __init__(
        self,
        registry: Registry,
        recorder: AuditRecorder,
        settings: Settings | None = None,
        template_resolver: TemplateResolver | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._recorder = recorder
        self._settings = settings or get_settings()
        self._templates = template_resolver or TemplateResolver()
        self._sleep = sleep

    def backoff_delay(self, retry: int) -> float:
        delay = self._settings.retry_backoff_base_seconds * (2 ** retry)
        return min(delay, self._settings.retry_backoff_max_seconds)

    def _call_handler(self, future: Future, action_type: str, params: Dict[str, Any]) -> None:
        try:
            future.set_result(self._registry.execute(action_type, params))
        except Exception as exc:
            future.set_exception(exc)

    def _dispatch_once(self, action_type: str, params: Dict[str, Any]) -> ActionResult:
        """
        Every attempt gets its own daemon thread, started right away, so the
        timeout covers only the handler call. A call that overruns is
        abandoned and keeps nothing else waiting.
        """
        timeout = self._settings.action_timeout_seconds
        future: Future = Future()
        worker = threading.Thread(
            target=self._call_handler,
            args=(future, action_type, params),
            name=f"action-{action_type}",
            daemon=True,
        )
        worker.start()
        try:
            result = future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.warning("Abandoning %s call after %gs", action_type, timeout, extra={"action_type": action_type})
            return ActionResult(success=False, error=f"Timed out after {timeout:g}s")
        except Exception as exc:
            return ActionResult(success=False, error=f"{type(exc).__name__}: {exc}")
        if not isinstance(result, ActionResult):
            return ActionResult(success=False, error=f"Handler returned {type(result).__name__}, expected ActionResult")
        return result

    def _retryable(self, action_type: str, params: Dict[str, Any]) -> bool:
        try:
            return self._registry.is_retryable(action_type, params)
        except Exception:
            logger.exception("Retry policy lookup failed for %s", action_type)
            return False

    def dispatch(self, action_type: str, params: Dict[str, Any]) -> tuple[ActionResult, int]:
        """Returns the final result and how many retries were spent."""
        retryable = self._retryable(action_type, params)
        retries = 0
        while True:
            result = self._dispatch_once(action_type, params)
            if result.success or not retryable or retries >= self._settings.max_action_retries:
                return result, retries
            delay = self.backoff_delay(retries)
            logger.info(
                "Action %s failed (%s), retrying in %.2fs",
                action_type,
                result.error,
                delay,
                extra={"action_type": action_type},
            )
            self._sleep(delay)
            retries += 1

    def run(self, automation: Automation, facts: Dict[str, Any], execution_id: str) -> ExecutionSummary:
        summary = ExecutionSummary(total=len(automation.actions))
        blocked_by: int | None = None

        for index, action in enumerate(automation.actions):
            log_extra = {"automation_id": automation.id, "execution_id": execution_id, "action_index": index, "action_type": action.type}

            params = self._templates.render(action.params, facts)
            if blocked_by is not None:
                record_id = self._recorder.record_action_start(execution_id, index, action.type, params)
                self._recorder.record_action_complete(
                    record_id,
                    ActionExecutionStatus.SKIPPED,
                    error_message=f"Skipped: required action {blocked_by} failed",
                )
                summary.skipped += 1
                continue

            record_id = self._recorder.record_action_start(execution_id, index, action.type, params)
            result, retries = self.dispatch(action.type, params)

            if result.success:
                summary.successful += 1
                self._recorder.record_action_complete(
                    record_id, ActionExecutionStatus.SUCCESS, retry_count=retries, result_data=result.result_data
                )
                continue

            summary.failed += 1
            logger.warning("Action failed: %s", result.error, extra=log_extra)
            self._recorder.record_action_complete(
                record_id,
                ActionExecutionStatus.FAILURE,
                error_message=result.error,
                retry_count=retries,
                result_data=result.result_data,
            )
            if action.hard_dependency:
                blocked_by = index

        return summary
