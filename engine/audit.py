"""
Execution Audit Recorder.

Writes are best-effort: a failed write is logged and copied to the
`audit.deadletter` logger as JSON, and never interrupts the firing being
recorded. An execution that never receives `complete_execution` keeps a null
status and is reported by `find_stuck_executions`.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List

from config import Settings, get_settings
from db.audit import AuditRepository
from models import (
    ActionExecutionRecord,
    ActionExecutionStatus,
    AutomationExecutionRecord,
    ExecutionStats,
    ExecutionStatus,
    LastRunSummary,
)

from .timeutils import utc_now

logger = logging.getLogger(__name__)
dead_letter = logging.getLogger("audit.deadletter")


def determine_execution_status(successful: int, total: int) -> ExecutionStatus:
    if total > 0 and successful == total:
        return ExecutionStatus.SUCCESS
    if successful > 0:
        return ExecutionStatus.PARTIAL_FAILURE
    return ExecutionStatus.FAILURE


class AuditRecorder:
    def __init__(
        self,
        repository: AuditRepository,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()
        self._clock = clock

    def _best_effort(self, operation: str, payload: Dict[str, Any], write: Callable[[], None]) -> None:
        try:
            write()
        except Exception:
            logger.exception(
                "Audit write %s failed",
                operation,
                extra={"execution_id": payload.get("execution_id")},
            )
            dead_letter.warning(json.dumps({"operation": operation, **payload}, default=str))

    # -- write path --------------------------------------------------------

    def start_execution(
        self,
        automation_id: str,
        trigger_context: Dict[str, Any],
        total_actions: int,
        trigger_event_id: str | None = None,
        trigger_timestamp: datetime | None = None,
        state_conditions_met: bool | None = None,
        temporal_conditions_met: bool | None = None,
    ) -> str:
        """Create the execution row and return its id. The id is valid even if the write failed."""
        record = AutomationExecutionRecord(
            id=str(uuid.uuid4()),
            automation_id=automation_id,
            trigger_timestamp=trigger_timestamp or self._clock(),
            trigger_event_id=trigger_event_id,
            trigger_context=trigger_context,
            state_conditions_met=state_conditions_met,
            temporal_conditions_met=temporal_conditions_met,
            total_actions=total_actions,
        )
        self._best_effort(
            "start_execution",
            {"execution_id": record.id, "record": record.model_dump(mode="json")},
            lambda: self._repository.insert_execution(record),
        )
        return record.id

    def record_action_start(self, execution_id: str, action_index: int, action_type: str, action_params: Dict[str, Any]) -> str:
        record = ActionExecutionRecord(
            execution_id=execution_id,
            action_index=action_index,
            action_type=action_type,
            action_params=action_params,
            started_at=self._clock(),
        )
        self._best_effort(
            "record_action_start",
            {"execution_id": execution_id, "record": record.model_dump(mode="json")},
            lambda: self._repository.insert_action(record),
        )
        return record.id

    def record_action_complete(
        self,
        action_record_id: str,
        status: ActionExecutionStatus,
        error_message: str | None = None,
        retry_count: int = 0,
        result_data: Dict[str, Any] | None = None,
    ) -> None:
        fields = {
            "status": status,
            "error_message": error_message,
            "retry_count": retry_count,
            "result_data": result_data,
            "completed_at": self._clock(),
        }
        self._best_effort(
            "record_action_complete",
            {"action_record_id": action_record_id, **fields},
            lambda: self._repository.update_action(action_record_id, **fields),
        )

    def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        successful_actions: int,
        failed_actions: int,
        duration_ms: int,
    ) -> None:
        fields = {
            "execution_status": status,
            "successful_actions": successful_actions,
            "failed_actions": failed_actions,
            "execution_duration_ms": duration_ms,
        }
        self._best_effort(
            "complete_execution",
            {"execution_id": execution_id, **fields},
            lambda: self._repository.update_execution(execution_id, **fields),
        )

    # -- read path ---------------------------------------------------------

    def get_recent_executions(self, limit: int = 50, offset: int = 0, automation_id: str | None = None) -> List[AutomationExecutionRecord]:
        return self._repository.list_executions(limit=limit, offset=offset, automation_id=automation_id)

    def get_execution_count(self, automation_id: str | None = None) -> int:
        return self._repository.count_executions(automation_id)

    def get_execution_detail(self, execution_id: str, include_actions: bool = True) -> AutomationExecutionRecord | None:
        return self._repository.get_execution(execution_id, include_actions=include_actions)

    def get_last_run_summary(self) -> Dict[str, LastRunSummary]:
        return {summary.automation_id: summary for summary in self._repository.last_runs()}

    def get_execution_stats(
        self,
        automation_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        status: ExecutionStatus | None = None,
    ) -> ExecutionStats:
        return self._repository.stats(automation_id=automation_id, start=start, end=end, status=status)

    def find_stuck_executions(self, now: datetime | None = None) -> List[AutomationExecutionRecord]:
        cutoff = (now or self._clock()) - timedelta(seconds=self._settings.stuck_execution_after_seconds)
        stuck = self._repository.list_unfinished(started_before=cutoff)
        if stuck:
            logger.warning("%d execution(s) without a terminal status", len(stuck))
        return stuck
