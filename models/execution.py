import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class ActionExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ActionResult(BaseModel):
    """Uniform handler outcome."""

    success: bool
    result_data: Dict[str, Any] | None = None
    error: str | None = None


class ActionExecutionRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    action_index: int
    action_type: str
    action_params: Dict[str, Any] = Field(default_factory=dict, description="Rendered parameters")
    status: ActionExecutionStatus | None = Field(default=None, description="None while the action is running")
    error_message: str | None = None
    retry_count: int = 0
    result_data: Dict[str, Any] | None = None
    started_at: datetime
    completed_at: datetime | None = None


class AutomationExecutionRecord(BaseModel):
    """
    One row per rule firing. `execution_status` stays None until the firing
    completes, which is how stuck executions are detected.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    automation_id: str
    trigger_timestamp: datetime
    trigger_event_id: str | None = None
    trigger_context: Dict[str, Any] = Field(default_factory=dict)
    state_conditions_met: bool | None = None
    temporal_conditions_met: bool | None = None
    execution_status: ExecutionStatus | None = None
    total_actions: int = 0
    successful_actions: int = 0
    failed_actions: int = 0
    execution_duration_ms: int | None = None
    actions: List[ActionExecutionRecord] = Field(default_factory=list)


class LastRunSummary(BaseModel):
    automation_id: str
    execution_id: str
    trigger_timestamp: datetime
    execution_status: ExecutionStatus | None
    successful_actions: int
    failed_actions: int
    execution_duration_ms: int | None


class ExecutionStats(BaseModel):
    total: int = 0
    success: int = 0
    partial_failure: int = 0
    failure: int = 0
    in_progress: int = 0
    average_duration_ms: float | None = None
