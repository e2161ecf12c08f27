from .automation import (
    OPERATOR_ALIASES,
    Action,
    ArmedStateCondition,
    Automation,
    AutomationConfig,
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionOperator,
    EventFilter,
    EventTrigger,
    ScheduleCondition,
    ScheduledTrigger,
    SunCondition,
    TemporalCondition,
    TimeWindowCondition,
    Trigger,
    walk_condition_tree,
)
from .context import Area, Connector, Device, EventContext, Location, Schedule
from .events import (
    EVENT_HIERARCHY,
    ArmedState,
    EventCategory,
    EventSubtype,
    EventType,
    StandardizedEvent,
    category_for,
    flatten_payload,
)
from .execution import (
    ActionExecutionRecord,
    ActionExecutionStatus,
    ActionResult,
    AutomationExecutionRecord,
    ExecutionStats,
    ExecutionStatus,
    LastRunSummary,
)

__all__ = [
    "Action",
    "ActionExecutionRecord",
    "ActionExecutionStatus",
    "ActionResult",
    "Area",
    "ArmedState",
    "ArmedStateCondition",
    "Automation",
    "AutomationConfig",
    "AutomationExecutionRecord",
    "ConditionGroup",
    "ConditionLeaf",
    "ConditionNode",
    "ConditionOperator",
    "Connector",
    "Device",
    "EVENT_HIERARCHY",
    "EventCategory",
    "EventContext",
    "EventFilter",
    "EventSubtype",
    "EventTrigger",
    "EventType",
    "ExecutionStats",
    "ExecutionStatus",
    "LastRunSummary",
    "Location",
    "OPERATOR_ALIASES",
    "Schedule",
    "ScheduleCondition",
    "ScheduledTrigger",
    "StandardizedEvent",
    "SunCondition",
    "TemporalCondition",
    "TimeWindowCondition",
    "Trigger",
    "category_for",
    "flatten_payload",
    "walk_condition_tree",
]
