import uuid
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator

from .events import EventCategory, EventSubtype, EventType


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "doesNotContain"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_INCLUSIVE = "greaterThanInclusive"
    LESS_THAN = "lessThan"
    LESS_THAN_INCLUSIVE = "lessThanInclusive"
    IN = "in"
    NOT_IN = "notIn"
    EXISTS = "exists"
    NOT_EXISTS = "notExists"


# Spellings accepted from older rule payloads, rewritten when a rule is saved.
OPERATOR_ALIASES: Dict[str, str] = {
    "equal": ConditionOperator.EQUALS.value,
    "notEqual": ConditionOperator.NOT_EQUALS.value,
}


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConditionLeaf(_ConfigModel):
    internal_id: str | None = Field(default=None, alias="_internalId")
    field: str = Field(..., min_length=1, description="Dotted path into the event facts, e.g. event.payload.state")
    operator: ConditionOperator
    value: Any = None


class ConditionGroup(_ConfigModel):
    internal_id: str | None = Field(default=None, alias="_internalId")
    all_: List["ConditionNode"] | None = Field(default=None, alias="all")
    any_: List["ConditionNode"] | None = Field(default=None, alias="any")

    @model_validator(mode="after")
    def exactly_one_branch(self) -> "ConditionGroup":
        if (self.all_ is None) == (self.any_ is None):
            raise ValueError("Condition group must define exactly one of 'all' or 'any'")
        return self

    @property
    def children(self) -> List["ConditionNode"]:
        return self.all_ if self.all_ is not None else (self.any_ or [])


def _node_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "leaf" if "field" in value else "group"
    return "leaf" if isinstance(value, ConditionLeaf) else "group"


ConditionNode = Annotated[
    Union[Annotated[ConditionGroup, Tag("group")], Annotated[ConditionLeaf, Tag("leaf")]],
    Discriminator(_node_kind),
]

ConditionGroup.model_rebuild()


def walk_condition_tree(node: ConditionGroup | ConditionLeaf | None) -> Iterator[ConditionGroup | ConditionLeaf]:
    """Yield every node of a condition tree, depth first, parents before children."""
    if node is None:
        return
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, ConditionGroup):
            stack.extend(reversed(current.children))


class EventFilter(_ConfigModel):
    """Empty lists mean 'any'."""

    categories: List[EventCategory] = Field(default_factory=list)
    types: List[EventType] = Field(default_factory=list)
    subtypes: List[EventSubtype] = Field(default_factory=list)


class EventTrigger(_ConfigModel):
    type: Literal["EVENT"] = "EVENT"
    event_filter: EventFilter | None = Field(default=None, alias="eventFilter")
    conditions: ConditionNode | None = Field(default=None, description="Condition tree; absent matches every event")


class ScheduledTrigger(_ConfigModel):
    """Temporal-only trigger driven by the scheduler tick rather than by events."""

    type: Literal["SCHEDULED"] = "SCHEDULED"
    repeat: bool = Field(default=False, description="Fire on every tick while temporal conditions hold")


Trigger = Annotated[Union[EventTrigger, ScheduledTrigger], Field(discriminator="type")]


class _TemporalBase(_ConfigModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    negate: bool = False


class ScheduleCondition(_TemporalBase):
    type: Literal["schedule"] = "schedule"
    schedule_ref: str = Field(..., alias="scheduleRef")


_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class TimeWindowCondition(_TemporalBase):
    type: Literal["timeWindow"] = "timeWindow"
    days_of_week: List[int] = Field(default_factory=list, alias="daysOfWeek", description="0=Monday .. 6=Sunday; empty means every day")
    start_time: str = Field(..., alias="startTime", pattern=_HHMM)
    end_time: str = Field(..., alias="endTime", pattern=_HHMM)
    time_zone: str | None = Field(default=None, alias="timeZone")

    @model_validator(mode="after")
    def check_days(self) -> "TimeWindowCondition":
        for day in self.days_of_week:
            if day < 0 or day > 6:
                raise ValueError(f"Invalid day of week: {day}")
        return self


class SunCondition(_TemporalBase):
    type: Literal["sun"] = "sun"
    period: Literal["day", "night"] = "night"
    sunrise_offset_minutes: int = Field(default=0, alias="sunriseOffsetMinutes")
    sunset_offset_minutes: int = Field(default=0, alias="sunsetOffsetMinutes")


class ArmedStateCondition(_TemporalBase):
    type: Literal["armedState"] = "armedState"
    armed_state_ref: str = Field(..., alias="armedStateRef", description="Area id")
    state: Literal["ARMED", "DISARMED", "ARMED_AWAY", "ARMED_STAY", "TRIGGERED"] = "ARMED"


TemporalCondition = Annotated[
    Union[ScheduleCondition, TimeWindowCondition, SunCondition, ArmedStateCondition],
    Field(discriminator="type"),
]


class Action(_ConfigModel):
    type: str = Field(..., description="Identifier registered in the action registry")
    params: Dict[str, Any] = Field(default_factory=dict, description="Action parameters, may embed {{namespace.path}} tokens")
    hard_dependency: bool = Field(default=False, alias="hardDependency", description="Skip later actions when this one fails")


class AutomationConfig(_ConfigModel):
    trigger: Trigger
    actions: List[Action]
    temporal_conditions: List[TemporalCondition] = Field(default_factory=list, alias="temporalConditions")

    @model_validator(mode="before")
    @classmethod
    def ensure_trigger_and_actions(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        if not values.get("actions"):
            raise ValueError("Automation must define at least one action")
        trigger = values.get("trigger")
        if trigger is None:
            raise ValueError("Automation must define a trigger")
        if isinstance(trigger, dict) and isinstance(trigger.get("type"), str):
            values = {**values, "trigger": {**trigger, "type": trigger["type"].upper()}}
        return values


class Automation(_ConfigModel):
    id: str | None = None
    name: str = Field(..., description="Human friendly name for the automation")
    enabled: bool = True
    location_scope_id: str | None = Field(default=None, alias="locationScopeId", description="None means global")
    config: AutomationConfig = Field(..., alias="configJson")

    @property
    def trigger(self) -> EventTrigger | ScheduledTrigger:
        return self.config.trigger

    @property
    def actions(self) -> List[Action]:
        return self.config.actions
