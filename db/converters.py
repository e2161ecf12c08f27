"""
Conversion utilities between Pydantic models and SQLAlchemy DB models.
"""

from datetime import datetime, timezone

from models import (
    ActionExecutionRecord,
    Area,
    Automation,
    AutomationConfig,
    AutomationExecutionRecord,
    Connector,
    Device,
    Location,
    Schedule,
)

from .models import (
    ActionExecutionModel,
    AreaModel,
    AutomationExecutionModel,
    AutomationModel,
    ConnectorModel,
    DeviceModel,
    LocationModel,
    ScheduleModel,
)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def dump_automation_config(config: AutomationConfig) -> dict:
    """JSON shape stored in `automations.config_json` (camelCase, `_internalId` kept)."""
    return config.model_dump(mode="json", by_alias=True, exclude_none=True)


def pydantic_to_db_automation(automation: Automation, automation_id: str | None = None) -> AutomationModel:
    """
    Convert a Pydantic Automation model to a SQLAlchemy AutomationModel.

    Args:
        automation: Pydantic Automation model to convert
        automation_id: Optional ID to assign (if None, will be generated on save)
    """
    return AutomationModel(
        id=automation_id or automation.id,
        name=automation.name,
        enabled=automation.enabled,
        location_scope_id=automation.location_scope_id,
        config_json=dump_automation_config(automation.config),
    )


def db_to_pydantic_automation(db_automation: AutomationModel) -> Automation:
    """
    Convert a SQLAlchemy AutomationModel to a Pydantic Automation model. The
    condition tree is parsed here, once per load.
    """
    return Automation(
        id=db_automation.id,
        name=db_automation.name,
        enabled=db_automation.enabled,
        location_scope_id=db_automation.location_scope_id,
        config=AutomationConfig.model_validate(db_automation.config_json),
    )


def db_to_location(row: LocationModel) -> Location:
    return Location(
        id=row.id,
        name=row.name,
        time_zone=row.time_zone,
        sunrise_time=row.sunrise_time,
        sunset_time=row.sunset_time,
        sun_times_updated_at=_aware(row.sun_times_updated_at),
    )


def db_to_area(row: AreaModel) -> Area:
    return Area(id=row.id, name=row.name, location_id=row.location_id, armed_state=row.armed_state)


def db_to_connector(row: ConnectorModel) -> Connector:
    return Connector(id=row.id, category=row.category, name=row.name, organization_id=row.organization_id)


def db_to_device(row: DeviceModel) -> Device:
    return Device(
        id=row.id,
        connector_id=row.connector_id,
        device_id=row.device_id,
        name=row.name,
        type=row.type,
        subtype=row.subtype,
        vendor=row.vendor,
        model=row.model,
        status=row.status,
        battery_percentage=row.battery_percentage,
        area_id=row.area_id,
    )


def db_to_schedule(row: ScheduleModel) -> Schedule:
    return Schedule(
        id=row.id,
        name=row.name,
        location_id=row.location_id,
        days_of_week=list(row.days_of_week or []),
        start_time=row.start_time,
        end_time=row.end_time,
        time_zone=row.time_zone,
    )


def execution_to_db(record: AutomationExecutionRecord) -> AutomationExecutionModel:
    return AutomationExecutionModel(
        id=record.id,
        automation_id=record.automation_id,
        trigger_timestamp=record.trigger_timestamp,
        trigger_event_id=record.trigger_event_id,
        trigger_context=record.trigger_context,
        state_conditions_met=record.state_conditions_met,
        temporal_conditions_met=record.temporal_conditions_met,
        execution_status=record.execution_status.value if record.execution_status else None,
        total_actions=record.total_actions,
        successful_actions=record.successful_actions,
        failed_actions=record.failed_actions,
        execution_duration_ms=record.execution_duration_ms,
    )


def action_to_db(record: ActionExecutionRecord) -> ActionExecutionModel:
    return ActionExecutionModel(
        id=record.id,
        execution_id=record.execution_id,
        action_index=record.action_index,
        action_type=record.action_type,
        action_params=record.action_params,
        status=record.status.value if record.status else None,
        error_message=record.error_message,
        retry_count=record.retry_count,
        result_data=record.result_data,
        started_at=record.started_at,
        completed_at=record.completed_at,
    )


def db_to_action(row: ActionExecutionModel) -> ActionExecutionRecord:
    return ActionExecutionRecord(
        id=row.id,
        execution_id=row.execution_id,
        action_index=row.action_index,
        action_type=row.action_type,
        action_params=row.action_params or {},
        status=row.status,
        error_message=row.error_message,
        retry_count=row.retry_count,
        result_data=row.result_data,
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
    )


def db_to_execution(row: AutomationExecutionModel, include_actions: bool = False) -> AutomationExecutionRecord:
    return AutomationExecutionRecord(
        id=row.id,
        automation_id=row.automation_id,
        trigger_timestamp=_aware(row.trigger_timestamp),
        trigger_event_id=row.trigger_event_id,
        trigger_context=row.trigger_context or {},
        state_conditions_met=row.state_conditions_met,
        temporal_conditions_met=row.temporal_conditions_met,
        execution_status=row.execution_status,
        total_actions=row.total_actions,
        successful_actions=row.successful_actions,
        failed_actions=row.failed_actions,
        execution_duration_ms=row.execution_duration_ms,
        actions=[db_to_action(action) for action in row.actions] if include_actions else [],
    )
