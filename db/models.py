"""
SQLAlchemy ORM models for the persistence layer.

Automation definitions keep their trigger/actions/temporal conditions as a
single JSON document (`config_json`); the condition tree inside it is only
ever parsed once, when a rule is loaded.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationModel(Base):
    __tablename__ = "automations"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, index=True)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    location_scope_id = Column(String, nullable=True, index=True)

    # {"trigger": {...}, "actions": [...], "temporalConditions": [...]}
    config_json = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AutomationModel(id={self.id}, name={self.name}, enabled={self.enabled})>"


class LocationModel(Base):
    __tablename__ = "locations"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    time_zone = Column(String, nullable=True)
    sunrise_time = Column(String(5), nullable=True)
    sunset_time = Column(String(5), nullable=True)
    sun_times_updated_at = Column(DateTime(timezone=True), nullable=True)


class AreaModel(Base):
    __tablename__ = "areas"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    location_id = Column(String, ForeignKey("locations.id"), nullable=True, index=True)
    armed_state = Column(String, nullable=False, default="DISARMED")


class ConnectorModel(Base):
    __tablename__ = "connectors"

    id = Column(String, primary_key=True, default=_uuid)
    category = Column(String, nullable=False)
    name = Column(String, nullable=True)
    organization_id = Column(String, nullable=True, index=True)


class DeviceModel(Base):
    __tablename__ = "devices"
    __table_args__ = (UniqueConstraint("connector_id", "device_id", name="uq_devices_connector_device"),)

    id = Column(String, primary_key=True, default=_uuid)
    connector_id = Column(String, nullable=False, index=True)
    # Identifier assigned by the vendor system
    device_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=True)
    subtype = Column(String, nullable=True)
    vendor = Column(String, nullable=True)
    model = Column(String, nullable=True)
    status = Column(String, nullable=True)
    battery_percentage = Column(Integer, nullable=True)
    area_id = Column(String, ForeignKey("areas.id"), nullable=True, index=True)


class ScheduleModel(Base):
    __tablename__ = "schedules"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    location_id = Column(String, ForeignKey("locations.id"), nullable=True)
    days_of_week = Column(JSON, nullable=False, default=list)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    time_zone = Column(String, nullable=True)


class AutomationExecutionModel(Base):
    __tablename__ = "automation_executions"

    id = Column(String, primary_key=True, default=_uuid)
    automation_id = Column(String, nullable=False, index=True)
    trigger_timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    trigger_event_id = Column(String, nullable=True)
    trigger_context = Column(JSON, nullable=False, default=dict)
    state_conditions_met = Column(Boolean, nullable=True)
    temporal_conditions_met = Column(Boolean, nullable=True)
    # Null until the firing completes; a long-null row is a stuck execution.
    execution_status = Column(String, nullable=True, index=True)
    total_actions = Column(Integer, nullable=False, default=0)
    successful_actions = Column(Integer, nullable=False, default=0)
    failed_actions = Column(Integer, nullable=False, default=0)
    execution_duration_ms = Column(Integer, nullable=True)

    actions = relationship(
        "ActionExecutionModel",
        back_populates="execution",
        order_by="ActionExecutionModel.action_index",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<AutomationExecutionModel(id={self.id}, automation_id={self.automation_id}, status={self.execution_status})>"


class ActionExecutionModel(Base):
    __tablename__ = "automation_action_executions"

    id = Column(String, primary_key=True, default=_uuid)
    execution_id = Column(String, ForeignKey("automation_executions.id"), nullable=False, index=True)
    action_index = Column(Integer, nullable=False)
    action_type = Column(String, nullable=False)
    action_params = Column(JSON, nullable=False, default=dict)
    status = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    result_data = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    execution = relationship("AutomationExecutionModel", back_populates="actions")
