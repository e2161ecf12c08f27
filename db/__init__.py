from .audit import AuditRepository, InMemoryAuditRepository, SqlAlchemyAuditRepository
from .converters import db_to_pydantic_automation, dump_automation_config, pydantic_to_db_automation
from .models import (
    ActionExecutionModel,
    AreaModel,
    AutomationExecutionModel,
    AutomationModel,
    Base,
    ConnectorModel,
    DeviceModel,
    LocationModel,
    ScheduleModel,
)
from .repository import (
    AutomationNotFoundError,
    AutomationRepository,
    InMemoryAutomationRepository,
    SqlAlchemyAutomationRepository,
)
from .session import create_session_factory
from .site import InMemorySiteRepository, SiteRepository, SqlAlchemySiteRepository

__all__ = [
    "ActionExecutionModel",
    "AreaModel",
    "AuditRepository",
    "AutomationExecutionModel",
    "AutomationModel",
    "AutomationNotFoundError",
    "AutomationRepository",
    "Base",
    "ConnectorModel",
    "DeviceModel",
    "InMemoryAuditRepository",
    "InMemoryAutomationRepository",
    "InMemorySiteRepository",
    "LocationModel",
    "ScheduleModel",
    "SiteRepository",
    "SqlAlchemyAuditRepository",
    "SqlAlchemyAutomationRepository",
    "SqlAlchemySiteRepository",
    "create_session_factory",
    "db_to_pydantic_automation",
    "dump_automation_config",
    "pydantic_to_db_automation",
]
