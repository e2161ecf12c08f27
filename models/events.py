import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class EventCategory(str, Enum):
    DEVICE_STATE = "DEVICE_STATE"
    DEVICE_CONNECTIVITY = "DEVICE_CONNECTIVITY"
    ACCESS_CONTROL = "ACCESS_CONTROL"
    ANALYTICS = "ANALYTICS"
    DIAGNOSTICS = "DIAGNOSTICS"
    UNKNOWN = "UNKNOWN"


class EventType(str, Enum):
    STATE_CHANGED = "STATE_CHANGED"
    BATTERY_LEVEL_CHANGED = "BATTERY_LEVEL_CHANGED"
    BUTTON_PRESSED = "BUTTON_PRESSED"
    BUTTON_LONG_PRESSED = "BUTTON_LONG_PRESSED"
    DEVICE_ONLINE = "DEVICE_ONLINE"
    DEVICE_OFFLINE = "DEVICE_OFFLINE"
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    DOOR_HELD_OPEN = "DOOR_HELD_OPEN"
    DOOR_FORCED_OPEN = "DOOR_FORCED_OPEN"
    DOOR_SECURED = "DOOR_SECURED"
    EXIT_REQUEST = "EXIT_REQUEST"
    ANALYTICS_EVENT = "ANALYTICS_EVENT"
    OBJECT_DETECTED = "OBJECT_DETECTED"
    OBJECT_REMOVED = "OBJECT_REMOVED"
    MOTION_DETECTED = "MOTION_DETECTED"
    LOITERING = "LOITERING"
    LINE_CROSSING = "LINE_CROSSING"
    ARMED_PERSON = "ARMED_PERSON"
    TAILGATING = "TAILGATING"
    INTRUSION = "INTRUSION"
    LICENSE_PLATE_DETECTED = "LICENSE_PLATE_DETECTED"
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"
    UNKNOWN_EXTERNAL_EVENT = "UNKNOWN_EXTERNAL_EVENT"


class EventSubtype(str, Enum):
    PERSON = "PERSON"
    VEHICLE = "VEHICLE"
    NORMAL = "NORMAL"
    DOOR_LOCKED = "DOOR_LOCKED"
    EXPIRED_CREDENTIAL = "EXPIRED_CREDENTIAL"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    ANTIPASSBACK_VIOLATION = "ANTIPASSBACK_VIOLATION"
    DURESS_PIN = "DURESS_PIN"
    NOT_IN_SCHEDULE = "NOT_IN_SCHEDULE"
    OCCUPANCY_LIMIT = "OCCUPANCY_LIMIT"


class ArmedState(str, Enum):
    DISARMED = "DISARMED"
    ARMED_AWAY = "ARMED_AWAY"
    ARMED_STAY = "ARMED_STAY"
    TRIGGERED = "TRIGGERED"


# Which types belong to which category. Used both to derive the category of a
# mapped event and to reject nonsensical combinations in trigger filters.
EVENT_HIERARCHY: Dict[EventCategory, tuple] = {
    EventCategory.DEVICE_STATE: (
        EventType.STATE_CHANGED,
        EventType.BUTTON_PRESSED,
        EventType.BUTTON_LONG_PRESSED,
    ),
    EventCategory.DEVICE_CONNECTIVITY: (
        EventType.DEVICE_ONLINE,
        EventType.DEVICE_OFFLINE,
    ),
    EventCategory.ACCESS_CONTROL: (
        EventType.ACCESS_GRANTED,
        EventType.ACCESS_DENIED,
        EventType.DOOR_HELD_OPEN,
        EventType.DOOR_FORCED_OPEN,
        EventType.DOOR_SECURED,
        EventType.EXIT_REQUEST,
    ),
    EventCategory.ANALYTICS: (
        EventType.ANALYTICS_EVENT,
        EventType.OBJECT_DETECTED,
        EventType.OBJECT_REMOVED,
        EventType.MOTION_DETECTED,
        EventType.LOITERING,
        EventType.LINE_CROSSING,
        EventType.ARMED_PERSON,
        EventType.TAILGATING,
        EventType.INTRUSION,
        EventType.LICENSE_PLATE_DETECTED,
    ),
    EventCategory.DIAGNOSTICS: (
        EventType.BATTERY_LEVEL_CHANGED,
        EventType.SYSTEM_NOTIFICATION,
    ),
    EventCategory.UNKNOWN: (EventType.UNKNOWN_EXTERNAL_EVENT,),
}

_CATEGORY_BY_TYPE: Dict[EventType, EventCategory] = {
    event_type: category
    for category, event_types in EVENT_HIERARCHY.items()
    for event_type in event_types
}


def category_for(event_type: EventType) -> EventCategory:
    """Return the category an event type belongs to (UNKNOWN when unlisted)."""
    return _CATEGORY_BY_TYPE.get(event_type, EventCategory.UNKNOWN)


def flatten_payload(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Flatten nested dicts into dotted keys: {"data": {"state": "open"}} becomes
    {"data.state": "open"}. Lists are kept as values.
    """
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flat.update(flatten_payload(value, full_key))
        else:
            flat[full_key] = value
    return flat


class StandardizedEvent(BaseModel):
    """
    Connector-agnostic event. Frozen once built; downstream stages only read it.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    connector_id: str
    device_id: str = Field(..., description="Device id as known by the connector")
    timestamp: datetime
    category: EventCategory
    type: EventType
    subtype: EventSubtype | None = None
    payload: Dict[str, Any] = Field(default_factory=dict, description="Flattened key/value payload")
    original_event: Any = Field(default=None, description="Raw connector payload kept for debugging")
