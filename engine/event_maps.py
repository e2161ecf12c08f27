"""
Static per-connector lookup tables from vendor event names onto the shared
category/type/subtype taxonomy.
"""

from typing import Dict, Tuple

from models import EventSubtype, EventType

Classification = Tuple[EventType, EventSubtype | None]


# --- Genea (access control webhooks), keyed by `event_action` ---

_DENIED_WITH_SUBTYPE: Dict[str, EventSubtype] = {
    "SEQUR_ACCESS_DENIED_ACCESS_POINT_LOCKED": EventSubtype.DOOR_LOCKED,
    "SEQUR_ACCESS_DENIED_AFTER_EXPIRATION_DATE": EventSubtype.EXPIRED_CREDENTIAL,
    "SEQUR_ACCESS_DENIED_ANTI_PASSBACK_VIOLATION": EventSubtype.ANTIPASSBACK_VIOLATION,
    "SEQUR_ACCESS_DENIED_DURESS_CODE_DETECTED": EventSubtype.DURESS_PIN,
    "SEQUR_ACCESS_DENIED_INVALID_PIN": EventSubtype.INVALID_CREDENTIAL,
    "SEQUR_ACCESS_DENIED_INVALID_TIME": EventSubtype.NOT_IN_SCHEDULE,
    "SEQUR_ACCESS_DENIED_OCCUPANCY_LIMIT_REACHED": EventSubtype.OCCUPANCY_LIMIT,
}

_DENIED_PLAIN = (
    "SEQUR_ACCESS_DENIED_AIRLOCK",
    "SEQUR_ACCESS_DENIED_AREA_NOT_ENABLED",
    "SEQUR_ACCESS_DENIED_BEFORE_ACTIVATION_DATE",
    "SEQUR_ACCESS_DENIED_CARD_NOT_FOUND",
    "SEQUR_ACCESS_DENIED_COUNT_EXCEEDED",
    "SEQUR_ACCESS_DENIED_DEACTIVATED_CARD",
    "SEQUR_ACCESS_DENIED_ELEVATOR_FLOOR",
    "SEQUR_ACCESS_DENIED_ELEVATOR_FLOOR_UNAUTHORIZED",
    "SEQUR_ACCESS_DENIED_ELEVATOR_TIMEOUT",
    "SEQUR_ACCESS_DENIED_ELEVATOR_UNKNOWN_ERROR",
    "SEQUR_ACCESS_DENIED_HOST_APPROVAL_DENIED",
    "SEQUR_ACCESS_DENIED_HOST_APPROVAL_TIMEOUT",
    "SEQUR_ACCESS_DENIED_INCOMPLETE_CARD_PIN_SEQ",
    "SEQUR_ACCESS_DENIED_INVALID_FACILITY_CODE",
    "SEQUR_ACCESS_DENIED_INVALID_FORMAT",
    "SEQUR_ACCESS_DENIED_INVALID_ISSUE_CODE",
    "SEQUR_ACCESS_DENIED_NO_DOOR_ACCESS",
    "SEQUR_ACCESS_DENIED_NO_ESCORT_CARD",
    "SEQUR_ACCESS_DENIED_NO_SECOND_CARD",
    "SEQUR_ACCESS_DENIED_UNAUTHORIZED_ASSETS",
    "SEQUR_ACCESS_DENIED_USE_LIMIT",
)

GENEA_EVENT_MAP: Dict[str, Classification] = {
    **{name: (EventType.ACCESS_DENIED, subtype) for name, subtype in _DENIED_WITH_SUBTYPE.items()},
    **{name: (EventType.ACCESS_DENIED, None) for name in _DENIED_PLAIN},
    "SEQUR_ACCESS_GRANTED": (EventType.ACCESS_GRANTED, EventSubtype.NORMAL),
    "SEQUR_ACCESS_GRANTED_ACCESS_POINT_UNLOCKED": (EventType.ACCESS_GRANTED, EventSubtype.NORMAL),
    "SEQUR_DOOR_HELD_OPEN": (EventType.DOOR_HELD_OPEN, None),
    "SEQUR_DOOR_FORCED_OPEN": (EventType.DOOR_FORCED_OPEN, None),
    "SEQUR_DOOR_SECURED": (EventType.DOOR_SECURED, None),
    "SEQUR_REQUEST_TO_EXIT": (EventType.EXIT_REQUEST, None),
}


# --- Piko (video analytics over WebSocket) ---

# Only these event types are relevant; anything else is discarded.
PIKO_ALLOWED_EVENT_TYPES = frozenset({"analyticsSdkObjectDetected", "analyticsSdkEvent", "cameraMotionEvent"})

# Checked first, lower-cased `inputPortId`.
PIKO_INPUT_PORT_MAP: Dict[str, EventType] = {
    "cvedia.rt.loitering": EventType.LOITERING,
    "cvedia.rt.armed_person": EventType.ARMED_PERSON,
    "cvedia.rt.tailgating": EventType.TAILGATING,
    "cvedia.rt.intrusion": EventType.INTRUSION,
    "cvedia.rt.crossing": EventType.LINE_CROSSING,
    "cvedia.rt.object_removed": EventType.OBJECT_REMOVED,
    "objectremovedetector": EventType.OBJECT_REMOVED,
    "udp.videoa.anpr": EventType.LICENSE_PLATE_DETECTED,
    "csg.analytics.object.person": EventType.OBJECT_DETECTED,
    "csg.analytics.event.person": EventType.OBJECT_DETECTED,
}

PIKO_EVENT_TYPE_MAP: Dict[str, EventType] = {
    "analyticsSdkObjectDetected": EventType.OBJECT_DETECTED,
    "analyticsSdkEvent": EventType.ANALYTICS_EVENT,
    "cameraMotionEvent": EventType.MOTION_DETECTED,
}


def object_subtype_from_text(text: str | None) -> EventSubtype | None:
    if not text:
        return None
    lowered = text.lower()
    if "person" in lowered:
        return EventSubtype.PERSON
    if "vehicle" in lowered:
        return EventSubtype.VEHICLE
    return None


def classify_piko(event_type: str, input_port_id: str | None, caption: str | None) -> Classification:
    port = (input_port_id or "").lower()
    if port in PIKO_INPUT_PORT_MAP:
        mapped = PIKO_INPUT_PORT_MAP[port]
        if mapped in (EventType.INTRUSION, EventType.OBJECT_DETECTED):
            return mapped, object_subtype_from_text(caption) or object_subtype_from_text(port)
        return mapped, None
    mapped = PIKO_EVENT_TYPE_MAP.get(event_type, EventType.ANALYTICS_EVENT)
    if mapped is EventType.OBJECT_DETECTED:
        return mapped, object_subtype_from_text(input_port_id)
    return mapped, None


# --- YoLink (cloud MQTT), keyed by the device kind prefix of "<Kind>.<Event>" ---

_CONTACT = {"open": "Open", "closed": "Closed"}
_LOCK = {"locked": "Locked", "unlocked": "Unlocked"}
_BINARY = {"open": "On", "closed": "Off", "on": "On", "off": "Off"}
_LEAK = {"alert": "Leak Detected", "normal": "Dry"}
_MOTION = {"alert": "Motion Detected", "normal": "No Motion"}
_VIBRATION = {"alert": "Vibration Detected", "normal": "No Vibration"}
_SIREN = {"alert": "Alarming", "normal": "Silent"}

YOLINK_STATE_MAP: Dict[str, Dict[str, str]] = {
    "DoorSensor": _CONTACT,
    "GarageDoor": _CONTACT,
    "Finger": _CONTACT,
    "Lock": _LOCK,
    "Outlet": _BINARY,
    "MultiOutlet": _BINARY,
    "Switch": _BINARY,
    "Dimmer": _BINARY,
    "LeakSensor": _LEAK,
    "MotionSensor": _MOTION,
    "VibrationSensor": _VIBRATION,
    "Siren": _SIREN,
}

YOLINK_BUTTON_MAP: Dict[str, EventType] = {
    "Press": EventType.BUTTON_PRESSED,
    "LongPress": EventType.BUTTON_LONG_PRESSED,
}

YOLINK_CONNECTIVITY_MAP: Dict[str, EventType] = {
    "online": EventType.DEVICE_ONLINE,
    "offline": EventType.DEVICE_OFFLINE,
}
