"""
The facts document conditions and tokens are resolved against.

    {
      "event":     {id, category, type, subtype, timestamp, timestampMs,
                    connectorId, deviceId, payload, <payload keys>...},
      "device":    {id, externalId, name, type, subtype, ...},
      "area":      {id, name, armedState, locationId},
      "location":  {id, name, timeZone},
      "connector": {id, category, name},
      "schedule":  {triggeredAtUTC, triggeredAtLocal, timeZone},   # scheduler firings only
    }

Unknown records are empty dicts so paths into them resolve as missing.
"""

from typing import Any, Dict, List

from models import EventContext

from .timeutils import load_zone


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def _event_facts(context: EventContext) -> Dict[str, Any]:
    event = context.event
    if event is None:
        return {}
    payload = dict(event.payload)
    facts: Dict[str, Any] = dict(payload)
    facts.update(
        {
            "id": event.event_id,
            "eventId": event.event_id,
            "category": event.category.value,
            "type": event.type.value,
            "subtype": event.subtype.value if event.subtype else None,
            "timestamp": event.timestamp.isoformat(),
            "timestampMs": int(event.timestamp.timestamp() * 1000),
            "connectorId": event.connector_id,
            "deviceId": event.device_id,
            "payload": payload,
        }
    )
    return facts


def build_facts(context: EventContext, time_zone: str | None = None) -> Dict[str, Any]:
    device = context.device
    area = context.area
    location = context.location
    connector = context.connector
    facts: Dict[str, Any] = {
        "event": _event_facts(context),
        "device": {
            "id": device.id,
            "externalId": device.device_id,
            "name": device.name,
            "type": device.type,
            "subtype": device.subtype,
            "vendor": device.vendor,
            "model": device.model,
            "status": device.status,
            "batteryPercentage": device.battery_percentage,
            "areaId": device.area_id,
        }
        if device
        else {},
        "area": {"id": area.id, "name": area.name, "armedState": area.armed_state.value, "locationId": area.location_id}
        if area
        else {},
        "location": {"id": location.id, "name": location.name, "timeZone": location.time_zone} if location else {},
        "connector": {"id": connector.id, "category": connector.category, "name": connector.name} if connector else {},
    }
    if context.scheduled_at is not None:
        zone = load_zone(time_zone)
        local = context.scheduled_at.astimezone(zone) if zone else context.scheduled_at
        facts["schedule"] = {
            "triggeredAtUTC": context.scheduled_at.isoformat(),
            "triggeredAtLocal": local.isoformat(),
            "timeZone": time_zone or "UTC",
        }
    return facts


def _lookup(current: Any, parts: List[str], index: int) -> Any:
    if index == len(parts):
        return current
    if isinstance(current, dict):
        # Longest key first: flattened payload keys may themselves contain dots.
        for end in range(len(parts), index, -1):
            key = ".".join(parts[index:end])
            if key in current:
                found = _lookup(current[key], parts, end)
                if found is not MISSING:
                    return found
        return MISSING
    if isinstance(current, list) and parts[index].isdigit():
        position = int(parts[index])
        if position < len(current):
            return _lookup(current[position], parts, index + 1)
    return MISSING


def resolve_path(facts: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path; returns MISSING (never raises) when absent."""
    if not path:
        return MISSING
    return _lookup(facts, path.split("."), 0)
