"""
Event Normalizer: connector payload in, StandardizedEvent (or None) out.

Each connector family has its own parser; the name lookups live in
event_maps. Unknown names still produce an event (UNKNOWN /
UNKNOWN_EXTERNAL_EVENT) so catch-all rules can react, and each unknown name
is warned about only once per process.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from models import EventCategory, EventSubtype, EventType, StandardizedEvent, category_for, flatten_payload

from . import event_maps
from .timeutils import ensure_aware, utc_now

logger = logging.getLogger(__name__)

_TIMESTAMP_DIVISORS = {"s": 1, "ms": 1_000, "us": 1_000_000}


class EventNormalizer:
    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._warned: set[tuple[str, str]] = set()
        self._parsers: Dict[str, Callable[[str, Dict[str, Any]], StandardizedEvent | None]] = {
            "yolink": self._parse_yolink,
            "genea": self._parse_genea,
            "piko": self._parse_piko,
            "generic": self._parse_generic,
        }

    def normalize(self, connector_id: str, connector_category: str, raw: Any) -> StandardizedEvent | None:
        category = (connector_category or "generic").lower()
        if not isinstance(raw, dict):
            self._warn_once("malformed", category, "Dropping non-object payload from %s connector %s", category, connector_id)
            return None
        parser = self._parsers.get(category)
        if parser is None:
            self._warn_once("connector", category, "No dedicated parser for connector category %r, using generic", category)
            parser = self._parse_generic
        return parser(connector_id, raw)

    # -- helpers -----------------------------------------------------------

    def _warn_once(self, kind: str, name: str, message: str, *args: Any) -> None:
        key = (kind, name)
        with self._lock:
            if key in self._warned:
                return
            self._warned.add(key)
        logger.warning(message, *args)

    def _drop_missing_device(self, connector_id: str, connector_category: str) -> None:
        logger.warning(
            "Dropping %s event without device id",
            connector_category,
            extra={"connector_id": connector_id},
        )

    def _timestamp(self, value: Any, unit: str = "ms") -> datetime:
        try:
            if isinstance(value, bool):
                raise TypeError("boolean timestamp")
            if isinstance(value, (int, float)):
                return datetime.fromtimestamp(value / _TIMESTAMP_DIVISORS[unit], tz=timezone.utc)
            if isinstance(value, str) and value.strip():
                text = value.strip()
                if text.isdigit():
                    return datetime.fromtimestamp(int(text) / _TIMESTAMP_DIVISORS[unit], tz=timezone.utc)
                return ensure_aware(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except (TypeError, ValueError, OverflowError, OSError):
            pass
        logger.debug("Unparseable timestamp %r, using ingestion time", value)
        return self._clock()

    def _build(
        self,
        connector_id: str,
        device_id: Any,
        timestamp: datetime,
        event_type: EventType,
        subtype: EventSubtype | None,
        payload: Dict[str, Any],
        raw: Dict[str, Any],
    ) -> StandardizedEvent:
        return StandardizedEvent(
            connector_id=connector_id,
            device_id=str(device_id),
            timestamp=timestamp,
            category=category_for(event_type),
            type=event_type,
            subtype=subtype,
            payload=payload,
            original_event=raw,
        )

    def _unknown(self, connector_id: str, device_id: Any, timestamp: datetime, name: str, raw: Dict[str, Any], category: str) -> StandardizedEvent:
        self._warn_once("event", f"{category}:{name}", "Unmapped %s event %r, recording as UNKNOWN_EXTERNAL_EVENT", category, name)
        payload = flatten_payload({k: v for k, v in raw.items() if isinstance(k, str)})
        payload["originalEventType"] = name
        return StandardizedEvent(
            connector_id=connector_id,
            device_id=str(device_id),
            timestamp=timestamp,
            category=EventCategory.UNKNOWN,
            type=EventType.UNKNOWN_EXTERNAL_EVENT,
            payload=payload,
            original_event=raw,
        )

    # -- connector parsers -------------------------------------------------

    def _parse_yolink(self, connector_id: str, raw: Dict[str, Any]) -> StandardizedEvent | None:
        device_id = raw.get("deviceId")
        if not device_id:
            self._drop_missing_device(connector_id, "yolink")
            return None
        name = str(raw.get("event") or "")
        timestamp = self._timestamp(raw.get("time"), "ms")
        data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
        kind, _, suffix = name.partition(".")

        payload = flatten_payload(data)
        payload["rawEventType"] = name

        state = data.get("state")
        state_map = event_maps.YOLINK_STATE_MAP.get(kind)
        if state is not None and state_map is not None:
            display = state_map.get(str(state).lower())
            if display is not None:
                payload["displayState"] = display
                return self._build(connector_id, device_id, timestamp, EventType.STATE_CHANGED, None, payload, raw)

        button = data.get("event", {}).get("type") if isinstance(data.get("event"), dict) else None
        if button in event_maps.YOLINK_BUTTON_MAP:
            return self._build(connector_id, device_id, timestamp, event_maps.YOLINK_BUTTON_MAP[button], None, payload, raw)

        online = data.get("online")
        if suffix == "StatusChange" and isinstance(online, bool):
            event_type = event_maps.YOLINK_CONNECTIVITY_MAP["online" if online else "offline"]
            return self._build(connector_id, device_id, timestamp, event_type, None, payload, raw)

        return self._unknown(connector_id, device_id, timestamp, name or "<missing>", raw, "yolink")

    def _parse_genea(self, connector_id: str, raw: Dict[str, Any]) -> StandardizedEvent | None:
        door = raw.get("door") if isinstance(raw.get("door"), dict) else {}
        device_id = door.get("uuid")
        if not device_id:
            self._drop_missing_device(connector_id, "genea")
            return None
        timestamp = self._timestamp(raw.get("event_time") or raw.get("created_at"), "s")
        action = str(raw.get("event_action") or "")
        mapped = event_maps.GENEA_EVENT_MAP.get(action.upper())
        if mapped is None:
            return self._unknown(connector_id, device_id, timestamp, action or "<missing>", raw, "genea")

        payload: Dict[str, Any] = {"eventAction": action}
        for key in ("event_message", "event_type", "event_note"):
            if raw.get(key) is not None:
                payload[key] = raw[key]
        if door.get("name"):
            payload["doorName"] = door["name"]
        for section in ("actor", "location", "card"):
            if isinstance(raw.get(section), dict):
                payload.update(flatten_payload(raw[section], section))
        event_type, subtype = mapped
        return self._build(connector_id, device_id, timestamp, event_type, subtype, payload, raw)

    def _parse_piko(self, connector_id: str, raw: Dict[str, Any]) -> StandardizedEvent | None:
        params = raw.get("params") if isinstance(raw.get("params"), dict) else raw
        event_type_name = str(params.get("eventType") or "")
        if event_type_name not in event_maps.PIKO_ALLOWED_EVENT_TYPES:
            self._warn_once("irrelevant", f"piko:{event_type_name}", "Discarding piko event type %r", event_type_name)
            return None
        device_id = params.get("eventResourceId")
        if not device_id:
            self._drop_missing_device(connector_id, "piko")
            return None
        timestamp = self._timestamp(params.get("eventTimestampUsec"), "us")
        caption = params.get("caption")
        input_port = params.get("inputPortId")
        event_type, subtype = event_maps.classify_piko(event_type_name, input_port, caption)
        payload = {
            key: params.get(key)
            for key in ("caption", "description", "inputPortId", "analyticsEngineId", "objectTrackId", "eventResourceId")
            if params.get(key) is not None
        }
        payload["rawEventType"] = event_type_name
        return self._build(connector_id, device_id, timestamp, event_type, subtype, payload, raw)

    def _parse_generic(self, connector_id: str, raw: Dict[str, Any]) -> StandardizedEvent | None:
        device_id = raw.get("deviceId") or raw.get("device_id")
        if not device_id:
            self._drop_missing_device(connector_id, "generic")
            return None
        timestamp = self._timestamp(raw.get("timestamp"), "ms")
        name = str(raw.get("type") or raw.get("event") or "")
        event_type = EventType.__members__.get(name.upper())
        body = raw.get("payload") if isinstance(raw.get("payload"), dict) else {}
        if event_type is None:
            return self._unknown(connector_id, device_id, timestamp, name or "<missing>", raw, "generic")
        subtype = EventSubtype.__members__.get(str(raw.get("subtype") or "").upper())
        return self._build(connector_id, device_id, timestamp, event_type, subtype, flatten_payload(body), raw)
