import logging
from datetime import datetime, timezone

from engine import EventNormalizer
from models import EventCategory, EventSubtype, EventType

FIXED = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _normalizer():
    return EventNormalizer(clock=lambda: FIXED)


class TestYoLink:
    def test_door_open_becomes_state_changed(self):
        raw = {"event": "DoorSensor.Alert", "time": 1767225600000, "deviceId": "yl-123", "data": {"state": "open", "battery": 4}}

        event = _normalizer().normalize("conn-1", "yolink", raw)

        assert event.category is EventCategory.DEVICE_STATE
        assert event.type is EventType.STATE_CHANGED
        assert event.device_id == "yl-123"
        assert event.connector_id == "conn-1"
        assert event.payload["state"] == "open"
        assert event.payload["displayState"] == "Open"
        assert event.payload["rawEventType"] == "DoorSensor.Alert"
        assert event.timestamp == datetime.fromtimestamp(1767225600, tz=timezone.utc)
        assert event.original_event == raw

    def test_long_press_maps_to_button_event(self):
        raw = {"event": "SmartRemoter.Report", "deviceId": "remote-1", "data": {"event": {"type": "LongPress"}}}

        event = _normalizer().normalize("conn-1", "yolink", raw)

        assert event.type is EventType.BUTTON_LONG_PRESSED
        assert event.payload["event.type"] == "LongPress"

    def test_status_change_maps_to_connectivity(self):
        raw = {"event": "DoorSensor.StatusChange", "deviceId": "yl-123", "data": {"online": False}}

        event = _normalizer().normalize("conn-1", "yolink", raw)

        assert event.category is EventCategory.DEVICE_CONNECTIVITY
        assert event.type is EventType.DEVICE_OFFLINE

    def test_unmapped_name_is_kept_as_unknown(self):
        raw = {"event": "Thermostat.Report", "deviceId": "t-1", "data": {"temperature": 21}}

        event = _normalizer().normalize("conn-1", "yolink", raw)

        assert event.category is EventCategory.UNKNOWN
        assert event.type is EventType.UNKNOWN_EXTERNAL_EVENT
        assert event.payload["originalEventType"] == "Thermostat.Report"
        assert event.payload["data.temperature"] == 21

    def test_missing_device_id_is_dropped(self):
        assert _normalizer().normalize("conn-1", "yolink", {"event": "DoorSensor.Alert", "data": {"state": "open"}}) is None

    def test_unparseable_time_falls_back_to_clock(self):
        raw = {"event": "DoorSensor.Alert", "time": "yesterday", "deviceId": "yl-123", "data": {"state": "closed"}}

        event = _normalizer().normalize("conn-1", "yolink", raw)

        assert event.timestamp == FIXED
        assert event.payload["displayState"] == "Closed"


class TestGenea:
    def test_denied_event_carries_subtype_and_door(self):
        raw = {
            "event_action": "SEQUR_ACCESS_DENIED_INVALID_PIN",
            "event_time": 1767225600,
            "door": {"uuid": "door-9", "name": "Lobby"},
            "actor": {"name": "Sam"},
        }

        event = _normalizer().normalize("conn-2", "genea", raw)

        assert event.category is EventCategory.ACCESS_CONTROL
        assert event.type is EventType.ACCESS_DENIED
        assert event.subtype is EventSubtype.INVALID_CREDENTIAL
        assert event.device_id == "door-9"
        assert event.payload["doorName"] == "Lobby"
        assert event.payload["actor.name"] == "Sam"
        assert event.timestamp == datetime.fromtimestamp(1767225600, tz=timezone.utc)

    def test_forced_door(self):
        raw = {"event_action": "SEQUR_DOOR_FORCED_OPEN", "door": {"uuid": "door-9"}}

        event = _normalizer().normalize("conn-2", "genea", raw)

        assert event.type is EventType.DOOR_FORCED_OPEN
        assert event.timestamp == FIXED


class TestPiko:
    def test_person_detection(self):
        raw = {
            "params": {
                "eventType": "analyticsSdkObjectDetected",
                "eventResourceId": "cam-1",
                "eventTimestampUsec": "1767225600000000",
                "inputPortId": "csg.analytics.object.person",
                "caption": "Person detected",
            }
        }

        event = _normalizer().normalize("conn-3", "piko", raw)

        assert event.category is EventCategory.ANALYTICS
        assert event.type is EventType.OBJECT_DETECTED
        assert event.subtype is EventSubtype.PERSON
        assert event.device_id == "cam-1"
        assert event.timestamp == datetime.fromtimestamp(1767225600, tz=timezone.utc)

    def test_input_port_wins_over_event_type(self):
        raw = {"eventType": "analyticsSdkEvent", "eventResourceId": "cam-1", "inputPortId": "cvedia.rt.loitering"}

        event = _normalizer().normalize("conn-3", "piko", raw)

        assert event.type is EventType.LOITERING
        assert event.subtype is None

    def test_irrelevant_event_type_is_discarded(self):
        raw = {"params": {"eventType": "userDefinedEvent", "eventResourceId": "cam-1"}}

        assert _normalizer().normalize("conn-3", "piko", raw) is None


class TestGeneric:
    def test_known_type_with_nested_payload(self):
        raw = {"deviceId": "g-1", "type": "motion_detected", "payload": {"zone": {"name": "yard"}}, "timestamp": "2026-01-01T00:00:00Z"}

        event = _normalizer().normalize("conn-4", "generic", raw)

        assert event.type is EventType.MOTION_DETECTED
        assert event.category is EventCategory.ANALYTICS
        assert event.payload == {"zone.name": "yard"}
        assert event.timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_unknown_category_falls_back_and_warns_once(self, caplog):
        normalizer = _normalizer()
        raw = {"deviceId": "g-1", "type": "DEVICE_ONLINE"}

        with caplog.at_level(logging.WARNING, logger="engine.normalizer"):
            first = normalizer.normalize("conn-5", "acme", raw)
            second = normalizer.normalize("conn-5", "acme", raw)

        assert first.type is EventType.DEVICE_ONLINE
        assert second.type is EventType.DEVICE_ONLINE
        warnings = [r for r in caplog.records if "No dedicated parser" in r.getMessage()]
        assert len(warnings) == 1

    def test_non_object_payload_is_dropped(self):
        assert _normalizer().normalize("conn-4", "generic", ["not", "an", "object"]) is None

    def test_each_event_gets_its_own_id(self):
        normalizer = _normalizer()
        raw = {"deviceId": "g-1", "type": "DEVICE_ONLINE"}

        assert normalizer.normalize("conn-4", "generic", raw).event_id != normalizer.normalize("conn-4", "generic", raw).event_id
