import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

import pytest

from config import Settings
from db import InMemoryAuditRepository, InMemoryAutomationRepository, InMemorySiteRepository, create_session_factory
from handlers import ActionHandler
from models import ActionResult, Area, Automation, Connector, Device, Location
from registry import Registry

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)  # a Monday


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingHandler(ActionHandler):
    """Succeeds and remembers every parameter set it was called with."""

    def __init__(self, retryable: bool = False):
        self.calls = []
        self.retryable = retryable
        self._lock = threading.Lock()

    def is_retryable(self, params):
        return self.retryable

    def execute(self, params):
        with self._lock:
            self.calls.append(params)
        return ActionResult(success=True, result_data={"echo": params})


class FailingHandler(RecordingHandler):
    def execute(self, params):
        with self._lock:
            self.calls.append(params)
        return ActionResult(success=False, error="upstream rejected")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def settings():
    return Settings(
        database_url="sqlite://",
        action_timeout_seconds=0.2,
        max_action_retries=3,
        retry_backoff_base_seconds=0.1,
        retry_backoff_max_seconds=0.25,
        max_concurrent_firings=4,
        default_timezone="UTC",
    )


@pytest.fixture()
def sites():
    directory = InMemorySiteRepository()
    directory.add_location(
        Location(
            id="loc-1",
            name="HQ",
            time_zone="UTC",
            sunrise_time="06:00",
            sunset_time="18:00",
            sun_times_updated_at=NOW - timedelta(days=1),
        )
    )
    directory.add_location(Location(id="loc-ny", name="New York office", time_zone="America/New_York"))
    directory.add_area(Area(id="area-1", name="Lobby", location_id="loc-1"))
    directory.add_area(Area(id="area-2", name="Warehouse", location_id="loc-1"))
    directory.add_connector(Connector(id="conn-1", category="yolink", name="YoLink cloud"))
    directory.add_device(
        Device(id="dev-1", connector_id="conn-1", device_id="yl-123", name="Front Door", type="DoorSensor", area_id="area-1")
    )
    return directory


@pytest.fixture()
def automations():
    return InMemoryAutomationRepository()


@pytest.fixture()
def audit_repository():
    return InMemoryAuditRepository()


@pytest.fixture()
def record_handler():
    return RecordingHandler()


@pytest.fixture()
def registry(record_handler):
    action_registry = Registry(name="action")
    action_registry.register("record", "Test action", record_handler)
    return action_registry


@pytest.fixture()
def session_factory(tmp_path):
    engine, factory = create_session_factory(f"sqlite:///{tmp_path / 'automations.db'}")
    yield factory
    engine.dispose()


@pytest.fixture()
def make_automation():
    def _make(
        name="Door alert",
        conditions=None,
        event_filter=None,
        actions=None,
        temporal=None,
        enabled=True,
        scope=None,
        trigger=None,
        automation_id=None,
    ) -> Automation:
        config = {
            "trigger": trigger or {"type": "EVENT", "eventFilter": event_filter, "conditions": conditions},
            "actions": actions or [{"type": "record", "params": {}}],
            "temporalConditions": temporal or [],
        }
        return Automation.model_validate(
            {"id": automation_id, "name": name, "enabled": enabled, "locationScopeId": scope, "configJson": config}
        )

    return _make
