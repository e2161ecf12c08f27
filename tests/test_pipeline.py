import threading
from concurrent.futures import wait

import pytest

from channels import Broadcaster
from engine import AuditRecorder, AutomationEngine
from handlers import ActionHandler
from models import ActionResult, ExecutionStatus

DOOR_OPEN = {"event": "DoorSensor.Alert", "time": 1772452800000, "deviceId": "yl-123", "data": {"state": "open"}}
OPEN_CONDITION = {"all": [{"field": "event.state", "operator": "equals", "value": "open"}]}
DOOR_CLOSED = {**DOOR_OPEN, "data": {"state": "closed"}}
CLOSED_CONDITION = {"all": [{"field": "event.state", "operator": "equals", "value": "closed"}]}


@pytest.fixture()
def broadcaster():
    return Broadcaster(queue_size=10)


@pytest.fixture()
def make_engine(automations, sites, registry, audit_repository, broadcaster, clock):
    engines = []

    def _make(settings):
        recorder = AuditRecorder(audit_repository, settings, clock=clock)
        automation_engine = AutomationEngine(
            automations, sites, registry, recorder, settings, broadcaster=broadcaster, clock=clock, sleep=lambda _: None
        )
        engines.append(automation_engine)
        return automation_engine

    yield _make
    for automation_engine in engines:
        automation_engine.shutdown()


@pytest.fixture()
def engine(make_engine, settings):
    return make_engine(settings)


class HeldHandler(ActionHandler):
    def __init__(self):
        self.release = threading.Event()

    def execute(self, params):
        self.release.wait(5)
        return ActionResult(success=True)


def _ingest(engine, raw=DOOR_OPEN):
    futures = engine.ingest("conn-1", "yolink", raw)
    wait(futures, timeout=5)
    return [future.result() for future in futures]


def test_door_open_fires_rule(engine, automations, make_automation, record_handler, broadcaster):
    automation_id = automations.save(
        make_automation(
            conditions=OPEN_CONDITION,
            event_filter={"categories": ["DEVICE_STATE"], "types": ["STATE_CHANGED"]},
            actions=[{"type": "record", "params": {"message": "{{device.name}} opened in {{area.name}}"}}],
        )
    )
    subscription = broadcaster.subscribe()

    execution_ids = _ingest(engine)

    assert len(execution_ids) == 1
    detail = engine.recorder.get_execution_detail(execution_ids[0])
    assert detail.automation_id == automation_id
    assert detail.execution_status is ExecutionStatus.SUCCESS
    assert (detail.successful_actions, detail.failed_actions) == (1, 0)
    assert detail.state_conditions_met is True
    assert detail.temporal_conditions_met is True
    assert detail.trigger_event_id is not None
    assert detail.trigger_context["device"]["name"] == "Front Door"
    assert record_handler.calls == [{"message": "Front Door opened in Lobby"}]

    message = subscription.get(timeout=1)
    assert message.topic == "execution.completed"
    assert message.data["executionId"] == execution_ids[0]
    assert message.data["status"] == "success"


def test_disabled_rule_is_never_recorded(engine, automations, make_automation, record_handler):
    automations.save(make_automation(conditions=OPEN_CONDITION, enabled=False))

    assert _ingest(engine) == []
    assert engine.recorder.get_execution_count() == 0
    assert record_handler.calls == []


def test_redelivered_event_fires_twice(engine, automations, make_automation):
    automations.save(make_automation(conditions=OPEN_CONDITION))

    _ingest(engine)
    _ingest(engine)

    assert engine.recorder.get_execution_count() == 2


def test_unmet_conditions_do_not_fire(engine, automations, make_automation):
    closed = {"all": [{"field": "event.state", "operator": "equals", "value": "closed"}]}
    automations.save(make_automation(conditions=closed))

    assert _ingest(engine) == []


def test_temporal_gate_blocks_firing(engine, automations, make_automation, sites):
    automations.save(make_automation(conditions=OPEN_CONDITION, temporal=[{"type": "armedState", "armedStateRef": "area-1"}]))

    assert _ingest(engine) == []

    sites.set_area_armed_state("area-1", "ARMED_AWAY")
    assert len(_ingest(engine)) == 1


def test_scope_follows_device_location(engine, automations, make_automation):
    automations.save(make_automation(name="HQ only", scope="loc-1"))
    automations.save(make_automation(name="NY only", scope="loc-ny"))

    execution_ids = _ingest(engine)

    assert len(execution_ids) == 1
    detail = engine.recorder.get_execution_detail(execution_ids[0])
    assert automations.get(detail.automation_id).name == "HQ only"


def test_unknown_device_still_reaches_global_rules(engine, automations, make_automation, record_handler):
    automations.save(make_automation(actions=[{"type": "record", "params": {"device": "[{{device.name}}]"}}]))

    _ingest(engine, {**DOOR_OPEN, "deviceId": "unregistered"})

    assert record_handler.calls == [{"device": "[]"}]


def test_each_matching_rule_gets_its_own_execution(engine, automations, make_automation):
    automations.save(make_automation(name="first"))
    automations.save(make_automation(name="second"))

    execution_ids = _ingest(engine)

    assert len(set(execution_ids)) == 2


def test_temporal_errors_are_recorded_as_failures(engine, automations, make_automation, monkeypatch, record_handler):
    automations.save(make_automation(conditions=OPEN_CONDITION))

    def _explode(*args, **kwargs):
        raise RuntimeError("directory offline")

    monkeypatch.setattr(engine.temporal, "evaluate", _explode)

    execution_ids = _ingest(engine)

    detail = engine.recorder.get_execution_detail(execution_ids[0])
    assert detail.execution_status is ExecutionStatus.FAILURE
    assert detail.temporal_conditions_met is None
    assert "directory offline" in detail.trigger_context["error"]
    assert record_handler.calls == []


def test_unparseable_payload_is_dropped(engine, automations, make_automation):
    automations.save(make_automation())

    assert engine.ingest("conn-1", "yolink", {"event": "DoorSensor.Alert"}) == []


class TestConcurrency:
    def test_slow_firing_does_not_delay_other_events(self, make_engine, settings, automations, make_automation, registry, record_handler):
        engine = make_engine(settings.model_copy(update={"action_timeout_seconds": 5}))
        held = HeldHandler()
        registry.register("held", "Answers when released", held)
        automations.save(make_automation(name="slow", conditions=OPEN_CONDITION, actions=[{"type": "held"}]))
        automations.save(make_automation(name="fast", conditions=CLOSED_CONDITION))

        try:
            slow = engine.ingest("conn-1", "yolink", DOOR_OPEN)
            fast = engine.ingest("conn-1", "yolink", DOOR_CLOSED)
            fast_execution = fast[0].result(timeout=2)

            assert not slow[0].done()
            assert engine.recorder.get_execution_detail(fast_execution).execution_status is ExecutionStatus.SUCCESS
            assert len(record_handler.calls) == 1
        finally:
            held.release.set()

        slow_execution = slow[0].result(timeout=5)
        assert engine.recorder.get_execution_detail(slow_execution).execution_status is ExecutionStatus.SUCCESS

    def test_timed_out_firings_do_not_fail_later_ones(self, make_engine, settings, automations, make_automation, registry, record_handler):
        engine = make_engine(settings.model_copy(update={"max_concurrent_firings": 2}))
        held = HeldHandler()
        registry.register("held", "Never answers in time", held)
        automations.save(make_automation(name="hung", conditions=OPEN_CONDITION, actions=[{"type": "held"}]))
        automations.save(make_automation(name="quick", conditions=CLOSED_CONDITION))

        try:
            hung = engine.ingest("conn-1", "yolink", DOOR_OPEN) + engine.ingest("conn-1", "yolink", DOOR_OPEN)
            quick = _ingest(engine, DOOR_CLOSED)
            wait(hung, timeout=5)
        finally:
            held.release.set()

        assert engine.recorder.get_execution_detail(quick[0]).execution_status is ExecutionStatus.SUCCESS
        assert len(record_handler.calls) == 1
        for future in hung:
            detail = engine.recorder.get_execution_detail(future.result())
            assert detail.execution_status is ExecutionStatus.FAILURE
            assert detail.actions[0].error_message == "Timed out after 0.2s"

    def test_events_from_one_device_are_evaluated_in_arrival_order(self, engine, monkeypatch):
        resolve = engine.context_resolver.resolve
        order = []
        entered, gate = threading.Event(), threading.Event()

        def _resolve(event):
            order.append((event.device_id, event.payload["state"]))
            if len(order) == 1:
                entered.set()
                gate.wait(5)
            return resolve(event)

        monkeypatch.setattr(engine.context_resolver, "resolve", _resolve)
        first = threading.Thread(target=engine.ingest, args=("conn-1", "yolink", DOOR_OPEN))
        second = threading.Thread(target=engine.ingest, args=("conn-1", "yolink", DOOR_CLOSED))
        other_device = threading.Thread(target=engine.ingest, args=("conn-1", "yolink", {**DOOR_CLOSED, "deviceId": "yl-999"}))

        first.start()
        assert entered.wait(5)
        second.start()
        other_device.start()
        other_device.join(2)
        second.join(0.2)

        assert not other_device.is_alive()
        assert second.is_alive()
        assert order == [("yl-123", "open"), ("yl-999", "closed")]

        gate.set()
        first.join(5)
        second.join(5)

        assert order == [("yl-123", "open"), ("yl-999", "closed"), ("yl-123", "closed")]
        assert engine._device_locks == {}
