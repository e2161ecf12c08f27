from datetime import datetime, timezone

import pytest

from db import (
    AreaModel,
    AutomationModel,
    AutomationNotFoundError,
    DeviceModel,
    InMemoryAutomationRepository,
    LocationModel,
    ScheduleModel,
    SqlAlchemyAutomationRepository,
    SqlAlchemySiteRepository,
)
from models import ArmedState, walk_condition_tree
from validations import migrate_internal_ids

CONDITIONS = {"all": [{"field": "event.state", "operator": "equals", "value": "open"}]}
WITH_IDS = {"_internalId": "root", "all": [{"_internalId": "leaf", "field": "event.state", "operator": "equals", "value": "open"}]}


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, session_factory):
    if request.param == "memory":
        return InMemoryAutomationRepository()
    return SqlAlchemyAutomationRepository(session_factory)


def _ids(automation):
    return [node.internal_id for node in walk_condition_tree(automation.trigger.conditions)]


def test_save_and_get(repository, make_automation):
    automation = make_automation(conditions=WITH_IDS, scope="loc-1")
    automation_id = repository.save(automation)

    loaded = repository.get(automation_id)

    assert loaded.id == automation_id
    assert loaded.name == "Door alert"
    assert loaded.location_scope_id == "loc-1"
    assert _ids(loaded) == _ids(automation)
    assert repository.get("missing") is None


def test_enable_disable(repository, make_automation):
    first = repository.save(make_automation(name="first"))
    repository.save(make_automation(name="second"))

    repository.set_enabled(first, False)

    assert [automation.name for automation in repository.list_enabled()] == ["second"]
    assert len(repository.list_all()) == 2


def test_update_and_delete(repository, make_automation):
    automation_id = repository.save(make_automation())

    repository.update(automation_id, make_automation(name="Renamed"))
    assert repository.get(automation_id).name == "Renamed"

    repository.delete(automation_id)
    assert repository.get(automation_id) is None
    with pytest.raises(AutomationNotFoundError):
        repository.delete(automation_id)
    with pytest.raises(AutomationNotFoundError):
        repository.set_enabled(automation_id, True)


def test_clone_is_disabled_with_fresh_ids(repository, make_automation):
    source_id = repository.save(make_automation(conditions=WITH_IDS))

    clone_id = repository.clone(source_id)

    source, clone = repository.get(source_id), repository.get(clone_id)
    assert clone_id != source_id
    assert clone.name == "Copy of Door alert"
    assert clone.enabled is False
    assert all(_ids(clone))
    assert set(_ids(clone)).isdisjoint(_ids(source))
    with pytest.raises(AutomationNotFoundError):
        repository.clone("missing")


def test_migration_adds_ids_once(repository, make_automation):
    automation_id = repository.save(make_automation(conditions=CONDITIONS))
    assert _ids(repository.get(automation_id)) == [None, None]

    report = migrate_internal_ids(repository)

    assert (report.migrated, report.skipped, report.ok) == (1, 0, True)
    assert all(_ids(repository.get(automation_id)))

    again = migrate_internal_ids(repository)
    assert (again.migrated, again.skipped) == (0, 1)


def test_migration_upgrades_legacy_rows(session_factory):
    with session_factory() as session, session.begin():
        session.add(
            AutomationModel(
                id="legacy-1",
                name="Old layout",
                enabled=True,
                config_json={
                    "trigger": {"type": "event"},
                    "conditions": [[{"fact": "event.state", "operator": "equal", "value": "open"}]],
                    "actions": [{"type": "record"}],
                },
            )
        )
        session.add(AutomationModel(id="broken-1", name="Broken", enabled=True, config_json={"trigger": {"type": "event"}}))
    repository = SqlAlchemyAutomationRepository(session_factory)

    report = migrate_internal_ids(repository)

    assert report.migrated == 1
    assert "broken-1" in report.errors
    assert report.ok is False
    upgraded = repository.get("legacy-1")
    assert upgraded.trigger.conditions.any_[0].all_[0].field == "event.state"
    # the unreadable row is skipped, not fatal
    assert [automation.id for automation in repository.list_enabled()] == ["legacy-1"]


def test_sql_site_directory(session_factory):
    with session_factory() as session, session.begin():
        session.add(LocationModel(id="loc-1", name="HQ", time_zone="Europe/Berlin"))
        session.add(AreaModel(id="area-1", name="Lobby", location_id="loc-1", armed_state="DISARMED"))
        session.add(DeviceModel(id="dev-1", connector_id="conn-1", device_id="yl-123", name="Front Door", area_id="area-1"))
        session.add(
            ScheduleModel(id="sched-1", name="Nights", location_id="loc-1", days_of_week=[0, 1], start_time="22:00", end_time="06:00")
        )
    sites = SqlAlchemySiteRepository(session_factory)

    device = sites.get_device("conn-1", "yl-123")
    assert device.id == "dev-1"
    assert sites.get_device("conn-1", "other") is None
    assert sites.get_schedule("sched-1").days_of_week == [0, 1]
    assert [area.id for area in sites.list_areas("loc-1")] == ["area-1"]

    updated = sites.set_area_armed_state("area-1", ArmedState.ARMED_STAY)
    assert updated.armed_state is ArmedState.ARMED_STAY
    assert sites.get_area("area-1").armed_state is ArmedState.ARMED_STAY
    assert sites.set_area_armed_state("area-404", ArmedState.DISARMED) is None

    refreshed_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
    sites.update_sun_times("loc-1", "06:45", "18:10", refreshed_at)
    location = sites.get_location("loc-1")
    assert (location.sunrise_time, location.sunset_time) == ("06:45", "18:10")
    assert location.sun_times_updated_at == refreshed_at
