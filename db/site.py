"""
Site directory: devices, areas, locations, connectors and schedules that the
engine looks up while evaluating rules.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from models import Area, ArmedState, Connector, Device, Location, Schedule

from .converters import db_to_area, db_to_connector, db_to_device, db_to_location, db_to_schedule
from .models import AreaModel, ConnectorModel, DeviceModel, LocationModel, ScheduleModel


class SiteRepository(ABC):
    @abstractmethod
    def get_device(self, connector_id: str, device_id: str) -> Device | None:
        """Look up a device by connector and vendor-side device id."""
        raise NotImplementedError

    @abstractmethod
    def get_area(self, area_id: str) -> Area | None:
        raise NotImplementedError

    @abstractmethod
    def list_areas(self, location_id: str | None = None) -> List[Area]:
        raise NotImplementedError

    @abstractmethod
    def get_location(self, location_id: str) -> Location | None:
        raise NotImplementedError

    @abstractmethod
    def get_connector(self, connector_id: str) -> Connector | None:
        raise NotImplementedError

    @abstractmethod
    def get_schedule(self, schedule_id: str) -> Schedule | None:
        raise NotImplementedError

    @abstractmethod
    def set_area_armed_state(self, area_id: str, state: ArmedState) -> Area | None:
        """Persist a new armed state. Returns the updated area, or None if unknown."""
        raise NotImplementedError

    @abstractmethod
    def update_sun_times(self, location_id: str, sunrise: str, sunset: str, updated_at: datetime) -> None:
        raise NotImplementedError


class InMemorySiteRepository(SiteRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._devices: Dict[tuple[str, str], Device] = {}
        self._areas: Dict[str, Area] = {}
        self._locations: Dict[str, Location] = {}
        self._connectors: Dict[str, Connector] = {}
        self._schedules: Dict[str, Schedule] = {}

    def add_device(self, device: Device) -> None:
        self._devices[(device.connector_id, device.device_id)] = device

    def add_area(self, area: Area) -> None:
        self._areas[area.id] = area

    def add_location(self, location: Location) -> None:
        self._locations[location.id] = location

    def add_connector(self, connector: Connector) -> None:
        self._connectors[connector.id] = connector

    def add_schedule(self, schedule: Schedule) -> None:
        self._schedules[schedule.id] = schedule

    def get_device(self, connector_id: str, device_id: str) -> Device | None:
        return self._devices.get((connector_id, device_id))

    def get_area(self, area_id: str) -> Area | None:
        return self._areas.get(area_id)

    def list_areas(self, location_id: str | None = None) -> List[Area]:
        return [area for area in self._areas.values() if location_id is None or area.location_id == location_id]

    def get_location(self, location_id: str) -> Location | None:
        return self._locations.get(location_id)

    def get_connector(self, connector_id: str) -> Connector | None:
        return self._connectors.get(connector_id)

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        return self._schedules.get(schedule_id)

    def set_area_armed_state(self, area_id: str, state: ArmedState) -> Area | None:
        with self._lock:
            area = self._areas.get(area_id)
            if area is None:
                return None
            updated = area.model_copy(update={"armed_state": ArmedState(state)})
            self._areas[area_id] = updated
            return updated

    def update_sun_times(self, location_id: str, sunrise: str, sunset: str, updated_at: datetime) -> None:
        with self._lock:
            location = self._locations.get(location_id)
            if location is not None:
                self._locations[location_id] = location.model_copy(
                    update={"sunrise_time": sunrise, "sunset_time": sunset, "sun_times_updated_at": updated_at}
                )


class SqlAlchemySiteRepository(SiteRepository):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_device(self, connector_id: str, device_id: str) -> Device | None:
        with self._session_factory() as session:
            row = session.scalars(
                select(DeviceModel).where(DeviceModel.connector_id == connector_id, DeviceModel.device_id == device_id)
            ).first()
            return db_to_device(row) if row is not None else None

    def get_area(self, area_id: str) -> Area | None:
        with self._session_factory() as session:
            row = session.get(AreaModel, area_id)
            return db_to_area(row) if row is not None else None

    def list_areas(self, location_id: str | None = None) -> List[Area]:
        query = select(AreaModel)
        if location_id is not None:
            query = query.where(AreaModel.location_id == location_id)
        with self._session_factory() as session:
            return [db_to_area(row) for row in session.scalars(query).all()]

    def get_location(self, location_id: str) -> Location | None:
        with self._session_factory() as session:
            row = session.get(LocationModel, location_id)
            return db_to_location(row) if row is not None else None

    def get_connector(self, connector_id: str) -> Connector | None:
        with self._session_factory() as session:
            row = session.get(ConnectorModel, connector_id)
            return db_to_connector(row) if row is not None else None

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        with self._session_factory() as session:
            row = session.get(ScheduleModel, schedule_id)
            return db_to_schedule(row) if row is not None else None

    def set_area_armed_state(self, area_id: str, state: ArmedState) -> Area | None:
        with self._session_factory() as session, session.begin():
            row = session.get(AreaModel, area_id)
            if row is None:
                return None
            row.armed_state = ArmedState(state).value
            return db_to_area(row)

    def update_sun_times(self, location_id: str, sunrise: str, sunset: str, updated_at: datetime) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(LocationModel, location_id)
            if row is not None:
                row.sunrise_time = sunrise
                row.sunset_time = sunset
                row.sun_times_updated_at = updated_at
