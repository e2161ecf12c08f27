from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .events import ArmedState, StandardizedEvent


class Location(BaseModel):
    id: str
    name: str
    time_zone: str | None = None
    sunrise_time: str | None = Field(default=None, description="Local HH:MM")
    sunset_time: str | None = Field(default=None, description="Local HH:MM")
    sun_times_updated_at: datetime | None = None


class Area(BaseModel):
    id: str
    name: str
    location_id: str | None = None
    armed_state: ArmedState = ArmedState.DISARMED


class Device(BaseModel):
    id: str = Field(..., description="Internal device id")
    connector_id: str
    device_id: str = Field(..., description="Device id as known by the connector")
    name: str
    type: str | None = None
    subtype: str | None = None
    vendor: str | None = None
    model: str | None = None
    status: str | None = None
    battery_percentage: int | None = None
    area_id: str | None = None


class Connector(BaseModel):
    id: str
    category: str = Field(..., description="Connector family: yolink, genea, piko, generic")
    name: str | None = None
    organization_id: str | None = None


class Schedule(BaseModel):
    id: str
    name: str
    location_id: str | None = None
    days_of_week: List[int] = Field(default_factory=list, description="0=Monday .. 6=Sunday; empty means every day")
    start_time: str
    end_time: str
    time_zone: str | None = None


class EventContext(BaseModel):
    """
    Everything the engine knows about one firing. `event` is None for
    scheduler-driven firings, which carry `scheduled_at` instead.
    """

    model_config = ConfigDict(frozen=True)

    event: StandardizedEvent | None = None
    device: Device | None = None
    area: Area | None = None
    location: Location | None = None
    connector: Connector | None = None
    scheduled_at: datetime | None = None

    @property
    def location_id(self) -> str | None:
        if self.location is not None:
            return self.location.id
        if self.area is not None:
            return self.area.location_id
        return None
