"""
Temporal Condition Evaluator: schedule windows, sun-relative periods and
area arming checks. Independent of any event, so the scheduler tick and the
event path share it.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List
from zoneinfo import ZoneInfo

from config import Settings, get_settings
from db.site import SiteRepository
from models import (
    ArmedState,
    ArmedStateCondition,
    Automation,
    EventContext,
    Location,
    ScheduleCondition,
    SunCondition,
    TemporalCondition,
    TimeWindowCondition,
)

from .timeutils import ensure_aware, load_zone, minutes_of_day, parse_hhmm

logger = logging.getLogger(__name__)

_ARMED_STATES = {ArmedState.ARMED_AWAY, ArmedState.ARMED_STAY, ArmedState.TRIGGERED}


def in_time_window(now: datetime, zone: ZoneInfo, days_of_week: List[int], start: str, end: str) -> bool:
    """
    True when `now` (converted to `zone`) falls in [start, end). A window whose
    end is before its start runs over midnight and counts for the day it
    starts on; equal start and end cover the whole day.
    """
    local = ensure_aware(now).astimezone(zone)
    current = minutes_of_day(local)
    start_m, end_m = minutes_of_day(parse_hhmm(start)), minutes_of_day(parse_hhmm(end))
    weekday = local.weekday()

    if start_m == end_m:
        inside, window_day = True, weekday
    elif start_m < end_m:
        inside, window_day = start_m <= current < end_m, weekday
    elif current >= start_m:
        inside, window_day = True, weekday
    elif current < end_m:
        inside, window_day = True, (weekday - 1) % 7
    else:
        inside, window_day = False, weekday

    return inside and (not days_of_week or window_day in days_of_week)


class TemporalConditionEvaluator:
    def __init__(self, site_repository: SiteRepository, settings: Settings | None = None) -> None:
        self._sites = site_repository
        self._settings = settings or get_settings()

    def evaluate(
        self,
        conditions: Iterable[TemporalCondition],
        now: datetime,
        context: EventContext | None = None,
        automation: Automation | None = None,
    ) -> bool:
        """AND across all conditions; an empty list is true. `negate` flips one condition."""
        conditions = list(conditions)
        if not conditions:
            return True
        location = self._location(context, automation)
        zone = self._zone(location.time_zone if location else None)
        for condition in conditions:
            result = self._evaluate_one(condition, ensure_aware(now), zone, location)
            if condition.negate:
                result = not result
            if not result:
                logger.debug("Temporal condition %s (%s) not met", condition.id, condition.type)
                return False
        return True

    def _location(self, context: EventContext | None, automation: Automation | None) -> Location | None:
        # Device location first, then the rule's scope.
        if context is not None and context.location is not None:
            return context.location
        if automation is not None and automation.location_scope_id:
            return self._sites.get_location(automation.location_scope_id)
        return None

    def _zone(self, name: str | None) -> ZoneInfo:
        return load_zone(name) or load_zone(self._settings.default_timezone) or ZoneInfo("UTC")

    def _evaluate_one(self, condition: TemporalCondition, now: datetime, zone: ZoneInfo, location: Location | None) -> bool:
        if isinstance(condition, ScheduleCondition):
            return self._schedule(condition, now, zone)
        if isinstance(condition, TimeWindowCondition):
            window_zone = load_zone(condition.time_zone) or zone
            return in_time_window(now, window_zone, condition.days_of_week, condition.start_time, condition.end_time)
        if isinstance(condition, SunCondition):
            return self._sun(condition, now, zone, location)
        if isinstance(condition, ArmedStateCondition):
            return self._armed_state(condition)
        logger.warning("Unsupported temporal condition type %r", getattr(condition, "type", None))
        return False

    def _schedule(self, condition: ScheduleCondition, now: datetime, zone: ZoneInfo) -> bool:
        schedule = self._sites.get_schedule(condition.schedule_ref)
        if schedule is None:
            logger.warning("Schedule %s not found; condition treated as not met", condition.schedule_ref)
            return False
        schedule_zone = load_zone(schedule.time_zone)
        if schedule_zone is None and schedule.location_id:
            schedule_location = self._sites.get_location(schedule.location_id)
            schedule_zone = load_zone(schedule_location.time_zone) if schedule_location else None
        return in_time_window(now, schedule_zone or zone, schedule.days_of_week, schedule.start_time, schedule.end_time)

    def _sun(self, condition: SunCondition, now: datetime, zone: ZoneInfo, location: Location | None) -> bool:
        if location is None or not location.sunrise_time or not location.sunset_time:
            logger.warning("No sun times available; sun condition %s treated as met", condition.id)
            return True
        updated_at = location.sun_times_updated_at
        max_age = timedelta(days=self._settings.sun_times_max_age_days)
        if updated_at is None or now - ensure_aware(updated_at) > max_age:
            logger.warning("Sun times for location %s are stale; sun condition treated as met", location.id)
            return True

        current = minutes_of_day(now.astimezone(zone))
        sunrise = minutes_of_day(parse_hhmm(location.sunrise_time)) + condition.sunrise_offset_minutes
        sunset = minutes_of_day(parse_hhmm(location.sunset_time)) + condition.sunset_offset_minutes
        is_day = sunrise <= current < sunset
        return is_day if condition.period == "day" else not is_day

    def _armed_state(self, condition: ArmedStateCondition) -> bool:
        area = self._sites.get_area(condition.armed_state_ref)
        if area is None:
            logger.warning("Area %s not found; armed state condition treated as not met", condition.armed_state_ref)
            return False
        if condition.state == "ARMED":
            return area.armed_state in _ARMED_STATES
        return area.armed_state.value == condition.state
