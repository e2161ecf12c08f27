import logging
from typing import Any, Dict, Iterable, List

from models import Automation, EventFilter, EventTrigger, StandardizedEvent

from .conditions import evaluate

logger = logging.getLogger(__name__)


def in_scope(automation: Automation, location_id: str | None) -> bool:
    return automation.location_scope_id is None or automation.location_scope_id == location_id


def filter_matches(event_filter: EventFilter | None, event: StandardizedEvent) -> bool:
    if event_filter is None:
        return True
    if event_filter.categories and event.category not in event_filter.categories:
        return False
    if event_filter.types and event.type not in event_filter.types:
        return False
    if event_filter.subtypes and event.subtype not in event_filter.subtypes:
        return False
    return True


class TriggerMatcher:
    """
    Filters automations down to the ones an event fires. Cheap checks
    (enabled, scope, trigger kind, event filter) run before the condition tree.
    Stateless.
    """

    def matches(self, automation: Automation, event: StandardizedEvent, facts: Dict[str, Any], location_id: str | None) -> bool:
        if not automation.enabled:
            return False
        if not in_scope(automation, location_id):
            return False
        trigger = automation.trigger
        if not isinstance(trigger, EventTrigger):
            return False
        if not filter_matches(trigger.event_filter, event):
            return False
        return evaluate(trigger.conditions, facts)

    def match(
        self,
        automations: Iterable[Automation],
        event: StandardizedEvent,
        facts: Dict[str, Any],
        location_id: str | None,
    ) -> List[Automation]:
        matched: List[Automation] = []
        for automation in automations:
            try:
                if self.matches(automation, event, facts, location_id):
                    matched.append(automation)
            except Exception:
                # A broken rule must not stop the others from being considered.
                logger.exception("Trigger matching failed", extra={"automation_id": automation.id, "event_id": event.event_id})
        return matched
