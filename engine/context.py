from datetime import datetime

from db.site import SiteRepository
from models import Automation, EventContext, StandardizedEvent


class ContextResolver:
    """
    Enriches an event with the device, area, location and connector records
    the site directory holds for it. Unknown devices yield an empty device
    context; the event still flows through the pipeline.
    """

    def __init__(self, site_repository: SiteRepository) -> None:
        self._sites = site_repository

    def resolve(self, event: StandardizedEvent) -> EventContext:
        device = self._sites.get_device(event.connector_id, event.device_id)
        area = self._sites.get_area(device.area_id) if device and device.area_id else None
        location = self._sites.get_location(area.location_id) if area and area.location_id else None
        connector = self._sites.get_connector(event.connector_id)
        return EventContext(event=event, device=device, area=area, location=location, connector=connector)

    def for_schedule(self, automation: Automation, now: datetime) -> EventContext:
        """Synthetic context for scheduler firings: no event, only time and the rule's scope."""
        location = self._sites.get_location(automation.location_scope_id) if automation.location_scope_id else None
        return EventContext(location=location, scheduled_at=now)
