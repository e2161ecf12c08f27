from typing import TYPE_CHECKING

import httpx

from handlers import (
    AreaArmingHandler,
    DeviceCommandGateway,
    DeviceCommandHandler,
    HttpRequestHandler,
    NotificationSender,
    PushNotificationHandler,
)
from models import ArmedState

from .registry import Registry

if TYPE_CHECKING:
    from db.site import SiteRepository


def create_default_registry(
    site_repository: "SiteRepository",
    device_gateway: DeviceCommandGateway | None = None,
    notification_sender: NotificationSender | None = None,
    http_client: httpx.Client | None = None,
) -> Registry:
    """Action registry with the built-in handlers. Collaborator-backed actions are only registered when the collaborator is given."""
    action_registry = Registry(name="action")
    action_registry.register("sendHttpRequest", "Call an external HTTP endpoint", HttpRequestHandler(http_client))
    action_registry.register("armArea", "Arm one or more areas", AreaArmingHandler(site_repository, ArmedState.ARMED_AWAY))
    action_registry.register("disarmArea", "Disarm one or more areas", AreaArmingHandler(site_repository, ArmedState.DISARMED))

    if device_gateway is not None:
        action_registry.register("setDeviceState", "Switch a device on or off", DeviceCommandHandler(device_gateway, "setState"))
        action_registry.register("lockDevice", "Lock a door lock", DeviceCommandHandler(device_gateway, "lock"))
        action_registry.register("unlockDevice", "Unlock a door lock", DeviceCommandHandler(device_gateway, "unlock"))

    if notification_sender is not None:
        action_registry.register("sendPushNotification", "Send a push notification", PushNotificationHandler(notification_sender))

    return action_registry
