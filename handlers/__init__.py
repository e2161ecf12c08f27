from .alarm import AreaArmingHandler
from .base import ActionHandler
from .device import DeviceCommandGateway, DeviceCommandHandler
from .http import HttpRequestHandler
from .notification import NotificationSender, PushNotificationHandler

__all__ = [
    "ActionHandler",
    "AreaArmingHandler",
    "DeviceCommandGateway",
    "DeviceCommandHandler",
    "HttpRequestHandler",
    "NotificationSender",
    "PushNotificationHandler",
]
