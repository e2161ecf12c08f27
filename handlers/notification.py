from abc import ABC, abstractmethod
from typing import Any, Dict

from models import ActionResult

from .base import ActionHandler, first_param


class NotificationSender(ABC):
    @abstractmethod
    def send(self, title: str, message: str, target: str | None, priority: str | None) -> Dict[str, Any]:
        """Hand the notification to the provider. Raises on failure."""
        raise NotImplementedError


class PushNotificationHandler(ActionHandler):
    def __init__(self, sender: NotificationSender) -> None:
        self._sender = sender

    def is_retryable(self, params: Dict[str, Any]) -> bool:
        return True

    def execute(self, params: Dict[str, Any]) -> ActionResult:
        message = first_param(params, "message", "messageTemplate")
        if not message:
            return ActionResult(success=False, error="sendPushNotification requires a message")
        title = first_param(params, "title", "titleTemplate") or "Automation"
        receipt = self._sender.send(
            str(title),
            str(message),
            first_param(params, "target", "targetUserTemplate"),
            params.get("priority"),
        )
        return ActionResult(success=True, result_data=receipt or None)
