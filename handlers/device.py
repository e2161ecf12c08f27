from abc import ABC, abstractmethod
from typing import Any, Dict

from models import ActionResult

from .base import ActionHandler, first_param


class DeviceCommandGateway(ABC):
    """Connector-side command channel to physical devices."""

    @abstractmethod
    def send_command(self, device_id: str, command: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver a command and return whatever the connector reports. Raises on failure."""
        raise NotImplementedError


class DeviceCommandHandler(ActionHandler):
    """
    setDeviceState, lockDevice and unlockDevice. Never retried: a repeated
    unlock is a physical side effect.
    """

    def __init__(self, gateway: DeviceCommandGateway, command: str) -> None:
        self._gateway = gateway
        self._command = command

    def execute(self, params: Dict[str, Any]) -> ActionResult:
        device_id = first_param(params, "targetDeviceInternalId", "deviceId")
        if not device_id:
            return ActionResult(success=False, error=f"{self._command} requires a target device")
        arguments: Dict[str, Any] = {}
        if self._command == "setState":
            state = first_param(params, "targetState", "state")
            if state is None:
                return ActionResult(success=False, error="setDeviceState requires targetState")
            arguments["state"] = state
        response = self._gateway.send_command(str(device_id), self._command, arguments)
        return ActionResult(success=True, result_data={"deviceId": device_id, "command": self._command, "response": response})
