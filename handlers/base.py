from abc import ABC, abstractmethod
from typing import Any, Dict

from models import ActionResult


class ActionHandler(ABC):
    """
    A side-effecting action. Handlers report failures through ActionResult;
    exceptions they raise are captured by the executor as failures too.
    """

    @abstractmethod
    def execute(self, params: Dict[str, Any]) -> ActionResult:
        raise NotImplementedError

    def is_retryable(self, params: Dict[str, Any]) -> bool:
        """Only handlers whose effect is safe to repeat may be retried."""
        return False


def first_param(params: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = params.get(name)
        if value not in (None, ""):
            return value
    return None
