import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

from handlers import ActionHandler
from models import ActionResult

logger = logging.getLogger(__name__)


@dataclass
class RegistryItem:
    type: str
    description: str
    handler: ActionHandler


@dataclass
class Registry:
    name: str
    items: Dict[str, RegistryItem] = field(default_factory=dict)

    def register(self, type_name: str, description: str, handler: ActionHandler) -> None:
        self.items[type_name] = RegistryItem(type=type_name, description=description, handler=handler)

    def get(self, type_name: str) -> RegistryItem | None:
        return self.items.get(type_name)

    def __contains__(self, type_name: str) -> bool:
        return type_name in self.items

    def all(self) -> Iterable[RegistryItem]:
        return self.items.values()

    def is_retryable(self, action_type: str, params: Dict[str, Any]) -> bool:
        item = self.items.get(action_type)
        return item is not None and item.handler.is_retryable(params)

    def execute(self, action_type: str, params: Dict[str, Any]) -> ActionResult:
        """
        Uniform dispatch entry point. Unknown types fail instead of raising;
        exceptions from the handler itself propagate to the caller.
        """
        item = self.items.get(action_type)
        if item is None:
            logger.error("No handler registered for action type %r", action_type)
            return ActionResult(success=False, error=f"Unknown action type: {action_type}")
        return item.handler.execute(params)
