from typing import Any, Dict

from pydantic import ValidationError

from models import Automation, ConditionOperator
from registry.registry import Registry

from .condition_ids import INTERNAL_ID, normalize_config

_OPERATORS = {operator.value for operator in ConditionOperator}


class AutomationValidationError(ValueError):
    """Raised when a rule is structurally invalid and must not be saved."""


class UnknownRegistryTypeError(AutomationValidationError):
    """Raised when an automation references an action type with no registered handler."""


def _validate_condition_tree(root: Any) -> None:
    """
    Structural checks pydantic cannot express: the tree must be acyclic,
    internal ids unique, and every operator known.
    """
    if root is None:
        return
    seen_ids: set[str] = set()
    # (node, ids of dict objects on the path from the root)
    stack: list[tuple[Any, frozenset]] = [(root, frozenset())]
    while stack:
        node, path = stack.pop()
        if not isinstance(node, dict):
            raise AutomationValidationError(f"Condition node must be an object, got {type(node).__name__}")
        if id(node) in path:
            raise AutomationValidationError("Condition tree contains a cycle")
        internal_id = node.get(INTERNAL_ID)
        if internal_id in seen_ids:
            raise AutomationValidationError(f"Duplicate condition id: {internal_id}")
        seen_ids.add(internal_id)

        has_all, has_any = "all" in node, "any" in node
        if has_all or has_any:
            if has_all == has_any:
                raise AutomationValidationError(f"Condition group {internal_id} must define exactly one of 'all' or 'any'")
            if "field" in node:
                raise AutomationValidationError(f"Condition node {internal_id} mixes group and leaf keys")
            children = node["all"] if has_all else node["any"]
            if not isinstance(children, list):
                raise AutomationValidationError(f"Condition group {internal_id} children must be a list")
            child_path = path | {id(node)}
            stack.extend((child, child_path) for child in children)
            continue

        if not node.get("field"):
            raise AutomationValidationError(f"Condition leaf {internal_id} has no field")
        operator = node.get("operator")
        if operator not in _OPERATORS:
            raise AutomationValidationError(f"Unknown operator: {operator!r}")


def _validate_against_registry(automation: Automation, registry: Registry) -> Automation:
    for action in automation.actions:
        if action.type not in registry.items:
            raise UnknownRegistryTypeError(f"Unknown action type: {action.type}")
    return automation


def parse_and_validate_automation(payload: Dict[str, Any], registry: Registry) -> Automation:
    """
    Normalize and validate a rule before it is written. The payload carries
    name/enabled/locationScopeId and the config document under `configJson`
    (or `config`).

    Raises AutomationValidationError for structural problems, UnknownRegistryTypeError
    for unknown action types and pydantic's ValidationError for schema mismatches.
    """
    config = payload.get("configJson", payload.get("config"))
    if not isinstance(config, dict):
        raise AutomationValidationError("Automation must include a config object")
    try:
        normalized = normalize_config(config)
    except RecursionError as exc:
        raise AutomationValidationError("Condition tree contains a cycle or is too deeply nested") from exc
    trigger = normalized.get("trigger")
    if isinstance(trigger, dict):
        _validate_condition_tree(trigger.get("conditions"))

    fields = {key: value for key, value in payload.items() if key not in ("configJson", "config")}
    try:
        automation = Automation.model_validate({**fields, "configJson": normalized})
    except RecursionError as exc:
        raise AutomationValidationError("Condition tree is too deeply nested") from exc
    return _validate_against_registry(automation, registry)


def is_valid_automation(payload: Dict[str, Any], registry: Registry) -> bool:
    try:
        parse_and_validate_automation(payload, registry)
    except (AutomationValidationError, ValidationError):
        return False
    return True
