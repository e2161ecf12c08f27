"""
Rule normalization applied once, when a rule is written.

Works on the raw JSON shape so it can also run over rows written by older
versions that no longer parse. Every step is idempotent: running it over an
already-normalized config changes nothing.
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import ValidationError

from models import OPERATOR_ALIASES, AutomationConfig

logger = logging.getLogger(__name__)

INTERNAL_ID = "_internalId"


def _new_id() -> str:
    return str(uuid.uuid4())


def _is_group(node: Dict[str, Any]) -> bool:
    return "all" in node or "any" in node


def ensure_internal_ids(node: Any) -> int:
    """
    Give every node of a condition tree an `_internalId`, in place. Nodes that
    already carry one keep it. Returns how many ids were added.
    """
    if not isinstance(node, dict):
        return 0
    added = 0
    if not node.get(INTERNAL_ID):
        node[INTERNAL_ID] = _new_id()
        added += 1
    for key in ("all", "any"):
        for child in node.get(key) or []:
            added += ensure_internal_ids(child)
    return added


def _canonicalize_leaves(node: Any) -> None:
    if not isinstance(node, dict):
        return
    if _is_group(node):
        for key in ("all", "any"):
            for child in node.get(key) or []:
                _canonicalize_leaves(child)
        return
    if "field" not in node and "fact" in node:
        node["field"] = node.pop("fact")
    operator = node.get("operator")
    if isinstance(operator, str) and operator in OPERATOR_ALIASES:
        node["operator"] = OPERATOR_ALIASES[operator]


def _upgrade_legacy_layout(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Older rules kept their conditions next to the trigger instead of inside it,
    either as a single tree or as a list of AND groups joined by OR.
    """
    legacy = config.pop("conditions", None)
    if legacy is None:
        return config
    trigger = config.get("trigger")
    if isinstance(trigger, dict) and trigger.get("conditions") is not None:
        logger.warning("Ignoring top-level conditions on a rule whose trigger already has conditions")
        return config
    if isinstance(legacy, list):
        groups = [{"all": list(group)} if isinstance(group, list) else group for group in legacy]
        tree: Any = {"any": groups}
    else:
        tree = legacy
    config["trigger"] = {**(trigger if isinstance(trigger, dict) else {}), "type": "EVENT", "conditions": tree}
    return config


def normalize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return a normalized deep copy of an automation config document."""
    normalized = _upgrade_legacy_layout(copy.deepcopy(config))
    trigger = normalized.get("trigger")
    if isinstance(trigger, dict):
        if isinstance(trigger.get("type"), str):
            trigger["type"] = trigger["type"].upper()
        conditions = trigger.get("conditions")
        _canonicalize_leaves(conditions)
        ensure_internal_ids(conditions)
    for condition in normalized.get("temporalConditions") or []:
        if isinstance(condition, dict) and not condition.get("id"):
            condition["id"] = _new_id()
    return normalized


def regenerate_internal_ids(config: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy of `config` with every condition node and temporal condition given a fresh id."""
    fresh = copy.deepcopy(config)

    def _reset(node: Any) -> None:
        if not isinstance(node, dict):
            return
        node[INTERNAL_ID] = _new_id()
        for key in ("all", "any"):
            for child in node.get(key) or []:
                _reset(child)

    trigger = fresh.get("trigger")
    if isinstance(trigger, dict):
        _reset(trigger.get("conditions"))
    for condition in fresh.get("temporalConditions") or []:
        if isinstance(condition, dict):
            condition["id"] = _new_id()
    return fresh


@dataclass
class MigrationReport:
    migrated: int = 0
    skipped: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def migrate_internal_ids(repository: Any) -> MigrationReport:
    """
    One-time pass over every stored rule: upgrade legacy layouts and add
    missing node ids. Rules that are already normalized are skipped, so the
    pass can be re-run safely.
    """
    report = MigrationReport()
    pending: List[tuple[str, Dict[str, Any]]] = list(repository.iter_raw_configs())
    for record_id, config in pending:
        if not isinstance(config, dict):
            report.errors[record_id] = "Stored config is not an object"
            continue
        normalized = normalize_config(config)
        if normalized == config:
            report.skipped += 1
            continue
        try:
            AutomationConfig.model_validate(normalized)
        except ValidationError as exc:
            report.errors[record_id] = str(exc)
            logger.error("Automation %s cannot be migrated", record_id, extra={"automation_id": record_id})
            continue
        repository.write_raw_config(record_id, normalized)
        report.migrated += 1
    logger.info(
        "Condition id migration finished: %d migrated, %d skipped, %d errors",
        report.migrated,
        report.skipped,
        len(report.errors),
    )
    return report
